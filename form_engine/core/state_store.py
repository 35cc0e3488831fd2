"""
State Store - per-session form answers

Responsibilities:
- Read/write a form instance's answers under the derived session key
- Rehydrate from backing persistence on a cache miss (save and resume)
- Merge updates into existing answers
- Drop answers when a form instance ends

Design principles:
- Thin policy over a KeyValueStore (TTL, key, rehydration)
- No retries, no locking: store failures propagate to the caller
- get -> merge -> set is NOT atomic. Two requests sharing a session key
  (double submit, back-button replay) race and the last writer wins.
"""

import logging
from typing import Any, Dict

from form_engine.config import EngineConfig, SessionStrategy
from form_engine.contracts import FormRequest, KeyValueStore
from form_engine.core.session_keys import SessionKeyDeriver
from form_engine.utils.merge import merge

logger = logging.getLogger(__name__)

__all__ = ["StateStore", "merge"]


class StateStore:
    """Get/set/merge/clear of per-session form answers."""

    def __init__(self, store: KeyValueStore, config: EngineConfig,
                 strategy: SessionStrategy = SessionStrategy()):
        """
        Args:
            store: Backing key-value store
            config: Engine config (session_timeout used as TTL)
            strategy: Save-and-resume hooks (hydrator, purger, key generator)
        """
        self.store = store
        self.config = config
        self.strategy = strategy
        self.key = SessionKeyDeriver(strategy.key_generator)

    def get_state(self, request: FormRequest) -> Dict[str, Any]:
        """
        Read the answers for this request's form instance.

        A miss (key absent, not merely empty) consults the session hydrator
        if one is configured; a non-None result is written back with the
        normal TTL and returned.

        Returns:
            dict: Stored answers, or {} if none

        Raises:
            MissingSessionError: If the request has no session id
        """
        key = self.key(request)
        cached = self.store.get(key)

        if cached is not None:
            return cached

        hydrator = self.strategy.session_hydrator
        if hydrator is not None:
            rehydrated = hydrator(request)

            if rehydrated is not None:
                logger.info(f"Rehydrated session state for {key.id}")
                self.store.set(key, rehydrated, self.config.session_timeout)
                stored = self.store.get(key)
                return stored if stored is not None else {}

        return {}

    def set_state(self, request: FormRequest, new_state: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace the stored answers verbatim.

        Returns:
            dict: The value as re-read from the store
        """
        key = self.key(request)
        self.store.set(key, new_state, self.config.session_timeout)
        return self.get_state(request)

    def merge_state(self, request: FormRequest, state: Dict[str, Any],
                    update: Dict[str, Any]) -> Dict[str, Any]:
        """Merge `update` into `state` and persist the result."""
        return self.set_state(request, merge(state, update))

    def clear_state(self, request: FormRequest, purge: bool = False) -> None:
        """
        Drop the stored answers.

        No-op without a session id, so cleanup paths never fail on an
        already torn-down session.

        Args:
            request: Current request
            purge: Also remove the saved copy via the session purger.
                   False on save-and-exit (the saved copy is the point).
        """
        if not request.session_id:
            return

        self.store.drop(self.key(request))

        purger = self.strategy.session_purger
        if purge and purger is not None:
            purger(request)

        logger.debug("Cleared session state")

    merge = staticmethod(merge)
