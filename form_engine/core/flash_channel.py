"""
Flash Channel - one-shot validation errors across a redirect.

Usage (post-redirect-get):
    POST handler: validation fails -> set_flash(request, message) -> 303
    GET handler:  get_flash(request) returns the message exactly once

Backed by the store's per-key queue. The pop is atomic in both shipped
backends, so two concurrent reads cannot both observe one message.
"""

import logging
from typing import Optional

from form_engine.config import EngineConfig, SessionStrategy
from form_engine.contracts import FlashMessage, FormRequest, KeyValueStore
from form_engine.core.session_keys import SessionKeyDeriver

logger = logging.getLogger(__name__)


class FlashChannel:
    """Queue of one-shot messages keyed off the session key."""

    def __init__(self, store: KeyValueStore, config: EngineConfig,
                 strategy: SessionStrategy = SessionStrategy()):
        self.store = store
        self.config = config
        self.key = SessionKeyDeriver(strategy.key_generator)

    def get_flash(self, request: FormRequest) -> Optional[FlashMessage]:
        """Pop the first queued message, None if there is none."""
        raw = self.store.pop(self.key(request))
        if raw is None:
            return None
        return FlashMessage.from_json(raw)

    def set_flash(self, request: FormRequest, message: FlashMessage) -> None:
        """Queue a message for the next request on this key."""
        self.store.push(self.key(request), message.to_json(), self.config.session_timeout)
        logger.debug(f"Queued flash message with {len(message.errors)} error(s)")
