"""
Confirmation Store - has this form instance been submitted?

Same mechanics as StateStore, under the 'confirmation' sub-namespace and
with its own (shorter) TTL. Lifecycle is independent: clearing answers
after submission leaves the confirmation in place so the status page can
still be shown.
"""

from typing import Dict

from form_engine.config import EngineConfig, SessionStrategy
from form_engine.contracts import FormRequest, KeyValueStore
from form_engine.core.session_keys import SessionKeyDeriver, SubNamespace


class ConfirmationStore:

    def __init__(self, store: KeyValueStore, config: EngineConfig,
                 strategy: SessionStrategy = SessionStrategy()):
        self.store = store
        self.config = config
        self.key = SessionKeyDeriver(strategy.key_generator)

    def get_confirmation_state(self, request: FormRequest) -> Dict[str, bool]:
        """Return e.g. {'confirmed': True}, or {} if never set."""
        value = self.store.get(self.key(request, SubNamespace.CONFIRMATION))
        return value or {}

    def set_confirmation_state(self, request: FormRequest, confirmation_state: Dict[str, bool]) -> None:
        self.store.set(
            self.key(request, SubNamespace.CONFIRMATION),
            confirmation_state,
            self.config.confirmation_session_timeout
        )

    def clear_confirmation_state(self, request: FormRequest) -> None:
        if request.session_id:
            self.store.drop(self.key(request, SubNamespace.CONFIRMATION))
