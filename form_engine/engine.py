"""
Form Engine - wiring for one server instance

Builds the store, the session stores, the model cache and the resolver
from config, and exposes them as one bundle. The Flask app keeps one
FormEngine in app.extensions; tests build their own, isolated instances.

Also the `services` object compiled form models use for state access.
"""

import logging
from typing import Any, Callable, Optional

from form_engine.config import EngineConfig, SessionStrategy
from form_engine.contracts import FormRequest, FormsService, KeyValueStore, OnRequestCallback
from form_engine.core.confirmation_store import ConfirmationStore
from form_engine.core.flash_channel import FlashChannel
from form_engine.core.form_model import FormModel
from form_engine.core.model_cache import FormModelCache
from form_engine.core.navigation import NavigationResolver
from form_engine.core.state_store import StateStore
from form_engine.services.forms_service import LocalFormsService
from form_engine.utils.kv_store import create_store
from form_engine.utils.reference_numbers import generate_unique_reference

logger = logging.getLogger(__name__)


class FormEngine:
    """Session core components for one server instance."""

    def __init__(
        self,
        config: EngineConfig,
        strategy: SessionStrategy = SessionStrategy(),
        store: Optional[KeyValueStore] = None,
        forms_service: Optional[FormsService] = None,
        generate_reference: Callable[[str], str] = generate_unique_reference,
        on_request: Optional[OnRequestCallback] = None
    ):
        """
        Args:
            config: Engine configuration
            strategy: Save-and-resume hooks
            store: Key-value store (default: selected by config.cache_name)
            forms_service: Metadata/definition source (default: local files)
            generate_reference: prefix -> reference number
            on_request: Optional hook called after each model load with
                        (request, params, definition, metadata)
        """
        self.config = config
        self.strategy = strategy
        self.store = store if store is not None else create_store(config)
        self.forms_service = forms_service or LocalFormsService(config.forms_dir)

        self.state_store = StateStore(self.store, config, strategy)
        self.flash = FlashChannel(self.store, config, strategy)
        self.confirmation = ConfirmationStore(self.store, config, strategy)
        self.model_cache = FormModelCache(route_prefix=config.route_prefix)
        self.on_request = on_request
        self.resolver = NavigationResolver(self.flash, generate_reference=generate_reference)

        logger.info("Form engine initialized")

    def build_model(self, definition: dict, base_path: str) -> FormModel:
        return FormModel(definition, base_path, services=self)

    def load_model(self, request: FormRequest) -> Any:
        """Attach the compiled model for the request's form to the request."""
        return self.model_cache.load_for_request(
            request, self.forms_service, self.build_model, on_request=self.on_request
        )
