"""
Form Model Cache - compiled form models keyed by id, status and preview

Responsibilities:
- Re-fetch cheap form metadata on every request
- Rebuild the expensive compiled model only when the metadata's
  updated_at for the requested status has changed
- Refuse to serve a live form that cannot route submissions

Design principles:
- Owned by the app instance (no module-level singleton), so tests get
  isolated caches
- No lock around check -> build -> store. Concurrent cold requests may
  each rebuild and overwrite; building is a pure function of the
  definition so the duplicate work is harmless (last write wins)
- Entries are replaced, never evicted

Up to three entries exist per form:
    "{id}_live_false"  (live)
    "{id}_live_true"   (live, previewed)
    "{id}_draft_true"  (draft, previewed)
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from form_engine.contracts import (
    CachedFormModelEntry,
    FormMetadata,
    FormRequest,
    FormsService,
    OnRequestCallback,
)
from form_engine.errors import NotFoundError
from form_engine.utils.helpers import (
    PREVIEW_PATH_PREFIX,
    check_email_address_for_live_form_submission,
    check_form_status,
)

logger = logging.getLogger(__name__)


def _as_timestamp(value: Any) -> Any:
    """ISO strings and datetimes compare by value."""
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def cache_key(form_id: str, status: str, is_preview: bool) -> str:
    return f"{form_id}_{status}_{str(is_preview).lower()}"


class FormModelCache:
    """Process-wide cache of compiled form models, injected where needed."""

    def __init__(self, route_prefix: str = ""):
        """
        Args:
            route_prefix: Prefix the form routes are mounted under,
                          used to compute each model's base path
        """
        self.route_prefix = route_prefix.rstrip("/")
        self._entries: Dict[str, CachedFormModelEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[CachedFormModelEntry]:
        return self._entries.get(key)

    def base_path(self, slug: str, status: str, is_preview: bool) -> str:
        """Routing base for a model, without the leading slash."""
        if is_preview:
            path = f"{self.route_prefix}{PREVIEW_PATH_PREFIX}/{status}/{slug}"
        else:
            path = f"{self.route_prefix}/{slug}"
        return path[1:] if path.startswith("/") else path

    def load_model(
        self,
        form_id: str,
        status: str,
        is_preview: bool,
        fetch_metadata: Callable[[], FormMetadata],
        fetch_definition: Callable[[str, str], Optional[dict]],
        build_model: Callable[[dict, str], Any]
    ) -> Any:
        """
        Return the compiled model, rebuilding it if metadata changed.

        Args:
            form_id: Form identifier
            status: 'draft' or 'live'
            is_preview: Whether served on a preview route
            fetch_metadata: () -> FormMetadata, called every time
            fetch_definition: (form_id, status) -> definition dict or None
            build_model: (definition, base_path) -> compiled model

        Returns:
            Compiled model

        Raises:
            NotFoundError: Status missing from metadata, or no definition
            InvalidConfigurationError: Live form without a submission email
        """
        status = getattr(status, "value", status)
        key = cache_key(form_id, status, is_preview)

        metadata = fetch_metadata()
        status_info = metadata.for_status(status)

        if status_info is None:
            raise NotFoundError(f"No '{status}' state for form metadata {form_id}")

        updated_at = status_info.get("updated_at")
        entry = self._entries.get(key)

        if entry is not None and _as_timestamp(entry.updated_at) == _as_timestamp(updated_at):
            return entry.model

        logger.info(f"Getting form definition {form_id} ({metadata.slug}) {status}")
        definition = fetch_definition(form_id, status)

        if definition is None:
            raise NotFoundError(
                f"No definition found for form metadata {form_id} ({metadata.slug}) {status}"
            )

        email_address = metadata.notification_email or definition.get("outputEmail")
        check_email_address_for_live_form_submission(email_address, is_preview)

        logger.info(f"Building model for form definition {form_id} ({metadata.slug}) {status}")
        model = build_model(definition, self.base_path(metadata.slug, status, is_preview))

        self._entries[key] = CachedFormModelEntry(model=model, updated_at=updated_at)
        return model

    def load_for_request(
        self,
        request: FormRequest,
        forms_service: FormsService,
        build_model: Callable[[dict, str], Any],
        on_request: Optional[OnRequestCallback] = None
    ) -> Any:
        """
        Load the model for a request's route params and attach it.

        Metadata is fetched once (by slug) and reused for the cache check.
        `on_request`, if given, is called after every load (cached or not)
        with (request, params, definition, metadata); its return value is
        ignored and its errors propagate.
        """
        slug = request.params.get("slug", "")
        status, is_preview = check_form_status(request.params)

        metadata = forms_service.get_form_metadata(slug)

        model = self.load_model(
            metadata.id,
            status.value,
            is_preview,
            fetch_metadata=lambda: metadata,
            fetch_definition=forms_service.get_form_definition,
            build_model=build_model
        )

        if on_request is not None:
            on_request(request, request.params, model.definition, metadata)

        request.model = model
        return model
