"""
Semantic contracts for the form session core.

This module defines the data structures and collaborator interfaces that
serve as contracts between the routing layer, the session core and the
external relevance engine. These are NOT validators - they define shape
and semantics without enforcing rules.

Design principles:
- Frozen dataclasses for values that never change after creation
- Plain (mutable) dataclass for the request, whose query the resolver edits
- typing.Protocol for collaborators, so tests can pass simple fakes
- No dependencies on other form_engine modules

Contents:
- SessionKey: Segment + id address of a stored value
- FormRequest: Framework-neutral view of one HTTP request
- FormSubmissionError / FlashMessage: One-shot validation errors
- FormContext: What the relevance engine returns for one request
- FormMetadata / CachedFormModelEntry: Model cache inputs and entries
- KeyValueStore, FormsService, Page, FormModel: Collaborator protocols

Usage:
    from form_engine.contracts import FormRequest, SessionKey
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple


# Reserved state field holding the form instance's reference number
REFERENCE_NUMBER_KEY = "$$__referenceNumber"

# Segment every session-scoped value is stored under
SESSION_SEGMENT = "cache"


@dataclass(frozen=True)
class SessionKey:
    """
    Address of one stored value.

    Attributes:
        segment: Store partition, always "cache" for session data
        id: Derived key, e.g. "abc:live:tax-form:"
    """
    id: str
    segment: str = SESSION_SEGMENT


@dataclass
class FormRequest:
    """
    The parts of an HTTP request the session core reads.

    The routing layer builds one of these per request. Only `query` and
    `model` are written to by the core: the resolver may set `returnUrl`
    before redirecting, and the model loader attaches the compiled model.

    Attributes:
        session_id: Cookie session identifier (None when no session)
        params: Route params - 'state' (draft/live, preview only), 'slug',
                'path' (page path without leading slash)
        query: Query string values (mutable)
        method: Lower-case HTTP method ('get' or 'post')
        payload: Form body for POST requests, None otherwise
        scope_path: Key scope path. Empty for whole-form answer state;
                    set only where a sub-flow needs isolated state.
        model: Compiled form model attached upstream, or None
    """
    session_id: Optional[str]
    params: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    method: str = "get"
    payload: Optional[Dict[str, Any]] = None
    scope_path: str = ""
    model: Any = None


@dataclass(frozen=True)
class FormSubmissionError:
    """
    One validation error, shaped for rendering next to a field.

    Attributes:
        path: Field path segments, e.g. ('fullName',)
        href: Anchor to the field, e.g. '#fullName'
        name: Field name
        text: Message shown to the user
    """
    path: Tuple[str, ...]
    href: str
    name: str
    text: str

    def to_json(self) -> dict:
        return {
            'path': list(self.path),
            'href': self.href,
            'name': self.name,
            'text': self.text
        }

    @staticmethod
    def from_json(data: dict) -> "FormSubmissionError":
        return FormSubmissionError(
            path=tuple(data.get('path', ())),
            href=data.get('href', ''),
            name=data.get('name', ''),
            text=data.get('text', '')
        )


@dataclass(frozen=True)
class FlashMessage:
    """
    Errors stored for exactly one subsequent read (post-redirect).

    Serialized to a JSON-safe dict at the store boundary so any backend
    (in-memory or Redis) can hold it.
    """
    errors: Tuple[FormSubmissionError, ...] = ()

    def to_json(self) -> dict:
        return {'errors': [error.to_json() for error in self.errors]}

    @staticmethod
    def from_json(data: dict) -> "FlashMessage":
        return FlashMessage(
            errors=tuple(FormSubmissionError.from_json(e) for e in data.get('errors', []))
        )


@dataclass
class FormContext:
    """
    Result of asking the relevance engine about one request.

    Attributes:
        state: Full session state the context was computed from
        errors: Flash errors consumed for this request
        is_force_access: Direct preview-link access bypasses relevance checks
        data: Opaque rendering data (page handlers may add to it)
        relevant_state: Answers on the pages the user has actually visited
        paths: Page paths walked to reach the relevant page
        reference_number: Form instance reference number
    """
    state: Dict[str, Any]
    errors: List[FormSubmissionError] = field(default_factory=list)
    is_force_access: bool = False
    data: Dict[str, Any] = field(default_factory=dict)
    relevant_state: Dict[str, Any] = field(default_factory=dict)
    paths: List[str] = field(default_factory=list)
    reference_number: Optional[str] = None


@dataclass(frozen=True)
class FormMetadata:
    """
    Cheap per-form metadata, re-fetched on every request.

    Attributes:
        id: Form identifier
        slug: URL slug
        draft: Draft status info ({'updated_at': ...}) or None if no draft
        live: Live status info or None if never published
        notification_email: Submission routing address (may be None)
        submission_guidance: Text shown on the status page
    """
    id: str
    slug: str
    draft: Optional[Dict[str, Any]] = None
    live: Optional[Dict[str, Any]] = None
    notification_email: Optional[str] = None
    submission_guidance: Optional[str] = None

    def for_status(self, status: str) -> Optional[Dict[str, Any]]:
        """Return the status block ('draft' or 'live'), None if absent."""
        if status == "draft":
            return self.draft
        if status == "live":
            return self.live
        return None

    @staticmethod
    def from_json(data: dict) -> "FormMetadata":
        return FormMetadata(
            id=data['id'],
            slug=data.get('slug', ''),
            draft=copy.deepcopy(data.get('draft')),
            live=copy.deepcopy(data.get('live')),
            notification_email=data.get('notificationEmail'),
            submission_guidance=data.get('submissionGuidance')
        )


@dataclass(frozen=True)
class CachedFormModelEntry:
    """
    One compiled model and the metadata timestamp it was built from.

    Valid only while `updated_at` equals the metadata's current value.
    """
    model: Any
    updated_at: Any


# =========================================================================
# Collaborator protocols
# =========================================================================

class KeyValueStore(Protocol):
    """Segment+id addressed store with per-item TTL and queue operations."""

    def get(self, key: SessionKey) -> Optional[Any]: ...

    def set(self, key: SessionKey, value: Any, ttl_ms: int) -> None: ...

    def drop(self, key: SessionKey) -> None: ...

    def push(self, key: SessionKey, value: Any, ttl_ms: int) -> None: ...

    def pop(self, key: SessionKey) -> Optional[Any]: ...


class FormsService(Protocol):
    """Source of form metadata and published/draft definitions."""

    def get_form_metadata(self, slug: str) -> FormMetadata: ...

    def get_form_definition(self, form_id: str, status: str) -> Optional[dict]: ...


class Page(Protocol):
    """A page as the navigation layer sees it."""

    path: str
    next: List[Any]

    def get_relevant_path(self, request: FormRequest, context: FormContext) -> str: ...

    def get_summary_path(self) -> str: ...

    def get_href(self, path: str) -> str: ...

    def get_state(self, request: FormRequest) -> Dict[str, Any]: ...

    def merge_state(self, request: FormRequest, state: Dict[str, Any],
                    update: Dict[str, Any]) -> Dict[str, Any]: ...


class FormModel(Protocol):
    """A compiled form model as the navigation layer sees it."""

    base_path: str
    reference_number_prefix: Any
    metadata: Dict[str, Any]

    def find_page(self, path: Optional[str]) -> Optional[Page]: ...

    def get_form_context(self, request: FormRequest, state: Dict[str, Any],
                         errors: Optional[List[FormSubmissionError]] = None) -> FormContext: ...


# Optional hook run after the model is loaded: (request, params, definition, metadata).
# Its return value is ignored.
OnRequestCallback = Callable[[FormRequest, Dict[str, Any], Dict[str, Any], FormMetadata], None]
