"""
Session key derivation.

Every session-scoped value (answers, confirmation, flash) is addressed by
a key derived from the request. Wire format, kept exactly for
compatibility with data already in shared caches:

    <sessionId>:<formStatus>:<formSlug>:<scopePath>[:<subNamespace>]

e.g. "abc:live:tax-form:" and "abc:live:tax-form::confirmation".
The double colon in the second example is expected (empty path).

If a key generator is configured, its return value replaces the base id
verbatim and the generator alone is responsible for uniqueness. The
sub-namespace is still appended.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from form_engine.contracts import FormRequest, SessionKey
from form_engine.errors import MissingSessionError

logger = logging.getLogger(__name__)


class SubNamespace(str, Enum):
    """Secondary stores sharing the session identity."""
    CONFIRMATION = "confirmation"


def default_key(request: FormRequest) -> str:
    """
    Default base id: session, status, slug and scope path.

    Raises:
        MissingSessionError: If the request has no session id
    """
    if not request.session_id:
        raise MissingSessionError("No session ID found")

    params = request.params or {}
    status = params.get("state") or ""
    slug = params.get("slug") or ""
    path = request.scope_path or ""

    return f"{request.session_id}:{status}:{slug}:{path}"


def derive_key(
    request: FormRequest,
    sub_namespace: Optional[str] = None,
    key_generator: Optional[Callable[[FormRequest], str]] = None
) -> SessionKey:
    """
    Derive the store key for a request.

    Pure: same request fields always give the same key.

    Args:
        request: Current request
        sub_namespace: Optional secondary namespace (e.g. 'confirmation')
        key_generator: Optional replacement for the default base id

    Returns:
        SessionKey in the "cache" segment

    Raises:
        MissingSessionError: If no session id (default algorithm)
    """
    base_id = key_generator(request) if key_generator else default_key(request)

    if sub_namespace is not None:
        if isinstance(sub_namespace, SubNamespace):
            sub_namespace = sub_namespace.value
        base_id = f"{base_id}:{sub_namespace}"

    return SessionKey(id=base_id)


class SessionKeyDeriver:
    """derive_key() bound to the configured key generator."""

    def __init__(self, key_generator: Optional[Callable[[FormRequest], str]] = None):
        self.key_generator = key_generator

    def __call__(self, request: FormRequest, sub_namespace: Optional[str] = None) -> SessionKey:
        key = derive_key(request, sub_namespace, self.key_generator)
        logger.debug(f"Derived session key {key.segment}/{key.id}")
        return key
