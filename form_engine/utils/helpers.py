"""
Routing helpers shared by the model cache, the resolver and the app.

Contents:
- FormStatus / FormAction: string enums for route params and button actions
- normalise_path(), is_path_relative(), redirect_path(): URL handling
- check_form_status(): route params -> (status, is_preview)
- check_email_address_for_live_form_submission(): fail-closed email check
- proceed(): build the redirect for "go to the next page"
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

from form_engine.contracts import FormRequest
from form_engine.errors import InvalidConfigurationError
from form_engine.results import Redirect

logger = logging.getLogger(__name__)

PREVIEW_PATH_PREFIX = "/preview"


class FormStatus(str, Enum):
    """Which definition of a form is served."""
    DRAFT = "draft"
    LIVE = "live"


class FormAction(str, Enum):
    """Button actions a page POST may carry."""
    CONTINUE = "continue"
    VALIDATE = "validate"
    SAVE_AND_EXIT = "save-and-exit"
    SUBMIT = "submit"


def normalise_path(path: Optional[str] = "") -> str:
    """
    Trim whitespace and a single leading/trailing slash.

    Examples:
        >>> normalise_path(' /full-name/ ')
        'full-name'
        >>> normalise_path(None)
        ''
    """
    path = (path or "").strip()
    if path.startswith("/"):
        path = path[1:]
    if path.endswith("/"):
        path = path[:-1]
    return path


def is_path_relative(path: Any) -> bool:
    """True for site-relative paths ('/x'), False for absolute or protocol-relative URLs."""
    if not isinstance(path, str) or not path:
        return False
    return path.startswith("/") and not path.startswith("//")


def redirect_path(target: str, query: Optional[Dict[str, Any]] = None) -> str:
    """Append non-empty query values to a path."""
    params = {k: v for k, v in (query or {}).items() if v is not None and v != ""}
    if not params:
        return target
    separator = "&" if "?" in target else "?"
    return f"{target}{separator}{urlencode(params)}"


def check_form_status(params: Optional[Dict[str, Any]]) -> Tuple[FormStatus, bool]:
    """
    Work out which definition to serve from route params.

    A 'state' param only exists on preview routes; anything other than
    'draft' there previews the live definition.

    Returns:
        (status, is_preview)
    """
    state = (params or {}).get("state")
    is_preview = bool(state)

    if is_preview and state == FormStatus.DRAFT.value:
        return FormStatus.DRAFT, True

    return FormStatus.LIVE, is_preview


def check_email_address_for_live_form_submission(email_address: Optional[str], is_preview: bool) -> None:
    """
    Refuse to serve a live form that cannot route its submissions.

    Raises:
        InvalidConfigurationError: If no address and not a preview
    """
    if not email_address and not is_preview:
        raise InvalidConfigurationError(
            "An email address is required to complete the form submission"
        )


def proceed(request: FormRequest, next_url: str, allow_return: bool = True) -> Redirect:
    """
    Redirect to the next page, or back to `returnUrl` when allowed.

    The return URL is honoured only for continue/validate actions and only
    when it is site-relative. POST requests get 303 so the browser re-GETs.

    Args:
        request: Current request
        next_url: Where to go when not returning
        allow_return: False to always go to next_url
    """
    payload = request.payload or {}
    return_url = request.query.get("returnUrl")

    is_return_allowed = allow_return and payload.get("action") in (
        FormAction.CONTINUE.value,
        FormAction.VALIDATE.value,
    )

    if is_return_allowed and is_path_relative(return_url):
        location = return_url
    else:
        location = redirect_path(next_url)

    status_code = 303 if request.method == "post" else 302
    logger.debug(f"Redirecting ({status_code}) to {location}")
    return Redirect(location=location, status_code=status_code)
