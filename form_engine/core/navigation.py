"""
Navigation Resolver - is the requested page reachable right now?

Responsibilities:
- Look up the requested page in the model attached to the request
- Load session state and assign a reference number on first touch
- Consume queued flash errors
- Ask the relevance engine for the form context and relevant path
- Dispatch to the page handler, or redirect to the page the user is
  actually entitled to reach

Design principles:
- Used identically by GET and POST flows; only make_handler differs
- Any unresolved lookup aborts the request (NotFoundError), no partial
  rendering
- Branching rules are the relevance engine's business. This module only
  compares paths.
"""

import logging
from typing import Any, Callable

from form_engine.contracts import (
    REFERENCE_NUMBER_KEY,
    FormContext,
    FormRequest,
    Page,
)
from form_engine.core.flash_channel import FlashChannel
from form_engine.errors import InvalidConfigurationError, NotFoundError
from form_engine.utils.helpers import normalise_path, proceed
from form_engine.utils.reference_numbers import generate_unique_reference

logger = logging.getLogger(__name__)

MakeHandler = Callable[[Page, FormContext], Any]


def get_page(model, request: FormRequest) -> Page:
    """
    Find the requested page.

    Raises:
        NotFoundError: If the path is not a page of the model
    """
    path = request.params.get("path", "")
    page = model.find_page(f"/{normalise_path(path)}")

    if page is None:
        raise NotFoundError(f"No page found for /{path}")

    return page


def get_start_path(model) -> str:
    start_path = normalise_path(getattr(model, "start_path", ""))
    return f"/{start_path}" if start_path else "/start"


class NavigationResolver:
    """Per-request page dispatch or redirect."""

    def __init__(
        self,
        flash_channel: FlashChannel,
        generate_reference: Callable[[str], str] = generate_unique_reference
    ):
        """
        Args:
            flash_channel: Source of queued validation errors
            generate_reference: prefix -> reference number
        """
        self.flash = flash_channel
        self.generate_reference = generate_reference

    def resolve(self, request: FormRequest, make_handler: MakeHandler) -> Any:
        """
        Dispatch to `make_handler(page, context)` or redirect.

        Args:
            request: Current request, with the compiled model attached
            make_handler: Builds the response for a reachable page

        Returns:
            make_handler's result, or a Redirect to the relevant page

        Raises:
            NotFoundError: No model attached, or unknown page
            InvalidConfigurationError: Non-string reference number prefix
        """
        model = request.model

        if model is None:
            raise NotFoundError(f"No model found for /{request.params.get('path', '')}")

        page = get_page(model, request)
        state = page.get_state(request)

        if not state.get(REFERENCE_NUMBER_KEY):
            prefix = model.reference_number_prefix
            if prefix is None:
                prefix = ""

            if not isinstance(prefix, str):
                raise InvalidConfigurationError(
                    "Reference number prefix must be a string or undefined"
                )

            reference_number = self.generate_reference(prefix)
            logger.info(f"Assigned reference number {reference_number}")
            state = page.merge_state(request, state, {REFERENCE_NUMBER_KEY: reference_number})

        flash = self.flash.get_flash(request)
        errors = list(flash.errors) if flash else None

        context = model.get_form_context(request, state, errors)

        relevant_path = page.get_relevant_path(request, context)
        summary_path = page.get_summary_path()

        # Relevant pages, or preview-link direct access
        if relevant_path.startswith(page.path) or context.is_force_access:
            return make_handler(page, context)

        redirect_to = model.find_page(relevant_path)
        logger.info(f"Page {page.path} not reachable, redirecting to {relevant_path}")

        # Exit pages have no way back to the summary
        if redirect_to is not None and redirect_to.next:
            request.query["returnUrl"] = page.get_href(summary_path)

        return proceed(request, page.get_href(relevant_path), allow_return=False)

    def dispatch(self, request: FormRequest) -> Any:
        """Redirect a bare form URL to its start page."""
        model = request.model
        service_path = f"/{model.base_path}" if model is not None else ""
        return proceed(request, f"{service_path}{get_start_path(model)}")
