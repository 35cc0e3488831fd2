"""
Form Model - compiled form definition and reference relevance engine

Responsibilities:
- Compile a form definition (pages, transitions, conditions) into pages
- Evaluate DSL conditions against session state
- Compute the relevant path: the furthest page the user may reach
- Handle GET/POST for question, summary and status pages

Design principles:
- Deterministic: same definition + state always gives the same path
- Fail fast: validate the definition on construction
- State access goes through the injected StateStore (no caching here)

Definition shape:
    {
        "name": "Tax form",
        "startPage": "/full-name",
        "outputEmail": "forms@example.gov",
        "metadata": {"referenceNumberPrefix": "TAX"},
        "conditions": {"is_uk": {"eq": ["country", "uk"]}},
        "pages": [
            {"path": "/full-name", "title": "Your name",
             "components": [{"name": "fullName", "required": true}],
             "next": [{"path": "/country"}]},
            {"path": "/country", "components": [{"name": "country"}],
             "next": [{"path": "/postcode", "condition": "is_uk"},
                      {"path": "/summary"}]},
            {"path": "/summary", "controller": "SummaryPageController"},
            {"path": "/status", "controller": "StatusPageController"}
        ]
    }

Transitions are tried in order; the first whose condition holds wins.
A transition without a condition always holds.
"""

import logging
from typing import Any, Dict, List, Optional

from form_engine.contracts import (
    REFERENCE_NUMBER_KEY,
    FlashMessage,
    FormContext,
    FormRequest,
    FormSubmissionError,
)
from form_engine.errors import InvalidConfigurationError
from form_engine.results import PageView, Redirect
from form_engine.utils.helpers import (
    PREVIEW_PATH_PREFIX,
    FormAction,
    normalise_path,
    proceed,
    redirect_path,
)
from form_engine.utils.merge import merge

logger = logging.getLogger(__name__)

SUMMARY_CONTROLLER = "SummaryPageController"
STATUS_CONTROLLER = "StatusPageController"
DEFAULT_SUMMARY_PATH = "/summary"
DEFAULT_STATUS_PATH = "/status"


def evaluate_dsl(dsl: Optional[dict], state: dict) -> bool:
    """
    Evaluate a DSL condition structure against state.

    Supports: all, any, eq, ne, is_true, is_false, exists, contains_lower,
    gt, gte, lt, lte. Missing fields evaluate to False.

    Args:
        dsl: DSL condition dict
        state: Form session state

    Returns:
        bool: Evaluation result
    """
    if not dsl:
        return True  # Empty condition is vacuously true

    if "all" in dsl:
        return all(evaluate_dsl(sub, state) for sub in dsl["all"])

    if "any" in dsl:
        return any(evaluate_dsl(sub, state) for sub in dsl["any"])

    if "eq" in dsl:
        field, expected = dsl["eq"]
        return state.get(field) == expected

    if "ne" in dsl:
        field, expected = dsl["ne"]
        return state.get(field) != expected

    if "is_true" in dsl:
        return state.get(dsl["is_true"]) is True

    if "is_false" in dsl:
        return state.get(dsl["is_false"]) is False

    if "exists" in dsl:
        field = dsl["exists"]
        return state.get(field) is not None

    if "contains_lower" in dsl:
        field, substring = dsl["contains_lower"]
        value = state.get(field)
        if isinstance(value, (list, tuple)):
            return any(isinstance(v, str) and substring.lower() in v.lower() for v in value)
        if not isinstance(value, str):
            return False
        return substring.lower() in value.lower()

    for operator, compare in (
        ("gte", lambda a, b: a >= b),
        ("gt", lambda a, b: a > b),
        ("lte", lambda a, b: a <= b),
        ("lt", lambda a, b: a < b),
    ):
        if operator in dsl:
            field, threshold = dsl[operator]
            value = state.get(field)
            if value is None:
                return False
            try:
                return compare(float(value), float(threshold))
            except (TypeError, ValueError):
                return False

    logger.warning(f"Unknown DSL operator: {list(dsl.keys())}")
    return False


class PageController:
    """A question page: collects component values and moves on."""

    def __init__(self, model: "FormModel", page_def: dict):
        self.model = model
        self.page_def = page_def
        self.path = f"/{normalise_path(page_def['path'])}"
        self.title = page_def.get("title", "")
        self.components: List[dict] = page_def.get("components", [])
        self.next: List[dict] = page_def.get("next", [])

    @property
    def field_names(self) -> List[str]:
        return [c["name"] for c in self.components]

    @property
    def href(self) -> str:
        return self.get_href(self.path)

    def get_href(self, path: str) -> str:
        return f"/{self.model.base_path}/{normalise_path(path)}"

    def get_summary_path(self) -> str:
        return self.model.summary_path

    def get_status_path(self) -> str:
        return self.model.status_path

    def get_start_path(self) -> str:
        return self.model.start_path

    def get_relevant_path(self, request: FormRequest, context: FormContext) -> str:
        return context.paths[-1] if context.paths else self.model.start_path

    # ========================
    # State (thin delegation)
    # ========================

    def get_state(self, request: FormRequest) -> Dict[str, Any]:
        return self.model.services.state_store.get_state(request)

    def merge_state(self, request: FormRequest, state: Dict[str, Any],
                    update: Dict[str, Any]) -> Dict[str, Any]:
        return self.model.services.state_store.merge_state(request, state, update)

    # ========================
    # Relevance
    # ========================

    def is_answered(self, state: dict) -> bool:
        """True when every required component has a value."""
        for component in self.components:
            if not component.get("required", True):
                continue
            value = state.get(component["name"])
            if value is None or value == "" or value == []:
                return False
        return True

    def select_next(self, state: dict) -> Optional[str]:
        """First transition whose condition holds, None if terminal."""
        for transition in self.next:
            if self.model.evaluate_condition(transition.get("condition"), state):
                return f"/{normalise_path(transition['path'])}"
        return None

    # ========================
    # Handlers
    # ========================

    def handle_get(self, request: FormRequest, context: FormContext) -> PageView:
        return PageView(
            page_path=self.path,
            title=self.title,
            components=self.field_names,
            values={name: context.state.get(name) for name in self.field_names},
            errors=[error.to_json() for error in context.errors],
            reference_number=context.reference_number or "",
            data=context.data
        )

    def validate(self, values: dict) -> List[FormSubmissionError]:
        errors = []
        for component in self.components:
            name = component["name"]
            value = values.get(name)
            if component.get("required", True) and (value is None or value == "" or value == []):
                label = component.get("title") or name
                errors.append(FormSubmissionError(
                    path=(name,),
                    href=f"#{name}",
                    name=name,
                    text=f"Enter {label}"
                ))
        return errors

    def handle_post(self, request: FormRequest, context: FormContext) -> Redirect:
        """
        Validate, store and move on.

        Invalid input is flashed and the browser redirected back to this
        page (post-redirect-get).
        """
        services = self.model.services
        payload = request.payload or {}
        action = payload.get("action", FormAction.CONTINUE.value)

        values = {}
        for component in self.components:
            value = payload.get(component["name"])
            if isinstance(value, str):
                value = value.strip()
            values[component["name"]] = value

        # Saving never validates: keep whatever was filled in
        if action == FormAction.SAVE_AND_EXIT.value:
            answered = {
                name: value for name, value in values.items()
                if value is not None and value != "" and value != []
            }
            return self.save_and_exit(request, merge(context.state, answered))

        errors = self.validate(values)
        if errors:
            services.flash.set_flash(request, FlashMessage(errors=tuple(errors)))
            return Redirect(location=redirect_path(self.href, request.query), status_code=303)

        state = self.merge_state(request, context.state, values)

        next_path = self.select_next(state) or self.get_summary_path()
        return proceed(request, self.get_href(next_path))

    def save_and_exit(self, request: FormRequest, state: dict) -> Redirect:
        """
        Hand the state to the persister and drop the cached copy.

        Raises:
            InvalidConfigurationError: If no persister is configured
        """
        strategy = self.model.services.strategy

        if not strategy.can_save_and_exit:
            raise InvalidConfigurationError("Server misconfigured for save and exit")

        strategy.session_persister(state, request)
        self.model.services.state_store.clear_state(request)
        logger.info(f"Saved and exited at {self.path}")

        return Redirect(location=self.get_href("/exit"), status_code=303)


class SummaryPageController(PageController):
    """Check-your-answers page. POST submits the form."""

    def handle_get(self, request: FormRequest, context: FormContext) -> PageView:
        answers = {k: v for k, v in context.relevant_state.items() if k != REFERENCE_NUMBER_KEY}
        return PageView(
            page_path=self.path,
            title=self.title or "Check your answers",
            values=answers,
            errors=[error.to_json() for error in context.errors],
            reference_number=context.reference_number or "",
            data=context.data
        )

    def handle_post(self, request: FormRequest, context: FormContext) -> Redirect:
        services = self.model.services

        services.confirmation.set_confirmation_state(request, {"confirmed": True})
        services.state_store.clear_state(request, purge=True)
        logger.info(f"Form submitted with reference {context.reference_number}")

        return proceed(request, self.get_href(self.get_status_path()), allow_return=False)


class StatusPageController(PageController):
    """Submitted-confirmation page. Always reachable, guarded by confirmation state."""

    def get_relevant_path(self, request: FormRequest, context: FormContext) -> str:
        return self.get_status_path()

    def handle_get(self, request: FormRequest, context: FormContext):
        services = self.model.services
        confirmation_state = services.confirmation.get_confirmation_state(request)

        # Not submitted yet: back to the start of the form
        if not confirmation_state.get("confirmed"):
            return proceed(request, self.get_href(self.get_start_path()), allow_return=False)

        metadata = services.forms_service.get_form_metadata(request.params.get("slug", ""))

        return PageView(
            page_path=self.path,
            title=self.title or "Form submitted",
            data={**context.data, "submissionGuidance": metadata.submission_guidance}
        )

    def handle_post(self, request: FormRequest, context: FormContext) -> Redirect:
        return Redirect(location=self.href, status_code=303)


CONTROLLERS = {
    SUMMARY_CONTROLLER: SummaryPageController,
    STATUS_CONTROLLER: StatusPageController,
}


class FormModel:
    """
    Compiled form definition.

    Stateless apart from the definition: all answers come from the state
    passed in, so one instance serves every session.
    """

    def __init__(self, definition: dict, base_path: str, services):
        """
        Args:
            definition: Form definition dict (see module docstring)
            base_path: Routing base without leading slash,
                       e.g. 'tax-form' or 'preview/draft/tax-form'
            services: FormEngine bundle (state_store, flash, confirmation,
                      strategy, forms_service)

        Raises:
            ValueError: If the definition is invalid
        """
        self.definition = definition
        self.base_path = base_path
        self.services = services
        self.name = definition.get("name", "")
        self.metadata: Dict[str, Any] = definition.get("metadata") or {}
        self.conditions: Dict[str, dict] = definition.get("conditions", {})
        self.is_preview = f"{PREVIEW_PATH_PREFIX}/" in f"/{base_path}"

        self._validate_definition()

        self.pages: List[PageController] = [
            CONTROLLERS.get(page_def.get("controller"), PageController)(self, page_def)
            for page_def in definition["pages"]
        ]

        start = definition.get("startPage") or definition["pages"][0]["path"]
        self.start_path = f"/{normalise_path(start)}"
        self.summary_path = self._controller_path(SUMMARY_CONTROLLER, DEFAULT_SUMMARY_PATH)
        self.status_path = self._controller_path(STATUS_CONTROLLER, DEFAULT_STATUS_PATH)

        logger.info(f"Form model built for '{self.name}' at /{base_path} with {len(self.pages)} pages")

    @property
    def reference_number_prefix(self) -> Any:
        return self.metadata.get("referenceNumberPrefix", "")

    def _controller_path(self, controller: str, default: str) -> str:
        for page in self.pages:
            if page.page_def.get("controller") == controller:
                return page.path
        return default

    def find_page(self, path: Optional[str]) -> Optional[PageController]:
        find_path = f"/{normalise_path(path)}"
        for page in self.pages:
            if page.path == find_path:
                return page
        return None

    def evaluate_condition(self, condition: Any, state: dict) -> bool:
        """Evaluate a named condition or an inline DSL dict."""
        if condition is None:
            return True

        if isinstance(condition, dict):
            return evaluate_dsl(condition, state)

        condition_def = self.conditions.get(condition)
        if condition_def is None:
            logger.warning(f"Unknown condition: {condition}")
            return False

        return evaluate_dsl(condition_def, state)

    def get_form_context(self, request: FormRequest, state: Dict[str, Any],
                         errors: Optional[List[FormSubmissionError]] = None) -> FormContext:
        """
        Walk the form from the start page along the condition-selected
        transitions, stopping at the first unanswered page or a terminal page.

        `paths` also stops at the requested page, so earlier pages stay
        reachable; `relevant_state` covers the whole walk.
        """
        current_path = f"/{normalise_path(request.params.get('path'))}"
        paths: List[str] = []
        visited: List[str] = []
        relevant_state: Dict[str, Any] = {}
        page = self.find_page(self.start_path)

        while page is not None and page.path not in visited:
            visited.append(page.path)

            if current_path not in paths:
                paths.append(page.path)

            if not page.is_answered(state):
                break

            for name in page.field_names:
                if name in state:
                    relevant_state[name] = state[name]

            next_path = page.select_next(state)
            if next_path is None:
                break

            page = self.find_page(next_path)

        is_force_access = self.is_preview and "force" in request.query

        return FormContext(
            state=state,
            errors=list(errors or []),
            is_force_access=is_force_access,
            data={},
            relevant_state=relevant_state,
            paths=paths,
            reference_number=state.get(REFERENCE_NUMBER_KEY)
        )

    def _validate_definition(self) -> None:
        """
        Validate definition structure on construction.

        Checks:
        - pages exist and every page has a path
        - no duplicate page paths
        - every transition targets a defined page
        - every named condition reference exists
        - startPage (if given) is a defined page

        Raises:
            ValueError: If validation fails
        """
        errors = []
        pages = self.definition.get("pages")

        if not pages:
            raise ValueError("Form definition validation failed:\n  - Missing 'pages'")

        paths = set()
        for i, page_def in enumerate(pages):
            if "path" not in page_def:
                errors.append(f"Page at index {i} missing 'path'")
                continue
            path = f"/{normalise_path(page_def['path'])}"
            if path in paths:
                errors.append(f"Duplicate page path '{path}'")
            paths.add(path)

        for page_def in pages:
            for transition in page_def.get("next", []):
                target = f"/{normalise_path(transition.get('path'))}"
                if target not in paths:
                    errors.append(f"Page '{page_def.get('path')}' links to undefined page '{target}'")

                condition = transition.get("condition")
                if isinstance(condition, str) and condition not in self.conditions:
                    errors.append(
                        f"Page '{page_def.get('path')}' references undefined condition '{condition}'"
                    )

        start = self.definition.get("startPage")
        if start and f"/{normalise_path(start)}" not in paths:
            errors.append(f"startPage '{start}' is not a defined page")

        if errors:
            raise ValueError("Form definition validation failed:\n  - " + "\n  - ".join(errors))
