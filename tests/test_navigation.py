"""
Test NavigationResolver

Pages and models are simple fakes: the resolver only compares paths, the
relevance decision itself belongs to the model.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import Mock

import pytest

from form_engine.config import EngineConfig
from form_engine.contracts import (
    REFERENCE_NUMBER_KEY,
    FlashMessage,
    FormContext,
    FormRequest,
    FormSubmissionError,
)
from form_engine.core.flash_channel import FlashChannel
from form_engine.core.navigation import NavigationResolver, get_start_path
from form_engine.errors import InvalidConfigurationError, NotFoundError
from form_engine.results import Redirect
from form_engine.utils.kv_store import MemoryKeyValueStore
from form_engine.utils.merge import merge


class FakePage:

    def __init__(self, model, path, next=None):
        self.model = model
        self.path = path
        self.next = next if next is not None else []

    def get_state(self, request):
        return dict(self.model.state)

    def merge_state(self, request, state, update):
        self.model.state = merge(state, update)
        self.model.merge_calls.append(update)
        return self.model.state

    def get_relevant_path(self, request, context):
        return context.paths[-1]

    def get_summary_path(self):
        return "/summary"

    def get_href(self, path):
        return f"/tax-form{path}"


class FakeModel:
    """Relevant path is fixed by the test"""

    def __init__(self, relevant_path, force_access=False, prefix="TAX"):
        self.base_path = "tax-form"
        self.start_path = "/full-name"
        self.reference_number_prefix = prefix
        self.metadata = {"referenceNumberPrefix": prefix}
        self.relevant_path = relevant_path
        self.force_access = force_access
        self.state = {}
        self.merge_calls = []
        self.contexts = []
        self.pages = {
            "/full-name": FakePage(self, "/full-name", next=[{"path": "/country"}]),
            "/country": FakePage(self, "/country", next=[{"path": "/postcode"}]),
            "/postcode": FakePage(self, "/postcode", next=[{"path": "/summary"}]),
            "/items": FakePage(self, "/items", next=[{"path": "/summary"}]),
            "/summary": FakePage(self, "/summary"),
        }

    def find_page(self, path):
        return self.pages.get(path)

    def get_form_context(self, request, state, errors=None):
        context = FormContext(
            state=state,
            errors=list(errors or []),
            is_force_access=self.force_access,
            paths=["/full-name", self.relevant_path],
            reference_number=state.get(REFERENCE_NUMBER_KEY)
        )
        self.contexts.append(context)
        return context


def make_request(path, model, method="get", payload=None, query=None):
    return FormRequest(
        session_id="abc",
        params={"slug": "tax-form", "path": path},
        query=dict(query or {}),
        method=method,
        payload=payload,
        model=model
    )


@pytest.fixture
def flash():
    return FlashChannel(MemoryKeyValueStore(), EngineConfig())


@pytest.fixture
def resolver(flash):
    return NavigationResolver(flash, generate_reference=lambda prefix: f"{prefix}-ABC-123")


class TestDispatch:

    def test_relevant_page_invokes_handler_once(self, resolver):
        model = FakeModel("/country")
        request = make_request("country", model)
        handler = Mock(return_value="rendered")

        result = resolver.resolve(request, handler)

        assert result == "rendered"
        handler.assert_called_once()
        page, context = handler.call_args[0]
        assert page is model.pages["/country"]
        assert context is model.contexts[-1]
        assert "returnUrl" not in request.query

    def test_page_on_relevant_prefix_is_reachable(self, resolver):
        model = FakeModel("/items/3f2a")
        handler = Mock(return_value="rendered")

        assert resolver.resolve(make_request("items", model), handler) == "rendered"

    def test_force_access_bypasses_relevance(self, resolver):
        model = FakeModel("/full-name", force_access=True)
        handler = Mock(return_value="rendered")

        assert resolver.resolve(make_request("postcode", model), handler) == "rendered"


class TestRedirect:

    def test_skip_ahead_redirects_to_relevant_page(self, resolver):
        model = FakeModel("/country")
        request = make_request("postcode", model)
        handler = Mock()

        result = resolver.resolve(request, handler)

        assert result == Redirect(location="/tax-form/country", status_code=302)
        assert request.query["returnUrl"] == "/tax-form/summary"
        handler.assert_not_called()

    def test_terminal_relevant_page_sets_no_return_url(self, resolver):
        model = FakeModel("/summary")
        request = make_request("postcode", model)

        result = resolver.resolve(request, Mock())

        assert result.location == "/tax-form/summary"
        assert "returnUrl" not in request.query

    def test_post_redirect_is_303(self, resolver):
        model = FakeModel("/country")
        request = make_request("postcode", model, method="post", payload={"action": "continue"})

        result = resolver.resolve(request, Mock())

        assert result == Redirect(location="/tax-form/country", status_code=303)

    def test_redirect_ignores_incoming_return_url(self, resolver):
        model = FakeModel("/country")
        request = make_request(
            "postcode", model, method="post",
            payload={"action": "continue"}, query={"returnUrl": "/tax-form/elsewhere"}
        )

        result = resolver.resolve(request, Mock())

        assert result.location == "/tax-form/country"


class TestLookups:

    def test_no_model_raises_not_found(self, resolver):
        with pytest.raises(NotFoundError, match="No model found for /country"):
            resolver.resolve(make_request("country", None), Mock())

    def test_unknown_page_raises_not_found(self, resolver):
        with pytest.raises(NotFoundError, match="No page found for /nope"):
            resolver.resolve(make_request("nope", FakeModel("/country")), Mock())


class TestReferenceNumber:

    def test_assigned_on_first_visit(self, resolver):
        model = FakeModel("/full-name")
        handler = Mock()

        resolver.resolve(make_request("full-name", model), handler)

        assert model.merge_calls == [{REFERENCE_NUMBER_KEY: "TAX-ABC-123"}]
        context = handler.call_args[0][1]
        assert context.reference_number == "TAX-ABC-123"
        assert context.state[REFERENCE_NUMBER_KEY] == "TAX-ABC-123"

    def test_not_reassigned(self, flash):
        generate = Mock(return_value="TAX-ABC-123")
        resolver = NavigationResolver(flash, generate_reference=generate)
        model = FakeModel("/full-name")

        resolver.resolve(make_request("full-name", model), Mock())
        resolver.resolve(make_request("full-name", model), Mock())

        generate.assert_called_once_with("TAX")
        assert len(model.merge_calls) == 1

    def test_missing_prefix_is_empty_string(self, flash):
        generate = Mock(return_value="ABC-123-DEF")
        resolver = NavigationResolver(flash, generate_reference=generate)

        resolver.resolve(make_request("full-name", FakeModel("/full-name", prefix=None)), Mock())

        generate.assert_called_once_with("")

    def test_non_string_prefix_is_misconfiguration(self, resolver):
        model = FakeModel("/full-name", prefix=42)

        with pytest.raises(InvalidConfigurationError):
            resolver.resolve(make_request("full-name", model), Mock())

        assert model.merge_calls == []


class TestFlashErrors:

    def test_errors_consumed_once(self, resolver, flash):
        model = FakeModel("/full-name")
        error = FormSubmissionError(path=("fullName",), href="#fullName", name="fullName",
                                    text="Enter your full name")
        flash.set_flash(make_request("full-name", model), FlashMessage(errors=(error,)))

        resolver.resolve(make_request("full-name", model), Mock())
        resolver.resolve(make_request("full-name", model), Mock())

        assert model.contexts[0].errors == [error]
        assert model.contexts[1].errors == []


def test_dispatch_redirects_to_start(resolver):
    request = make_request("", FakeModel("/full-name"))

    assert resolver.dispatch(request) == Redirect(location="/tax-form/full-name", status_code=302)


def test_start_path_default():
    assert get_start_path(Mock(start_path="")) == "/start"
    assert get_start_path(Mock(start_path="/full-name/")) == "/full-name"
