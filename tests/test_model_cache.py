"""
Test FormModelCache

Metadata is fetched on every load; the compiled model is rebuilt only when
the status block's updated_at changes.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from form_engine.contracts import FormMetadata, FormRequest
from form_engine.core.model_cache import FormModelCache, cache_key
from form_engine.errors import InvalidConfigurationError, NotFoundError

UPDATED = "2026-09-01T09:00:00+00:00"
DEFINITION = {"name": "Tax form", "pages": [{"path": "/full-name"}]}


def make_metadata(live=UPDATED, draft=None, email="forms@example.gov"):
    return FormMetadata(
        id="form-1",
        slug="tax-form",
        live={"updated_at": live} if live is not None else None,
        draft={"updated_at": draft} if draft is not None else None,
        notification_email=email
    )


class Harness:
    """Records fetches and builds"""

    def __init__(self, metadata, definition=DEFINITION):
        self.metadata = metadata
        self.definition = definition
        self.fetch_metadata = Mock(side_effect=lambda: self.metadata)
        self.fetch_definition = Mock(side_effect=lambda form_id, status: self.definition)
        self.build_model = Mock(side_effect=lambda definition, base_path: object())

    def load(self, cache, status="live", is_preview=False):
        return cache.load_model(
            "form-1", status, is_preview,
            self.fetch_metadata, self.fetch_definition, self.build_model
        )


def test_same_updated_at_builds_once():
    cache = FormModelCache()
    harness = Harness(make_metadata())

    first = harness.load(cache)
    second = harness.load(cache)

    assert first is second
    assert harness.build_model.call_count == 1
    assert harness.fetch_definition.call_count == 1
    assert harness.fetch_metadata.call_count == 2


def test_changed_updated_at_rebuilds():
    cache = FormModelCache()
    harness = Harness(make_metadata())

    first = harness.load(cache)
    harness.metadata = make_metadata(live="2026-09-02T09:00:00+00:00")
    second = harness.load(cache)

    assert first is not second
    assert harness.build_model.call_count == 2
    assert cache.get(cache_key("form-1", "live", False)).model is second


def test_timestamps_compare_by_value():
    cache = FormModelCache()
    harness = Harness(make_metadata(live=UPDATED))
    harness.load(cache)

    harness.metadata = make_metadata(live=datetime(2026, 9, 1, 9, 0, tzinfo=timezone.utc))
    harness.load(cache)

    assert harness.build_model.call_count == 1


def test_missing_status_raises_not_found():
    cache = FormModelCache()
    harness = Harness(make_metadata(live=None))

    with pytest.raises(NotFoundError, match="No 'live' state"):
        harness.load(cache)

    harness.fetch_definition.assert_not_called()
    assert len(cache) == 0


def test_missing_definition_raises_not_found():
    cache = FormModelCache()
    harness = Harness(make_metadata(), definition=None)

    with pytest.raises(NotFoundError, match="No definition found"):
        harness.load(cache)

    harness.build_model.assert_not_called()


def test_live_form_without_email_refused():
    cache = FormModelCache()
    harness = Harness(make_metadata(email=None))

    with pytest.raises(InvalidConfigurationError):
        harness.load(cache)

    harness.build_model.assert_not_called()


def test_preview_without_email_allowed():
    cache = FormModelCache()
    harness = Harness(make_metadata(email=None, draft=UPDATED))

    harness.load(cache, status="draft", is_preview=True)
    harness.load(cache, status="live", is_preview=True)

    assert harness.build_model.call_count == 2


def test_definition_output_email_is_fallback():
    cache = FormModelCache()
    harness = Harness(make_metadata(email=None), definition={**DEFINITION, "outputEmail": "a@b.gov"})

    harness.load(cache)

    assert harness.build_model.call_count == 1


def test_entries_separate_per_status_and_preview():
    cache = FormModelCache()
    harness = Harness(make_metadata(draft=UPDATED))

    live = harness.load(cache, "live", False)
    live_preview = harness.load(cache, "live", True)
    draft_preview = harness.load(cache, "draft", True)

    assert len({id(live), id(live_preview), id(draft_preview)}) == 3
    assert len(cache) == 3
    for key in ("form-1_live_false", "form-1_live_true", "form-1_draft_true"):
        assert cache.get(key) is not None, f"Missing cache entry {key}"


def test_base_paths():
    cache = FormModelCache()
    prefixed = FormModelCache(route_prefix="/forms/")

    assert cache.base_path("tax-form", "live", False) == "tax-form"
    assert cache.base_path("tax-form", "draft", True) == "preview/draft/tax-form"
    assert prefixed.base_path("tax-form", "live", False) == "forms/tax-form"
    assert prefixed.base_path("tax-form", "live", True) == "forms/preview/live/tax-form"


def test_build_receives_base_path():
    cache = FormModelCache()
    harness = Harness(make_metadata(draft=UPDATED))

    harness.load(cache, "draft", True)

    harness.build_model.assert_called_once_with(DEFINITION, "preview/draft/tax-form")


def test_caches_are_isolated():
    harness = Harness(make_metadata())

    harness.load(FormModelCache())
    harness.load(FormModelCache())

    assert harness.build_model.call_count == 2


def test_load_for_request_attaches_model():
    cache = FormModelCache()
    forms_service = Mock()
    forms_service.get_form_metadata.return_value = make_metadata(draft=UPDATED)
    forms_service.get_form_definition.return_value = DEFINITION
    built = object()
    request = FormRequest(session_id="abc", params={"slug": "tax-form", "state": "draft"})

    model = cache.load_for_request(request, forms_service, lambda definition, base_path: built)

    assert model is built
    assert request.model is built
    forms_service.get_form_metadata.assert_called_once_with("tax-form")
    forms_service.get_form_definition.assert_called_once_with("form-1", "draft")
    assert cache.get("form-1_draft_true") is not None


def test_empty_status_block_is_present():
    cache = FormModelCache()
    harness = Harness(FormMetadata(id="form-1", slug="tax-form", live={},
                                   notification_email="forms@example.gov"))

    harness.load(cache)

    harness.fetch_definition.assert_called_once_with("form-1", "live")
    assert harness.build_model.call_count == 1


def test_empty_definition_is_built():
    cache = FormModelCache()
    harness = Harness(make_metadata(), definition={})

    harness.load(cache)

    harness.build_model.assert_called_once_with({}, "tax-form")


def make_forms_service():
    forms_service = Mock()
    forms_service.get_form_metadata.return_value = make_metadata(draft=UPDATED)
    forms_service.get_form_definition.return_value = DEFINITION
    return forms_service


class TestOnRequestHook:

    def test_called_on_every_load(self):
        cache = FormModelCache()
        forms_service = make_forms_service()
        metadata = forms_service.get_form_metadata.return_value
        built = Mock(definition=DEFINITION)
        on_request = Mock()

        requests = [
            FormRequest(session_id="abc", params={"slug": "tax-form", "path": "full-name"})
            for _ in range(2)
        ]
        for request in requests:
            cache.load_for_request(request, forms_service, lambda definition, base_path: built,
                                   on_request=on_request)

        # Second load came from the cache but still ran the hook
        assert forms_service.get_form_definition.call_count == 1
        assert on_request.call_count == 2
        for call, request in zip(on_request.call_args_list, requests):
            assert call.args == (request, request.params, DEFINITION, metadata)

    def test_return_value_ignored(self):
        cache = FormModelCache()
        built = Mock(definition=DEFINITION)
        request = FormRequest(session_id="abc", params={"slug": "tax-form"})

        model = cache.load_for_request(request, make_forms_service(),
                                       lambda definition, base_path: built,
                                       on_request=Mock(return_value="something else"))

        assert model is built
        assert request.model is built

    def test_errors_propagate(self):
        cache = FormModelCache()
        request = FormRequest(session_id="abc", params={"slug": "tax-form"})

        with pytest.raises(RuntimeError, match="hook failed"):
            cache.load_for_request(request, make_forms_service(),
                                   lambda definition, base_path: Mock(definition=DEFINITION),
                                   on_request=Mock(side_effect=RuntimeError("hook failed")))

        assert request.model is None
