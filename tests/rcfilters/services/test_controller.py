from __future__ import annotations

import asyncio
import json

import pytest

from rcfilters.config.model import ControllerSettings
from rcfilters.core.base_state import minimize
from rcfilters.core.filters_model import FiltersModel
from rcfilters.core.results import NO_RESULTS, ResultsState
from rcfilters.core.saved_queries import SavedQueriesModel
from rcfilters.core.taxonomy import DEFAULT_VIEW, NAMESPACES_VIEW, build_taxonomy
from rcfilters.services.controller import FiltersController
from rcfilters.services.fetch_coordinator import ResultsTransport
from rcfilters.services.location import InMemoryLocation
from rcfilters.services.storage import InMemoryPreferenceStore
from rcfilters.services.tracking import HIGHLIGHT_TOPIC, RecordingTracker, Tracker

PREF_KEY = "rcfilters-saved-queries"


class RecordingTransport(ResultsTransport):
    def __init__(self):
        self.calls = []

    async def fetch(self, query):
        self.calls.append(dict(query))
        return "rows:" + "&".join(f"{k}={v}" for k, v in sorted(query.items()))


class GatedTransport(ResultsTransport):
    """Fetches block until the test releases them, in call order."""

    def __init__(self):
        self.calls = []
        self.gates = []

    async def fetch(self, query):
        gate = asyncio.Event()
        self.calls.append(dict(query))
        self.gates.append(gate)
        await gate.wait()
        return "rows:" + "&".join(f"{k}={v}" for k, v in sorted(query.items()))


class UnreadableStore(InMemoryPreferenceStore):
    def get(self, key):
        raise PermissionError(13, "Permission denied", key)


class BrokenTracker(Tracker):
    def track(self, topic, data):
        raise RuntimeError("telemetry down")


def _make_taxonomy():
    return build_taxonomy(
        [
            {"name": "significance", "filters": [{"name": "hideminor"}, {"name": "hidebots"}]},
            {
                "name": "lastrevision",
                "type": "single_option",
                "filters": [{"name": "all", "default": True}, {"name": "latest"}],
            },
        ],
        namespaces={"0": "", "1": "Talk"},
    )


def _make_controller(search="", preferences=None, transport=None, tracker=None, settings=None):
    controller = FiltersController(
        FiltersModel(),
        SavedQueriesModel(),
        ResultsState(),
        location=InMemoryLocation(search),
        preferences=InMemoryPreferenceStore(preferences),
        transport=transport or RecordingTransport(),
        tracker=tracker or RecordingTracker(),
        settings=settings,
    )
    return controller


def _blob(queries, default=None):
    return {PREF_KEY: json.dumps({"queries": queries, "default": default})}


def _selected(controller):
    return {name for name, value in controller.filters_model.get_selected_state().items() if value}


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

def test_codec_is_unavailable_before_initialize():
    controller = _make_controller()

    with pytest.raises(RuntimeError):
        controller.codec


def test_initialize_without_default_adopts_url_and_rendered_results():
    controller = _make_controller("?hidebots=1&days=30&urlversion=2")

    task = controller.initialize(_make_taxonomy(), rendered_results="<ul>first paint</ul>")

    assert task is None
    assert controller.fetcher.epoch == 0
    assert controller.initializing is False
    assert _selected(controller) == {"hidebots", "lastrevision__all"}
    assert controller.results.payload == "<ul>first paint</ul>"
    assert controller.filters_model.current_view == DEFAULT_VIEW


def test_initialize_with_default_but_recognized_url_ignores_default():
    preferences = _blob({"q1": {"label": "Minor", "data": {"filters": {"hideminor": True}}}}, default="q1")
    controller = _make_controller("?hidebots=1", preferences=preferences)

    controller.initialize(_make_taxonomy(), rendered_results="<ul>rows</ul>")

    assert controller.fetcher.epoch == 0
    assert _selected(controller) == {"hidebots", "lastrevision__all"}
    assert controller.results.payload == "<ul>rows</ul>"


def test_initialize_without_anything_leaves_base_state_and_no_results():
    controller = _make_controller()

    controller.initialize(_make_taxonomy())

    assert controller.filters_model.snapshot() == controller.base_state
    assert controller.results.payload == NO_RESULTS
    assert controller.location.history == [{}]


@pytest.mark.asyncio
async def test_initialize_applies_default_query_with_exactly_one_fetch():
    transport = RecordingTransport()
    preferences = _blob({"q1": {"label": "Bots", "data": {"filters": {"hidebots": True}}}}, default="q1")
    controller = _make_controller("?days=30", preferences=preferences, transport=transport)

    task = controller.initialize(_make_taxonomy())
    await controller.settle()

    assert task is not None
    assert len(transport.calls) == 1
    assert transport.calls[0] == {"days": "30", "hidebots": "1", "urlversion": "2"}
    assert controller.location.query() == {"days": "30", "hidebots": "1", "urlversion": "2"}
    assert _selected(controller) == {"hidebots", "lastrevision__all"}
    assert controller.results.payload == "rows:days=30&hidebots=1&urlversion=2"


@pytest.mark.parametrize("raw", ["{not json", json.dumps({"queries": []}), json.dumps(["q"])])
def test_malformed_preferences_are_treated_as_empty(raw):
    controller = _make_controller(preferences={PREF_KEY: raw})

    controller.initialize(_make_taxonomy())

    assert len(controller.saved_queries) == 0
    assert controller.saved_queries.get_default() is None


def test_legacy_highlight_key_matches_canonical_one():
    legacy = {"filters": {}, "highlights": {"highlights": True, "hideminor": "c1"}, "invert": False}
    canonical = {"filters": {}, "highlights": {"highlight": True, "hideminor": "c1"}, "invert": False}
    preferences = _blob({
        "legacy": {"label": "Old", "data": legacy},
        "canonical": {"label": "New", "data": canonical},
    })
    controller = _make_controller(preferences=preferences)
    controller.initialize(_make_taxonomy())

    legacy_query = controller.saved_queries.get_item_by_id("legacy")
    canonical_query = controller.saved_queries.get_item_by_id("canonical")

    assert legacy_query.data == canonical_query.data
    assert legacy_query.data.highlight_enabled is True


def test_restore_adopts_url_without_default_query_or_fetch():
    preferences = _blob({"q1": {"label": "Bots", "data": {"filters": {"hidebots": True}}}}, default="q1")
    controller = _make_controller("?urlversion=2", preferences=preferences)

    controller.restore(_make_taxonomy())

    assert controller.fetcher.epoch == 0
    assert controller.filters_model.snapshot() == controller.base_state


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_save_empty_and_apply_saved_query():
    transport = RecordingTransport()
    controller = _make_controller(transport=transport)
    controller.initialize(_make_taxonomy())

    controller.set_filter_selected("hideminor", True)
    state = controller.filters_model.get_selected_state()
    assert state["hideminor"] is True
    assert state["hidebots"] is False
    assert minimize(controller.filters_model.snapshot(), controller.base_state).filters == {"hideminor": True}

    query_id = controller.save_current_query("A")

    controller.empty_all_filters()
    assert controller.filters_model.get_item_by_name("hideminor").selected is False
    assert controller.find_matching_saved_query() is None

    controller.apply_saved_query(query_id)
    await controller.settle()

    assert controller.filters_model.get_item_by_name("hideminor").selected is True
    assert controller.find_matching_saved_query() == query_id
    assert controller.location.query() == {"hideminor": "1", "urlversion": "2"}
    assert len(transport.calls) == 3
    assert controller.results.payload == "rows:hideminor=1&urlversion=2"


@pytest.mark.asyncio
async def test_set_filter_selected_pushes_url_and_keeps_unknown_params():
    controller = _make_controller("?days=30&urlversion=2")
    controller.initialize(_make_taxonomy())

    task = controller.set_filter_selected("hidebots", True)
    assert controller.results.loading is True
    await task

    assert controller.location.query() == {"days": "30", "hidebots": "1", "urlversion": "2"}
    assert len(controller.location.history) == 2
    assert controller.results.loading is False


def test_unknown_or_unchanged_filter_is_a_no_op():
    controller = _make_controller()
    controller.initialize(_make_taxonomy())

    assert controller.set_filter_selected("nope", True) is None
    assert controller.set_filter_selected("hidebots", False) is None
    assert controller.clear_filter("nope") is None
    assert controller.clear_filter("hidebots") is None
    assert controller.fetcher.epoch == 0
    assert len(controller.location.history) == 1


@pytest.mark.asyncio
async def test_clear_selected_and_highlighted_filter_fetches_and_tracks():
    tracker = RecordingTracker()
    controller = _make_controller(tracker=tracker)
    controller.initialize(_make_taxonomy())
    controller.set_filter_selected("hideminor", True)
    controller.set_highlight_color("hideminor", "c1")
    epoch = controller.fetcher.epoch

    task = controller.clear_filter("hideminor")
    await controller.settle()

    assert task is not None
    assert controller.fetcher.epoch == epoch + 1
    item = controller.filters_model.get_item_by_name("hideminor")
    assert item.selected is False
    assert item.highlight_color is None
    assert tracker.events[-1]["action"] == "clear"
    assert tracker.events[-1]["filters"] == [{"name": "hideminor"}]


def test_clear_highlight_only_updates_url_without_fetch():
    tracker = RecordingTracker()
    controller = _make_controller(tracker=tracker)
    controller.initialize(_make_taxonomy())
    controller.set_highlight_color("hidebots", "c2")

    assert controller.clear_filter("hidebots") is None

    assert controller.fetcher.epoch == 0
    assert "hidebots_color" not in controller.location.query()
    assert [e["action"] for e in tracker.events] == ["set", "clear"]


@pytest.mark.asyncio
async def test_empty_all_filters_tracks_cleared_highlights():
    tracker = RecordingTracker()
    controller = _make_controller("?hideminor=1&hideminor_color=c1&hidebots_color=c3&urlversion=2", tracker=tracker)
    controller.initialize(_make_taxonomy())

    controller.empty_all_filters()
    await controller.settle()

    assert controller.filters_model.get_highlighted_items() == []
    assert controller.location.query() == {"urlversion": "2"}
    event = tracker.events[-1]
    assert event["topic"] == HIGHLIGHT_TOPIC
    assert event["action"] == "clearAll"
    assert event["filters"] == [{"name": "hideminor"}, {"name": "hidebots"}]


@pytest.mark.asyncio
async def test_empty_all_filters_tracks_even_without_highlights():
    tracker = RecordingTracker()
    controller = _make_controller(tracker=tracker)
    controller.initialize(_make_taxonomy())

    controller.empty_all_filters()
    await controller.settle()

    assert tracker.events[-1]["action"] == "clearAll"
    assert tracker.events[-1]["filters"] == []


@pytest.mark.asyncio
async def test_toggle_namespace_inversion_fetches():
    transport = RecordingTransport()
    controller = _make_controller("?namespaces=1", transport=transport)
    controller.initialize(_make_taxonomy())

    controller.toggle_namespace_inversion()
    await controller.settle()

    assert controller.location.query() == {"namespaces": "1", "invert": "1", "urlversion": "2"}
    assert transport.calls[-1]["invert"] == "1"


@pytest.mark.asyncio
async def test_reset_to_defaults_uses_default_saved_query():
    preferences = _blob({"q1": {"label": "Bots", "data": {"filters": {"hidebots": True}}}}, default="q1")
    controller = _make_controller("?hideminor=1", preferences=preferences)
    controller.initialize(_make_taxonomy())
    assert _selected(controller) == {"hideminor", "lastrevision__all"}

    controller.reset_to_defaults()
    await controller.settle()
    assert _selected(controller) == {"hidebots", "lastrevision__all"}

    controller.set_default_saved_query(None)
    controller.reset_to_defaults()
    await controller.settle()
    assert controller.filters_model.snapshot() == controller.base_state


# ---------------------------------------------------------------------------
# Highlights
# ---------------------------------------------------------------------------

def test_highlight_operations_never_fetch():
    tracker = RecordingTracker()
    controller = _make_controller(tracker=tracker)
    controller.initialize(_make_taxonomy())

    controller.toggle_highlight_enabled()
    controller.set_highlight_color("hidebots", "c2")
    controller.clear_highlight_color("hidebots")
    controller.set_highlight_color("hideminor", "c4")

    assert controller.fetcher.epoch == 0
    assert controller.location.query() == {"highlight": "1", "hideminor_color": "c4", "urlversion": "2"}
    assert [e["action"] for e in tracker.events] == ["enable", "set", "clear", "set"]
    assert tracker.events[1]["filters"] == [{"name": "hidebots", "color": "c2"}]
    assert tracker.events[0]["userId"] == 0


def test_colors_survive_disabling_highlights():
    controller = _make_controller()
    controller.initialize(_make_taxonomy())
    controller.toggle_highlight_enabled()
    controller.set_highlight_color("hidebots", "c2")

    controller.toggle_highlight_enabled()

    assert controller.filters_model.is_highlight_enabled() is False
    assert controller.filters_model.get_item_by_name("hidebots").highlight_color == "c2"
    assert controller.location.query() == {"hidebots_color": "c2", "urlversion": "2"}


def test_highlight_on_unknown_filter_is_a_no_op():
    tracker = RecordingTracker()
    controller = _make_controller(tracker=tracker)
    controller.initialize(_make_taxonomy())

    controller.set_highlight_color("nope", "c1")
    controller.clear_highlight_color("nope")

    assert tracker.events == []
    assert len(controller.location.history) == 1


def test_tracking_failures_do_not_break_operations():
    controller = _make_controller(tracker=BrokenTracker())
    controller.initialize(_make_taxonomy())

    controller.set_highlight_color("hidebots", "c2")

    assert controller.location.query()["hidebots_color"] == "c2"


# ---------------------------------------------------------------------------
# Saved queries persistence
# ---------------------------------------------------------------------------

def test_saved_queries_are_persisted_minimized():
    controller = _make_controller("?hidebots=1")
    controller.initialize(_make_taxonomy())

    query_id = controller.save_current_query("Bots")
    controller.set_default_saved_query(query_id)

    stored = json.loads(controller.preferences.get(PREF_KEY))
    assert stored == {
        "queries": {
            query_id: {
                "label": "Bots",
                "data": {"filters": {"hidebots": True}, "highlights": {"highlight": False}, "invert": False},
            }
        },
        "default": query_id,
    }


def test_save_without_label_uses_default_label():
    controller = _make_controller()
    controller.initialize(_make_taxonomy())

    query_id = controller.save_current_query()

    assert controller.saved_queries.get_item_by_id(query_id).label == "Saved filters"


@pytest.mark.asyncio
async def test_rename_and_remove_persist():
    preferences = _blob({"q1": {"label": "Bots", "data": {"filters": {"hidebots": True}}}}, default="q1")
    controller = _make_controller(preferences=preferences)
    controller.initialize(_make_taxonomy())

    controller.rename_saved_query("q1", "Robots")
    assert json.loads(controller.preferences.get(PREF_KEY))["queries"]["q1"]["label"] == "Robots"

    controller.remove_saved_query("q1")
    assert json.loads(controller.preferences.get(PREF_KEY)) == {"queries": {}, "default": None}


def test_oversized_blob_is_not_persisted():
    settings = ControllerSettings(max_preference_size=300)
    controller = _make_controller(settings=settings)
    controller.initialize(_make_taxonomy())

    controller.save_current_query("small")
    persisted = controller.preferences.get(PREF_KEY)
    assert persisted is not None

    controller.save_current_query("x" * 400)

    assert controller.preferences.get(PREF_KEY) == persisted
    assert len(controller.saved_queries) == 2


# ---------------------------------------------------------------------------
# URL handling
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sync_url_to_state_fetches_unless_told_otherwise():
    transport = RecordingTransport()
    controller = _make_controller(transport=transport)
    controller.initialize(_make_taxonomy())

    controller.location.push({"hidebots": "1", "urlversion": "2"})
    assert controller.sync_url_to_state(fetch=False) is None
    assert controller.filters_model.get_item_by_name("hidebots").selected is True
    assert controller.fetcher.epoch == 0

    controller.location.back()
    controller.sync_url_to_state()
    await controller.settle()

    assert controller.filters_model.get_item_by_name("hidebots").selected is False
    assert len(transport.calls) == 1


def test_refresh_url_only_replaces_current_entry():
    controller = _make_controller("?hideminor=1&hidebots=0&days=7")
    controller.initialize(_make_taxonomy())

    controller.refresh_url_only()

    assert controller.location.history == [{"days": "7", "hideminor": "1", "urlversion": "2"}]


def test_url_is_not_rewritten_when_state_is_unchanged():
    controller = _make_controller("?hideminor=1&urlversion=2")
    controller.initialize(_make_taxonomy())

    controller._update_url()

    assert len(controller.location.history) == 1


def test_legacy_url_is_always_rewritten():
    controller = _make_controller("?hideminor=1")
    controller.initialize(_make_taxonomy())

    controller._update_url()

    assert len(controller.location.history) == 2
    assert controller.location.query() == {"hideminor": "1", "urlversion": "2"}


@pytest.mark.asyncio
async def test_update_changes_list_merges_extra_params():
    transport = RecordingTransport()
    controller = _make_controller(transport=transport)
    controller.initialize(_make_taxonomy())

    await controller.update_changes_list({"limit": "50"})

    assert transport.calls == [{"urlversion": "2", "limit": "50"}]
    assert controller.location.query() == {"urlversion": "2", "limit": "50"}


@pytest.mark.asyncio
async def test_stale_fetch_does_not_overwrite_newer_results():
    transport = GatedTransport()
    controller = _make_controller(transport=transport)
    controller.initialize(_make_taxonomy())

    first = controller.set_filter_selected("hideminor", True)
    second = controller.set_filter_selected("hidebots", True)
    await asyncio.sleep(0)
    assert len(transport.gates) == 2

    transport.gates[1].set()
    await second
    transport.gates[0].set()
    assert await first is None

    assert controller.results.payload == "rows:hidebots=1&hideminor=1&urlversion=2"
    assert controller.results.epoch == 2


def test_switch_view():
    controller = _make_controller()
    controller.initialize(_make_taxonomy())

    controller.switch_view(NAMESPACES_VIEW)

    assert controller.filters_model.current_view == NAMESPACES_VIEW


# ---------------------------------------------------------------------------
# Consistency and robustness
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "saved_filters, expected",
    [
        ({"lastrevision__all": False}, {"lastrevision__all"}),
        ({"lastrevision__latest": True}, {"lastrevision__all"}),
        ({"lastrevision__all": False, "lastrevision__latest": True}, {"lastrevision__latest"}),
    ],
)
async def test_applied_saved_query_stays_encodable(saved_filters, expected):
    transport = RecordingTransport()
    preferences = _blob({"q1": {"label": "Odd", "data": {"filters": saved_filters}}})
    controller = _make_controller(preferences=preferences, transport=transport)
    controller.initialize(_make_taxonomy())

    controller.apply_saved_query("q1")
    await controller.settle()

    live = controller.filters_model.snapshot()
    assert {n for n in _selected(controller) if n.startswith("lastrevision")} == expected
    assert controller.codec.from_query(controller.location.query()) == live
    assert transport.calls[-1].get("lastrevision", "all") != ""

    controller.sync_url_to_state(fetch=False)
    assert controller.filters_model.snapshot() == live


def test_unreadable_preference_store_gives_empty_saved_queries():
    controller = FiltersController(
        FiltersModel(),
        SavedQueriesModel(),
        ResultsState(),
        location=InMemoryLocation("?hidebots=1"),
        preferences=UnreadableStore(),
        transport=RecordingTransport(),
        tracker=RecordingTracker(),
    )

    assert controller.initialize(_make_taxonomy()) is None

    assert len(controller.saved_queries) == 0
    assert controller.filters_model.get_item_by_name("hidebots").selected is True


@pytest.mark.asyncio
async def test_set_filters_selected_is_one_action():
    transport = RecordingTransport()
    controller = _make_controller(transport=transport)
    controller.initialize(_make_taxonomy())

    controller.set_filters_selected({"lastrevision__all": False, "lastrevision__latest": True, "hideminor": True})
    await controller.settle()

    assert _selected(controller) == {"hideminor", "lastrevision__latest"}
    assert len(transport.calls) == 1
    assert len(controller.location.history) == 2
    assert controller.location.query() == {"hideminor": "1", "lastrevision": "latest", "urlversion": "2"}


def test_set_filters_selected_without_changes_is_a_no_op():
    controller = _make_controller()
    controller.initialize(_make_taxonomy())

    assert controller.set_filters_selected({"hidebots": False, "nope": True, "lastrevision__all": False}) is None
    assert controller.fetcher.epoch == 0
    assert len(controller.location.history) == 1
