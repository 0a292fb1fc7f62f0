from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from rcfilters.config.model import ControllerSettings
from rcfilters.core.base_state import build_base_state, expand, minimize
from rcfilters.core.filter_state import FilterState
from rcfilters.core.filters_model import FiltersModel
from rcfilters.core.query_codec import CURRENT_VERSION, Query, QueryCodec
from rcfilters.core.results import NO_RESULTS, ResultsState
from rcfilters.core.saved_queries import SavedQueriesModel
from rcfilters.core.taxonomy import DEFAULT_VIEW, Taxonomy
from rcfilters.services.fetch_coordinator import FetchCoordinator, ResultsTransport
from rcfilters.services.location import QueryLocation
from rcfilters.services.storage import PreferenceStore
from rcfilters.services.tracking import HIGHLIGHT_TOPIC, LoggingTracker, Tracker
from rcfilters.validation.errors import ValidationError
from rcfilters.validation.saved_queries_validation import validate_saved_queries_dict

logger = logging.getLogger(__name__)

HighlightFilters = Union[str, Mapping[str, Any], List[Mapping[str, Any]]]


class FiltersController:
    """
    Keeps the live filter state, the textual query (URL) and the persisted
    saved queries in sync, and refreshes the results when the state changes.

    Local state changes are applied synchronously; operations that affect the
    results return the asyncio.Task of the fetch they issued (None if nothing
    was fetched). Fetches need a running event loop.
    """

    def __init__(
            self,
            filters_model: FiltersModel,
            saved_queries: SavedQueriesModel,
            results: ResultsState,
            *,
            location: QueryLocation,
            preferences: PreferenceStore,
            transport: ResultsTransport,
            tracker: Optional[Tracker] = None,
            settings: Optional[ControllerSettings] = None,
    ):
        self.filters_model = filters_model
        self.saved_queries = saved_queries
        self.results = results
        self.location = location
        self.preferences = preferences
        self.tracker = tracker or LoggingTracker()
        self.settings = settings or ControllerSettings()
        self.fetcher = FetchCoordinator(transport, results)

        self.base_state: Optional[FilterState] = None
        self._codec: Optional[QueryCodec] = None
        self.initializing = False

    @property
    def codec(self) -> QueryCodec:
        if self._codec is None:
            raise RuntimeError("FiltersController used before initialize()")
        return self._codec

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------
    def _prepare(self, taxonomy: Taxonomy) -> None:
        self.filters_model.initialize_filters(taxonomy)
        self.base_state = build_base_state(taxonomy)
        self._codec = QueryCodec(taxonomy, self.base_state)

        # Saved queries are persisted minimized; the model expands them
        # against the base state so they compare equal to live snapshots.
        self.saved_queries.initialize(self._load_saved_queries(), self.base_state)

    def _load_saved_queries(self) -> Dict[str, Any]:
        try:
            raw = self.preferences.get(self.settings.preference_key)
        except OSError as e:
            logger.warning("Could not read saved queries preference", extra={"error": str(e)})
            return {}
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            validate_saved_queries_dict(parsed)
        except (ValueError, ValidationError) as e:
            logger.warning("Ignoring malformed saved queries preference", extra={"error": str(e)})
            return {}
        return parsed

    def initialize(self, taxonomy: Taxonomy, rendered_results: Any = None) -> Optional[asyncio.Task]:
        """
        Build the models from the taxonomy and load the saved queries, then
        pick the startup path:

        - a default saved query exists and the URL has no recognized
          parameter: apply the default query as if chosen by the user
          (state replace + URL update + fetch)
        - otherwise adopt the URL (or the defaults) without fetching and take
          `rendered_results` (the first paint) as the current results
        """
        self._prepare(taxonomy)

        task = None
        self.initializing = True
        try:
            default_id = self.saved_queries.get_default()
            if default_id and not self.codec.contains_recognized(self.location.query()):
                logger.info("Applying default saved query", extra={"query_id": default_id})
                task = self.apply_saved_query(default_id)
            else:
                self.sync_url_to_state()
                self.results.update(rendered_results if rendered_results is not None else NO_RESULTS)
        finally:
            self.initializing = False

        self.switch_view(DEFAULT_VIEW)
        return task

    def restore(self, taxonomy: Taxonomy) -> None:
        """
        Rebuild the models and adopt the URL state as-is: no default query,
        no fetch. For hosts that re-create the controller on every request.
        """
        self._prepare(taxonomy)
        self.sync_url_to_state(fetch=False)

    def switch_view(self, view: str) -> None:
        self.filters_model.switch_view(view)

    # ------------------------------------------------------------------
    # Filter selection
    # ------------------------------------------------------------------
    def set_filter_selected(self, name: str, selected: Optional[bool] = None) -> Optional[asyncio.Task]:
        item = self.filters_model.get_item_by_name(name)
        if item is None:
            return None

        selected = (not item.selected) if selected is None else bool(selected)
        if item.selected == selected:
            return None

        if not self.filters_model.toggle_filter_selected(name, selected):
            return None

        self.filters_model.reassess_filter_interactions(item)
        return self.update_changes_list()

    def set_filters_selected(self, selection: Mapping[str, bool]) -> Optional[asyncio.Task]:
        """
        Apply several selection changes as one user action: one URL write and
        at most one fetch. Selections are applied before deselections so a
        single-option group can move its selection. Unknown names are ignored.
        """
        ordered = {name: True for name, value in selection.items() if value}
        ordered.update({name: False for name, value in selection.items() if not value})

        if not self.filters_model.toggle_filters_selected(ordered):
            return None

        self.filters_model.reassess_filter_interactions()
        return self.update_changes_list()

    def clear_filter(self, name: str) -> Optional[asyncio.Task]:
        """Clear both selection and highlight of one filter."""
        item = self.filters_model.get_item_by_name(name)
        if item is None:
            return None

        was_highlighted = item.is_highlighted()
        was_selected = item.selected
        if not (was_selected or was_highlighted):
            return None

        self.filters_model.clear_highlight_color(name)
        selection_changed = self.filters_model.toggle_filter_selected(name, False)
        self.filters_model.reassess_filter_interactions(item)

        task = None
        if selection_changed:
            task = self.update_changes_list()
        else:
            self._update_url()

        if was_highlighted:
            self._track_highlight("clear", name)
        return task

    def empty_all_filters(self) -> asyncio.Task:
        highlighted = [{"name": item.name} for item in self.filters_model.get_highlighted_items()]

        self.filters_model.empty_all_filters()
        self.filters_model.clear_all_highlight_colors()
        self.filters_model.reassess_filter_interactions()

        task = self.update_changes_list()
        self._track_highlight("clearAll", highlighted)
        return task

    def toggle_namespace_inversion(self) -> asyncio.Task:
        self.filters_model.toggle_inverted_namespaces()
        return self.update_changes_list()

    def reset_to_defaults(self) -> asyncio.Task:
        """Go back to the default saved query if there is one, else to the base state."""
        default = self.saved_queries.get_item_by_id(self.saved_queries.get_default())
        self._replace_state(default.data if default is not None else self.base_state)
        return self.update_changes_list()

    # ------------------------------------------------------------------
    # Highlights (display only: URL is updated, nothing is fetched)
    # ------------------------------------------------------------------
    def toggle_highlight_enabled(self) -> None:
        self.filters_model.toggle_highlight()
        self._update_url()
        enabled = self.filters_model.is_highlight_enabled()
        self._track_highlight("enable" if enabled else "disable", [])

    def set_highlight_color(self, name: str, color: str) -> None:
        if not self.filters_model.set_highlight_color(name, color):
            return
        self._update_url()
        self._track_highlight("set", {"name": name, "color": color})

    def clear_highlight_color(self, name: str) -> None:
        if self.filters_model.get_item_by_name(name) is None:
            return
        self.filters_model.clear_highlight_color(name)
        self._update_url()
        self._track_highlight("clear", name)

    # ------------------------------------------------------------------
    # Saved queries
    # ------------------------------------------------------------------
    def save_current_query(self, label: Optional[str] = None) -> str:
        minimal = minimize(self.filters_model.snapshot(), self.base_state)
        query_id = self.saved_queries.add_new_query(
            label or self.settings.default_label,
            expand(minimal, self.base_state),
        )
        self._save_saved_queries()
        return query_id

    def apply_saved_query(self, query_id: str) -> Optional[asyncio.Task]:
        query = self.saved_queries.get_item_by_id(query_id)
        if query is None:
            return None

        self._replace_state(query.data)
        return self.update_changes_list()

    def find_matching_saved_query(self) -> Optional[str]:
        return self.saved_queries.find_matching_query(self.filters_model.snapshot(), self.base_state)

    def remove_saved_query(self, query_id: str) -> None:
        self.saved_queries.remove_query(query_id)
        self._save_saved_queries()

    def rename_saved_query(self, query_id: str, label: str) -> None:
        query = self.saved_queries.get_item_by_id(query_id)
        if query is not None:
            query.update_label(label)
        self._save_saved_queries()

    def set_default_saved_query(self, query_id: Optional[str]) -> None:
        self.saved_queries.set_default(query_id)
        self._save_saved_queries()

    def _save_saved_queries(self) -> bool:
        """
        Persist the minimized saved queries. Blobs over the size limit are
        not written and the previously persisted value stays in place.
        """
        stringified = json.dumps(self.saved_queries.get_state(self.base_state))

        if len(stringified) > self.settings.max_preference_size:
            logger.warning(
                "Saved queries too large to persist",
                extra={"size": len(stringified), "limit": self.settings.max_preference_size},
            )
            return False

        self.preferences.set(self.settings.preference_key, stringified)
        return True

    # ------------------------------------------------------------------
    # URL <-> state
    # ------------------------------------------------------------------
    def sync_url_to_state(self, fetch: bool = True) -> Optional[asyncio.Task]:
        """
        Overwrite the live state with the one encoded in the current URL.
        Never fetches while initializing.
        """
        self.filters_model.apply_state(self.codec.from_query(self.location.query()))
        self.filters_model.reassess_filter_interactions()

        if fetch and not self.initializing:
            return self.update_changes_list()
        return None

    def refresh_url_only(self) -> None:
        """Rewrite the URL from the live state without adding a history entry."""
        self.location.replace(self._get_updated_query())

    def update_changes_list(self, extra_params: Optional[Mapping[str, str]] = None) -> asyncio.Task:
        self._update_url(extra_params)
        self.results.invalidate()
        return self.fetcher.issue(self._get_updated_query(extra_params))

    def _update_url(self, extra_params: Optional[Mapping[str, str]] = None) -> None:
        current = self.location.query()
        updated = self._get_updated_query(extra_params)

        if (
            self.codec.get_version(current) != CURRENT_VERSION
            or self.codec.is_new_state(current, updated)
        ):
            self.location.push(updated)

    def _get_updated_query(self, extra_params: Optional[Mapping[str, str]] = None) -> Query:
        return self.codec.get_updated_query(
            self.location.query(),
            self.filters_model.snapshot(),
            extra_params,
        )

    def _replace_state(self, state: FilterState) -> None:
        self.filters_model.apply_state(state)
        self.filters_model.reassess_filter_interactions()

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------
    def _track_highlight(self, action: str, filters: HighlightFilters) -> None:
        if isinstance(filters, str):
            filters = {"name": filters}
        if not isinstance(filters, list):
            filters = [filters]

        try:
            self.tracker.track(
                HIGHLIGHT_TOPIC,
                {"action": action, "filters": filters, "userId": self.settings.actor_id},
            )
        except Exception:
            logger.exception("Failed to emit tracking event", extra={"action": action})

    async def settle(self) -> None:
        """Wait until every fetch issued so far has completed."""
        await self.fetcher.wait_idle()
