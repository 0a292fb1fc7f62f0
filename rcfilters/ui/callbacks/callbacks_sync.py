from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import dash
from dash import Input, Output, State

from rcfilters.core.filters_model import FiltersModel
from rcfilters.core.results import ResultsState
from rcfilters.core.saved_queries import SavedQueriesModel
from rcfilters.services.controller import FiltersController
from rcfilters.services.location import InMemoryLocation
from rcfilters.services.storage import InMemoryPreferenceStore
from rcfilters.ui.ids import IDs
from rcfilters.ui.layout.build_layout import render_results

if TYPE_CHECKING:
    from rcfilters.ui.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class InteractionResult:
    """
    Everything the page needs after one interaction.

    - results: new results payload, or None if nothing was fetched
    """
    search: str
    preferences: Dict[str, str]
    results: Any
    selected: List[str] = field(default_factory=list)
    highlight_enabled: bool = False
    invert: bool = False
    saved_options: List[Dict[str, str]] = field(default_factory=list)
    matching_query: Optional[str] = None


def _build_controller(ctx: AppConfig, search: Optional[str], preferences: Optional[Dict[str, str]]) -> FiltersController:
    return FiltersController(
        FiltersModel(),
        SavedQueriesModel(),
        ResultsState(),
        location=InMemoryLocation(search),
        preferences=InMemoryPreferenceStore(preferences),
        transport=ctx.transport,
        settings=ctx.global_config.controller,
    )


def _apply_selection(controller: FiltersController, selected: Optional[List[str]]) -> None:
    wanted = set(selected or [])
    changes = {
        name: name in wanted
        for name, is_selected in controller.filters_model.get_selected_state().items()
        if (name in wanted) != is_selected
    }
    if changes:
        controller.set_filters_selected(changes)


async def handle_interaction(
        ctx: AppConfig,
        trigger: Optional[str],
        *,
        search: Optional[str],
        preferences: Optional[Dict[str, str]],
        selected: Optional[List[str]] = None,
        highlight: Optional[bool] = None,
        invert: Optional[bool] = None,
        label: Optional[str] = None,
        query_id: Optional[str] = None,
) -> InteractionResult:
    """
    Rebuild a controller from the page (URL + preference blob), run the
    action named by `trigger` and wait for any fetch it issued.

    The page has no server-rendered first paint, so page loads and history
    navigation always end with a fetch.
    """
    controller = _build_controller(ctx, search, preferences)

    if trigger is None:
        controller.initialize(ctx.taxonomy)
        if controller.fetcher.epoch == 0:
            controller.update_changes_list()
    elif trigger == IDs.Store.LOCATION:
        controller.restore(ctx.taxonomy)
        controller.update_changes_list()
    else:
        controller.restore(ctx.taxonomy)
        model = controller.filters_model

        if trigger == IDs.Control.FILTER_CHECKLIST:
            _apply_selection(controller, selected)
        elif trigger == IDs.Control.HIGHLIGHT_SWITCH:
            if bool(highlight) != model.is_highlight_enabled():
                controller.toggle_highlight_enabled()
        elif trigger == IDs.Control.INVERT_SWITCH:
            if bool(invert) != model.are_namespaces_inverted():
                controller.toggle_namespace_inversion()
        elif trigger == IDs.Control.CLEAR_ALL_BTN:
            controller.empty_all_filters()
        elif trigger == IDs.Control.SAVE_QUERY_BTN:
            controller.save_current_query(label)
        elif trigger == IDs.Control.APPLY_QUERY_BTN and query_id:
            controller.apply_saved_query(query_id)
        elif trigger == IDs.Control.DEFAULT_QUERY_BTN:
            controller.set_default_saved_query(query_id)
        elif trigger == IDs.Control.REMOVE_QUERY_BTN and query_id:
            controller.remove_saved_query(query_id)
        else:
            logger.debug("Ignoring interaction", extra={"trigger": trigger})

    fetched = controller.fetcher.epoch > 0
    await controller.settle()

    model = controller.filters_model
    default_id = controller.saved_queries.get_default()
    return InteractionResult(
        search=controller.location.search,
        preferences=controller.preferences.to_dict(),
        results=controller.results.payload if fetched else None,
        selected=[name for name, is_selected in model.get_selected_state().items() if is_selected],
        highlight_enabled=model.is_highlight_enabled(),
        invert=model.are_namespaces_inverted(),
        saved_options=[
            {"label": f"{q.label} (default)" if q.id == default_id else q.label, "value": q.id}
            for q in controller.saved_queries
        ],
        matching_query=controller.find_matching_saved_query(),
    )


def register_sync_callbacks(app: dash.Dash, ctx: AppConfig) -> None:
    # ---------------------------------------------------------
    # Page <-> controller (URL is the live state)
    # ---------------------------------------------------------
    @app.callback(
        Output(IDs.Store.LOCATION, "search"),
        Output(IDs.Store.PREFERENCES, "data"),
        Output(IDs.Control.RESULTS, "children"),
        Output(IDs.Control.FILTER_CHECKLIST, "value"),
        Output(IDs.Control.HIGHLIGHT_SWITCH, "value"),
        Output(IDs.Control.INVERT_SWITCH, "value"),
        Output(IDs.Control.SAVED_QUERY_SELECT, "options"),
        Output(IDs.Control.SAVED_QUERY_SELECT, "value"),
        Input(IDs.Store.LOCATION, "search"),
        Input(IDs.Control.FILTER_CHECKLIST, "value"),
        Input(IDs.Control.HIGHLIGHT_SWITCH, "value"),
        Input(IDs.Control.INVERT_SWITCH, "value"),
        Input(IDs.Control.CLEAR_ALL_BTN, "n_clicks"),
        Input(IDs.Control.SAVE_QUERY_BTN, "n_clicks"),
        Input(IDs.Control.APPLY_QUERY_BTN, "n_clicks"),
        Input(IDs.Control.DEFAULT_QUERY_BTN, "n_clicks"),
        Input(IDs.Control.REMOVE_QUERY_BTN, "n_clicks"),
        State(IDs.Control.QUERY_LABEL_INPUT, "value"),
        State(IDs.Control.SAVED_QUERY_SELECT, "value"),
        State(IDs.Store.PREFERENCES, "data"),
    )
    def sync_page(
            search, selected, highlight, invert,
            _clear, _save, _apply, _default, _remove,
            label, query_id, preferences,
    ):
        trigger = dash.ctx.triggered_id

        result = asyncio.run(
            handle_interaction(
                ctx,
                trigger,
                search=search,
                preferences=preferences if isinstance(preferences, dict) else None,
                selected=selected,
                highlight=highlight,
                invert=invert,
                label=label,
                query_id=query_id,
            )
        )

        results = dash.no_update if result.results is None else render_results(result.results)
        return (
            result.search,
            result.preferences,
            results,
            result.selected,
            result.highlight_enabled,
            result.invert,
            result.saved_options,
            result.matching_query,
        )
