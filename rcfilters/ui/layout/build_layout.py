from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List

import dash_bootstrap_components as dbc
from dash import dcc, html

from rcfilters.core.results import NO_RESULTS
from rcfilters.ui.ids import IDs

if TYPE_CHECKING:
    from rcfilters.ui.config import AppConfig


def filter_options(ctx: AppConfig) -> List[Dict[str, Any]]:
    options = []
    for view in ctx.taxonomy.views:
        for group in view.groups:
            for definition in group.filters:
                options.append({"label": f"{view.trigger}{definition.label}", "value": definition.name})
    return options


def render_results(payload: Any):
    if payload == NO_RESULTS or not payload:
        return dbc.Alert("No changes match the selected filters.", color="secondary")
    return html.Pre(str(payload), className="results-payload")


def _build_filter_panel(ctx: AppConfig) -> dbc.Card:
    return dbc.Card(
        dbc.CardBody(
            [
                html.H5("Filters", className="card-title"),
                dbc.Checklist(
                    id=IDs.Control.FILTER_CHECKLIST,
                    options=filter_options(ctx),
                    value=[],
                ),
                html.Hr(),
                dbc.Switch(id=IDs.Control.HIGHLIGHT_SWITCH, label="Highlight results", value=False),
                dbc.Switch(id=IDs.Control.INVERT_SWITCH, label="Invert namespace selection", value=False),
                dbc.Button("Clear all", id=IDs.Control.CLEAR_ALL_BTN, color="link", size="sm"),
            ]
        ),
        className="mb-3",
    )


def _build_saved_queries_panel() -> dbc.Card:
    return dbc.Card(
        dbc.CardBody(
            [
                html.H5("Saved filters", className="card-title"),
                dbc.InputGroup(
                    [
                        dbc.Input(id=IDs.Control.QUERY_LABEL_INPUT, placeholder="Name these filters"),
                        dbc.Button("Save", id=IDs.Control.SAVE_QUERY_BTN, color="primary"),
                    ],
                    className="mb-2",
                ),
                dcc.Dropdown(id=IDs.Control.SAVED_QUERY_SELECT, options=[], placeholder="Saved filters"),
                dbc.ButtonGroup(
                    [
                        dbc.Button("Apply", id=IDs.Control.APPLY_QUERY_BTN, size="sm"),
                        dbc.Button("Set as default", id=IDs.Control.DEFAULT_QUERY_BTN, size="sm"),
                        dbc.Button("Remove", id=IDs.Control.REMOVE_QUERY_BTN, size="sm", color="danger"),
                    ],
                    className="mt-2",
                ),
            ]
        ),
    )


def build_layout(ctx: AppConfig) -> dbc.Container:
    return dbc.Container(
        [
            dcc.Location(id=IDs.Store.LOCATION, refresh=False),
            dcc.Store(id=IDs.Store.PREFERENCES, storage_type="local"),
            html.H2(ctx.global_config.ui_title, className="my-3"),
            dbc.Row(
                [
                    dbc.Col([_build_filter_panel(ctx), _build_saved_queries_panel()], md=4),
                    dbc.Col(dcc.Loading(html.Div(id=IDs.Control.RESULTS)), md=8),
                ]
            ),
        ],
        fluid=True,
    )
