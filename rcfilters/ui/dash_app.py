from __future__ import annotations

import logging
from pathlib import Path

import dash_bootstrap_components as dbc
from dash import Dash

from .config import AppConfig
from rcfilters.config.loader import load_global_config, load_taxonomy
from rcfilters.services.fetch_coordinator import HttpxResultsTransport
from rcfilters.ui.layout.build_layout import build_layout
from rcfilters.ui.callbacks.callbacks_sync import register_sync_callbacks

logger = logging.getLogger(__name__)


def create_dash_app(config_root: Path | str = Path("config")) -> Dash:
    config_root = Path(config_root)

    # 1) Load Config
    global_config = load_global_config(config_root)
    taxonomy = load_taxonomy(config_root)
    if not taxonomy.filter_names():
        raise RuntimeError("No filters were loaded from config")

    # 2) Results transport
    transport = HttpxResultsTransport(global_config.results_url, timeout=global_config.fetch_timeout)

    # 3) App Context
    ctx = AppConfig(
        config_root=config_root,
        global_config=global_config,
        taxonomy=taxonomy,
        transport=transport,
    )
    ctx.validate()

    app = Dash(
        __name__,
        external_stylesheets=[dbc.themes.FLATLY],
    )
    app.title = global_config.ui_title
    app.layout = build_layout(ctx)

    register_sync_callbacks(app, ctx)

    logger.info(
        "Dash app created",
        extra={"config_root": str(config_root), "results_url": global_config.results_url},
    )
    return app
