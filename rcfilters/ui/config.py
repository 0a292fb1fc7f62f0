from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rcfilters.config.model import GlobalConfig
from rcfilters.core.taxonomy import Taxonomy
from rcfilters.services.fetch_coordinator import ResultsTransport


@dataclass
class AppConfig:
    """
    Shared, read-only context for the Dash app: settings, taxonomy and the
    results transport. Passed into layout + callback registration functions
    instead of using module-level globals.
    """
    config_root: Path
    global_config: GlobalConfig
    taxonomy: Taxonomy
    transport: Optional[ResultsTransport] = None

    def validate(self) -> None:
        """Ensure all required services are attached before the app starts."""
        if self.transport is None:
            raise RuntimeError("AppConfig.transport must be initialized.")
