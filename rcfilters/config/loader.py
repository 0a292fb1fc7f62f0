from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from rcfilters.config.model import ControllerSettings, GlobalConfig, MAX_PREFERENCE_SIZE
from rcfilters.core.exceptions import ConfigError
from rcfilters.core.taxonomy import Taxonomy, build_taxonomy

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")


def load_global_config(root: Path) -> GlobalConfig:
    """
    Load global settings from 'global.json' under the config root.

    Expected structure:

        root/
            global.json
            filters/
                01_authorship.json
                02_contribution.json
                ...
            namespaces.json   (optional)
            tags.json         (optional)

    Environment overrides:
    - RCFILTERS_RESULTS_URL: endpoint the results are fetched from

    A missing global.json falls back to defaults.

    :param root: Directory containing 'global.json'
    :return: A GlobalConfig instance
    :raises ConfigError: if global.json is not valid JSON
    """
    root = Path(root)
    logger.info("Loading global config", extra={"config_root": str(root)})

    global_path = root / "global.json"
    raw_global: Dict[str, Any] = _read_json(global_path) if global_path.is_file() else {}

    raw_controller = raw_global.get("controller", {})
    controller = ControllerSettings(
        preference_key=raw_controller.get("preference_key", "rcfilters-saved-queries"),
        max_preference_size=int(raw_controller.get("max_preference_size", MAX_PREFERENCE_SIZE)),
        default_label=raw_controller.get("default_label", "Saved filters"),
        actor_id=int(raw_controller.get("actor_id", 0)),
    )

    timeout = raw_global.get("fetch_timeout")

    return GlobalConfig(
        ui_title=raw_global.get("ui_title", "Recent changes"),
        results_url=os.getenv("RCFILTERS_RESULTS_URL", raw_global.get("results_url", "http://localhost:8080/changes")),
        fetch_timeout=float(timeout) if timeout is not None else None,
        controller=controller,
    )


def load_taxonomy(root: Path) -> Taxonomy:
    """
    Load the filter structure from 'filters/*.json' (one group per file,
    loaded in file-name order) plus the optional namespace and tag lists.

    :raises ConfigError: on unreadable files
    :raises TaxonomyError: if the structure is not a valid taxonomy
    """
    root = Path(root)
    groups: List[Dict[str, Any]] = []

    filters_dir = root / "filters"
    if filters_dir.is_dir():
        for group_file in sorted(filters_dir.glob("*.json")):
            # Ignore macOS 'Apple Double' files
            if group_file.name.startswith("._"):
                continue
            logger.info(f"Loading filter group: {group_file.name}")
            groups.append(_read_json(group_file))
    else:
        logger.warning(f"Filters directory not found at: {filters_dir}")

    namespaces_path = root / "namespaces.json"
    namespaces = _read_json(namespaces_path) if namespaces_path.is_file() else None

    tags_path = root / "tags.json"
    tags = _read_json(tags_path) if tags_path.is_file() else None

    return build_taxonomy(groups, namespaces=namespaces, tags=tags)
