from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from .filter_state import FilterState, MinimalSnapshot, parse_flag
from .taxonomy import GROUP_SINGLE_OPTION, Taxonomy

logger = logging.getLogger(__name__)

# Keys inside a persisted "highlights" map that carry the global flag, not a colour.
HIGHLIGHT_FLAG_KEY = "highlight"
LEGACY_HIGHLIGHT_FLAG_KEY = "highlights"


def build_base_state(taxonomy: Taxonomy) -> FilterState:
    """
    Compute the zero-point for all diffs from the taxonomy's declared defaults.

    Single-option groups always have exactly one selected filter; if no member
    is declared as default, the first one is.
    """
    filters: Dict[str, bool] = {}
    highlights: Dict[str, Optional[str]] = {}

    for group in taxonomy.groups():
        for definition in group.filters:
            filters[definition.name] = definition.default
            if group.supports_highlights:
                highlights[definition.name] = None

        if group.type == GROUP_SINGLE_OPTION and not any(f.default for f in group.filters):
            filters[group.filters[0].name] = True

    return FilterState(filters=filters, highlights=highlights, highlight_enabled=False, invert=False)


def minimize(state: FilterState, base: FilterState) -> MinimalSnapshot:
    """
    Keep only the filter/highlight entries that differ from `base`.

    Keys the base does not know are dropped; the two flags are always kept.
    """
    return MinimalSnapshot(
        filters={
            name: value
            for name, value in state.filters.items()
            if name in base.filters and base.filters[name] != value
        },
        highlights={
            name: value
            for name, value in state.highlights.items()
            if name in base.highlights and base.highlights[name] != value
        },
        highlight_enabled=state.highlight_enabled,
        invert=state.invert,
    )


def expand(snapshot: MinimalSnapshot, base: FilterState) -> FilterState:
    """Inverse of minimize(): overlay the snapshot on the base state."""
    filters = dict(base.filters)
    filters.update({k: bool(v) for k, v in snapshot.filters.items() if k in base.filters})

    highlights = dict(base.highlights)
    highlights.update({k: v or None for k, v in snapshot.highlights.items() if k in base.highlights})

    return FilterState(
        filters=filters,
        highlights=highlights,
        highlight_enabled=snapshot.highlight_enabled,
        invert=snapshot.invert,
    )


# -------------------------------------------------------------------------
# Persisted shape
# -------------------------------------------------------------------------

def snapshot_to_dict(snapshot: MinimalSnapshot) -> Dict[str, Any]:
    """
    Persisted shape:
        {"filters": {...}, "highlights": {name: colour, ..., "highlight": bool}, "invert": bool}
    """
    highlights: Dict[str, Any] = dict(snapshot.highlights)
    highlights[HIGHLIGHT_FLAG_KEY] = snapshot.highlight_enabled
    return {
        "filters": dict(snapshot.filters),
        "highlights": highlights,
        "invert": snapshot.invert,
    }


def snapshot_from_dict(data: Mapping[str, Any]) -> MinimalSnapshot:
    """
    Parse a persisted snapshot.

    Older blobs spelled the global flag "highlights"; both spellings are
    accepted and the canonical "highlight" wins when both are present.
    """
    raw_highlights = dict(data.get("highlights") or {})

    if HIGHLIGHT_FLAG_KEY in raw_highlights:
        flag = raw_highlights.get(HIGHLIGHT_FLAG_KEY)
    else:
        flag = raw_highlights.get(LEGACY_HIGHLIGHT_FLAG_KEY)
    raw_highlights.pop(HIGHLIGHT_FLAG_KEY, None)
    raw_highlights.pop(LEGACY_HIGHLIGHT_FLAG_KEY, None)

    return MinimalSnapshot(
        filters={str(k): parse_flag(v) for k, v in (data.get("filters") or {}).items()},
        highlights={str(k): (str(v) if v else None) for k, v in raw_highlights.items()},
        highlight_enabled=parse_flag(flag),
        invert=parse_flag(data.get("invert", False)),
    )
