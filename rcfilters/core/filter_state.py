from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional


def parse_flag(value: Any) -> bool:
    """
    Decode a boolean flag from any of its historical encodings.

    True is `True`, `1` or `"1"`; every other value (including None) is False.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip() == "1"
    return False


def encode_flag(value: bool) -> str:
    """Two-value textual encoding of a flag: "1" or "0"."""
    return "1" if value else "0"


@dataclass(frozen=True)
class FilterState:
    """
    Immutable snapshot of the full live filter state.

    Fields:

    - filters: filter name -> selected
    - highlights: filter name -> highlight colour (None when not highlighted)
    - highlight_enabled: global highlight switch. Colours are kept while it is off.
    - invert: namespace inversion flag
    """
    filters: Dict[str, bool] = field(default_factory=dict)
    highlights: Dict[str, Optional[str]] = field(default_factory=dict)
    highlight_enabled: bool = False
    invert: bool = False

    def with_changes(self, **changes: Any) -> FilterState:
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filters": dict(self.filters),
            "highlights": dict(self.highlights),
            "highlight_enabled": self.highlight_enabled,
            "invert": self.invert,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FilterState:
        return cls(
            filters={str(k): bool(v) for k, v in (data.get("filters") or {}).items()},
            highlights={str(k): v or None for k, v in (data.get("highlights") or {}).items()},
            highlight_enabled=parse_flag(data.get("highlight_enabled", False)),
            invert=parse_flag(data.get("invert", False)),
        )


@dataclass(frozen=True)
class MinimalSnapshot:
    """
    A FilterState with only the entries that differ from the base state.

    `filters` and `highlights` may omit keys; the two flags are always present
    so that "false" is never ambiguous with "unset".
    """
    filters: Dict[str, bool] = field(default_factory=dict)
    highlights: Dict[str, Optional[str]] = field(default_factory=dict)
    highlight_enabled: bool = False
    invert: bool = False
