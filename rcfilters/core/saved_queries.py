from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .base_state import expand, minimize, snapshot_from_dict, snapshot_to_dict
from .filter_state import FilterState

logger = logging.getLogger(__name__)


def generate_query_id() -> str:
    """
    Generate a globally unique, immutable ID for saved queries
    """
    return f"query-{uuid.uuid4().hex[:12]}"


@dataclass
class SavedQuery:
    """
    A named filter state the user can re-apply.

    - id: stable identifier
    - label: human-readable label shown in the saved queries menu
    - data: the full FilterState (expanded against the base state)
    """
    id: str
    label: str
    data: FilterState

    def update_label(self, label: str) -> None:
        self.label = label


class SavedQueriesModel:
    """
    Ordered collection of saved queries plus the "default query" pointer.

    Persisted form (minimized against the base state):
        {"queries": {id: {"label": str, "data": <snapshot dict>}}, "default": id | None}
    """

    def __init__(self):
        self._queries: Dict[str, SavedQuery] = {}
        self._default: Optional[str] = None

    def initialize(self, raw: Mapping[str, Any], base: FilterState) -> None:
        """
        Load queries from their persisted (minimal) form, expanding each one
        against `base` so all queries share the structure of the live state.
        """
        self._queries = {}
        for query_id, info in (raw.get("queries") or {}).items():
            snapshot = snapshot_from_dict(info.get("data") or {})
            self._queries[str(query_id)] = SavedQuery(
                id=str(query_id),
                label=str(info.get("label", "")),
                data=expand(snapshot, base),
            )

        default = raw.get("default")
        self._default = default if default in self._queries else None
        logger.debug(
            "Saved queries loaded",
            extra={"n_queries": len(self._queries), "default": self._default},
        )

    def __len__(self) -> int:
        return len(self._queries)

    def __iter__(self) -> Iterator[SavedQuery]:
        return iter(list(self._queries.values()))

    def get_items(self) -> List[SavedQuery]:
        return list(self._queries.values())

    def get_item_by_id(self, query_id: Optional[str]) -> Optional[SavedQuery]:
        if query_id is None:
            return None
        return self._queries.get(query_id)

    def add_new_query(self, label: str, data: FilterState, query_id: Optional[str] = None) -> str:
        query_id = query_id or generate_query_id()
        self._queries[query_id] = SavedQuery(id=query_id, label=label, data=data)
        return query_id

    def remove_query(self, query_id: str) -> bool:
        if self._queries.pop(query_id, None) is None:
            return False
        if self._default == query_id:
            self._default = None
        return True

    def set_default(self, query_id: Optional[str]) -> None:
        self._default = query_id if query_id in self._queries else None

    def get_default(self) -> Optional[str]:
        return self._default

    def find_matching_query(self, state: FilterState, base: FilterState) -> Optional[str]:
        """
        Return the id of the first query whose minimized form equals the
        minimized form of `state`.
        """
        target = minimize(state, base)
        for query in self._queries.values():
            if minimize(query.data, base) == target:
                return query.id
        return None

    def get_state(self, base: FilterState) -> Dict[str, Any]:
        return {
            "queries": {
                query.id: {
                    "label": query.label,
                    "data": snapshot_to_dict(minimize(query.data, base)),
                }
                for query in self._queries.values()
            },
            "default": self._default,
        }
