from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .filter_state import FilterState
from .taxonomy import DEFAULT_VIEW, GROUP_SINGLE_OPTION, FilterDefinition, FilterGroup, Taxonomy

logger = logging.getLogger(__name__)


@dataclass
class FilterItem:
    """
    Live state of one filter.

    - selected: whether the filter is applied to the results
    - highlight_color: colour used to highlight matching results, None when off
    - conflicted: set by reassess_filter_interactions() when a declared conflict is also selected
    """
    definition: FilterDefinition
    group: FilterGroup
    selected: bool = False
    highlight_color: Optional[str] = None
    conflicted: bool = False

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def label(self) -> str:
        return self.definition.label

    @property
    def supports_highlights(self) -> bool:
        return self.group.supports_highlights

    def is_highlighted(self) -> bool:
        return self.highlight_color is not None


class FiltersModel:
    """
    Mutable, in-memory model of the filter items plus the global highlight and
    invert flags.

    The controller is the only writer. Reads for synchronisation go through
    snapshot(); wholesale writes go through apply_state().
    """

    def __init__(self):
        self._items: Dict[str, FilterItem] = {}
        self._highlight_enabled = False
        self._invert = False
        self.current_view = DEFAULT_VIEW
        self.taxonomy: Optional[Taxonomy] = None

    def initialize_filters(self, taxonomy: Taxonomy) -> None:
        self.taxonomy = taxonomy
        self._items = {}
        for group in taxonomy.groups():
            for definition in group.filters:
                self._items[definition.name] = FilterItem(
                    definition=definition,
                    group=group,
                    selected=definition.default,
                )
            if group.type == GROUP_SINGLE_OPTION and not any(f.default for f in group.filters):
                self._items[group.filters[0].name].selected = True

        self._highlight_enabled = False
        self._invert = False
        logger.debug("Filters model initialized", extra={"n_items": len(self._items)})

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    def get_item_by_name(self, name: str) -> Optional[FilterItem]:
        return self._items.get(name)

    def get_items(self) -> List[FilterItem]:
        return list(self._items.values())

    def get_selected_state(self) -> Dict[str, bool]:
        return {name: item.selected for name, item in self._items.items()}

    def get_highlighted_items(self) -> List[FilterItem]:
        return [item for item in self._items.values() if item.is_highlighted()]

    def get_items_supporting_highlights(self) -> List[FilterItem]:
        return [item for item in self._items.values() if item.supports_highlights]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def toggle_filter_selected(self, name: str, selected: Optional[bool] = None) -> bool:
        """
        Set (or flip) the selection of one filter. Single-option groups stay
        exclusive: selecting a member deselects its siblings, and the selected
        member cannot be deselected directly.

        :return: True if anything changed
        """
        item = self._items.get(name)
        if item is None:
            return False

        selected = (not item.selected) if selected is None else bool(selected)
        if item.selected == selected:
            return False

        if item.group.type == GROUP_SINGLE_OPTION:
            if not selected:
                return False
            for sibling in item.group.filters:
                self._items[sibling.name].selected = sibling.name == name
            return True

        item.selected = selected
        return True

    def toggle_filters_selected(self, selection: Mapping[str, bool]) -> bool:
        """Apply several selections in order. True if any of them changed something."""
        changed = False
        for name, selected in selection.items():
            changed = self.toggle_filter_selected(name, selected) or changed
        return changed

    def empty_all_filters(self) -> None:
        """
        Deselect every filter. Single-option groups return to their default
        member since they cannot be empty.
        """
        for item in self._items.values():
            if item.group.type == GROUP_SINGLE_OPTION:
                item.selected = item.definition.default
            else:
                item.selected = False

        self._normalize_single_option_groups()

    def _normalize_single_option_groups(self) -> None:
        """
        Leave exactly one selected member in every single-option group: the
        first selected one, else the declared default, else the first member.
        """
        if self.taxonomy is None:
            return
        for group in self.taxonomy.groups():
            if group.type != GROUP_SINGLE_OPTION:
                continue
            members = [self._items[f.name] for f in group.filters]
            chosen = next((m for m in members if m.selected), None)
            if chosen is None:
                chosen = next((m for m in members if m.definition.default), members[0])
            for member in members:
                member.selected = member is chosen

    def reassess_filter_interactions(self, item: Optional[FilterItem] = None) -> None:
        """
        Recompute the conflict markers. If `item` is given only it and the
        filters it declares conflicts with are re-evaluated.
        """
        if item is not None:
            targets = [item] + [self._items[n] for n in item.definition.conflicts if n in self._items]
        else:
            targets = list(self._items.values())

        for target in targets:
            target.conflicted = target.selected and any(
                self._items[other].selected
                for other in target.definition.conflicts
                if other in self._items
            )

    # ------------------------------------------------------------------
    # Highlights
    # ------------------------------------------------------------------
    def set_highlight_color(self, name: str, color: str) -> bool:
        item = self._items.get(name)
        if item is None or not item.supports_highlights:
            return False
        item.highlight_color = color or None
        return True

    def clear_highlight_color(self, name: str) -> bool:
        item = self._items.get(name)
        if item is None or item.highlight_color is None:
            return False
        item.highlight_color = None
        return True

    def clear_all_highlight_colors(self) -> None:
        for item in self._items.values():
            item.highlight_color = None

    def toggle_highlight(self, enabled: Optional[bool] = None) -> None:
        self._highlight_enabled = (not self._highlight_enabled) if enabled is None else bool(enabled)

    def is_highlight_enabled(self) -> bool:
        return self._highlight_enabled

    # ------------------------------------------------------------------
    # Namespaces / views
    # ------------------------------------------------------------------
    def toggle_inverted_namespaces(self, inverted: Optional[bool] = None) -> None:
        self._invert = (not self._invert) if inverted is None else bool(inverted)

    def are_namespaces_inverted(self) -> bool:
        return self._invert

    def switch_view(self, view: str) -> None:
        if self.taxonomy is not None and self.taxonomy.get_view(view) is None:
            logger.warning("Unknown view requested", extra={"view": view})
            return
        self.current_view = view

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def snapshot(self) -> FilterState:
        return FilterState(
            filters=self.get_selected_state(),
            highlights={
                item.name: item.highlight_color
                for item in self._items.values()
                if item.supports_highlights
            },
            highlight_enabled=self._highlight_enabled,
            invert=self._invert,
        )

    def apply_state(self, state: FilterState) -> None:
        """
        Replace selection, highlights and both flags wholesale. Names the
        model doesn't know are ignored; known filters missing from `state`
        are deselected / un-highlighted. Single-option groups are repaired
        to exactly one selected member so the state stays encodable.
        """
        for name, item in self._items.items():
            item.selected = bool(state.filters.get(name, False))
            if item.supports_highlights:
                item.highlight_color = state.highlights.get(name) or None
            else:
                item.highlight_color = None

        self._normalize_single_option_groups()
        self._highlight_enabled = state.highlight_enabled
        self._invert = state.invert
