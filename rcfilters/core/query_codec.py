from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Set

from .filter_state import FilterState, encode_flag, parse_flag
from .taxonomy import GROUP_BOOLEAN, GROUP_SINGLE_OPTION, FilterGroup, Taxonomy

logger = logging.getLogger(__name__)

VERSION_KEY = "urlversion"
CURRENT_VERSION = 2
LEGACY_VERSION = 1

HIGHLIGHT_KEY = "highlight"
INVERT_KEY = "invert"
COLOR_SUFFIX = "_color"

Query = Dict[str, str]


class QueryCodec:
    """
    Translate between FilterState and the flat, versioned, string-keyed query
    used in shareable URLs.

    Encoding rules:
    - boolean groups: one parameter per filter, "1"/"0"
    - option groups: one parameter per group, selected values joined by the
      group separator (single-option groups carry exactly one value)
    - "highlight": global highlight flag, "1"/"0"
    - "<filter>_color": highlight colour of a filter (absent when none)
    - "invert": namespace inversion flag, "1"/"0"
    - "urlversion": encoding version marker

    Keys the codec does not recognize are never interpreted and are carried
    through get_updated_query() untouched.
    """

    def __init__(self, taxonomy: Taxonomy, base_state: FilterState):
        self.taxonomy = taxonomy
        self.base_state = base_state

        self._group_params: Dict[str, FilterGroup] = {}
        self._filter_params: Dict[str, FilterGroup] = {}
        for group in taxonomy.groups():
            if group.type == GROUP_BOOLEAN:
                for definition in group.filters:
                    self._filter_params[definition.name] = group
            else:
                self._group_params[group.name] = group

        self._color_params: Dict[str, str] = {
            f"{name}{COLOR_SUFFIX}": name for name in base_state.highlights
        }
        self._default_params = self._state_params(base_state)

    # ------------------------------------------------------------------
    # Recognition / versioning
    # ------------------------------------------------------------------
    @property
    def recognized_keys(self) -> Set[str]:
        return (
            set(self._filter_params)
            | set(self._group_params)
            | set(self._color_params)
            | {HIGHLIGHT_KEY, INVERT_KEY}
        )

    def is_recognized(self, key: str) -> bool:
        return key in self.recognized_keys

    def contains_recognized(self, query: Mapping[str, str]) -> bool:
        """
        True if the query carries any state parameter. The version marker on
        its own does not count.
        """
        recognized = self.recognized_keys
        return any(key in recognized for key in query)

    def get_version(self, query: Mapping[str, str]) -> int:
        raw = query.get(VERSION_KEY)
        if raw is None:
            return LEGACY_VERSION
        try:
            return int(raw)
        except (TypeError, ValueError):
            return LEGACY_VERSION

    def unrecognized(self, query: Mapping[str, str]) -> Query:
        recognized = self.recognized_keys | {VERSION_KEY}
        return {k: v for k, v in query.items() if k not in recognized}

    def is_new_state(self, current: Mapping[str, str], updated: Mapping[str, str]) -> bool:
        """
        Whether `updated` describes a different state than `current`, either in
        the decoded filter state or in the pass-through parameters.
        """
        if self.from_query(current) != self.from_query(updated):
            return True
        return self.unrecognized(current) != self.unrecognized(updated)

    # ------------------------------------------------------------------
    # Filters <-> parameters
    # ------------------------------------------------------------------
    def parameters_from_filters(self, filters: Mapping[str, bool]) -> Query:
        params: Query = {}
        for group in self.taxonomy.groups():
            if group.type == GROUP_BOOLEAN:
                for definition in group.filters:
                    params[definition.name] = encode_flag(bool(filters.get(definition.name, False)))
            else:
                selected = [d.value for d in group.filters if filters.get(d.name, False)]
                params[group.name] = group.separator.join(selected)
        return params

    def filters_from_parameters(self, params: Mapping[str, str]) -> Dict[str, bool]:
        """
        Decode filter selection from parameters. Filters whose parameter is
        absent keep their base (default) value.
        """
        filters = dict(self.base_state.filters)

        for key, value in params.items():
            if key in self._filter_params:
                filters[key] = parse_flag(value)
            elif key in self._group_params:
                group = self._group_params[key]
                values = {v for v in (value or "").split(group.separator) if v}
                if group.type == GROUP_SINGLE_OPTION:
                    if not any(d.value in values for d in group.filters):
                        logger.debug("Ignoring unknown single-option value", extra={"param": key, "value": value})
                        continue
                    chosen = next(d for d in group.filters if d.value in values)
                    for d in group.filters:
                        filters[d.name] = d is chosen
                else:
                    for d in group.filters:
                        filters[d.name] = d.value in values
        return filters

    # ------------------------------------------------------------------
    # State <-> query
    # ------------------------------------------------------------------
    def _state_params(self, state: FilterState) -> Query:
        params = self.parameters_from_filters(state.filters)
        params[HIGHLIGHT_KEY] = encode_flag(state.highlight_enabled)
        for name in self.base_state.highlights:
            color = state.highlights.get(name)
            if color:
                params[f"{name}{COLOR_SUFFIX}"] = color
        params[INVERT_KEY] = encode_flag(state.invert)
        return params

    def to_query(self, state: FilterState) -> Query:
        """Full (non-minimized) parameter mapping for a state, with version marker."""
        params = self._state_params(state)
        params[VERSION_KEY] = str(CURRENT_VERSION)
        return params

    def from_query(self, query: Mapping[str, str]) -> FilterState:
        """
        Decode a FilterState from a query. Anything not mentioned falls back to
        the base state; unrecognized keys are ignored.
        """
        highlights = dict(self.base_state.highlights)
        for key, name in self._color_params.items():
            if query.get(key):
                highlights[name] = query[key]

        return FilterState(
            filters=self.filters_from_parameters(query),
            highlights=highlights,
            highlight_enabled=parse_flag(query.get(HIGHLIGHT_KEY, "0")),
            invert=parse_flag(query.get(INVERT_KEY, "0")),
        )

    def minimize_query(self, query: Mapping[str, str]) -> Query:
        """
        Drop recognized parameters that hold their default value (colour
        parameters default to absent). Unrecognized parameters and the version
        marker are kept.
        """
        minimized: Query = {}
        for key, value in query.items():
            if key in self._color_params:
                if value:
                    minimized[key] = value
                continue
            if key in self._default_params and self._default_params[key] == value:
                continue
            minimized[key] = value
        return minimized

    def get_updated_query(
            self,
            current: Mapping[str, str],
            state: FilterState,
            extra: Optional[Mapping[str, str]] = None,
    ) -> Query:
        """
        Build the minimized query for `state`, keeping every parameter of
        `current` that the codec does not recognize, in its original order.
        """
        updated: Query = dict(self.unrecognized(current))
        updated.update(self._state_params(state))
        updated[VERSION_KEY] = str(CURRENT_VERSION)
        if extra:
            updated.update({k: str(v) for k, v in extra.items()})
        return self.minimize_query(updated)

    def default_query(self) -> Query:
        return self.to_query(self.base_state)

