from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .exceptions import TaxonomyError

logger = logging.getLogger(__name__)

GROUP_BOOLEAN = "boolean"
GROUP_STRING_OPTIONS = "string_options"
GROUP_SINGLE_OPTION = "single_option"
GROUP_TYPES = (GROUP_BOOLEAN, GROUP_STRING_OPTIONS, GROUP_SINGLE_OPTION)

DEFAULT_VIEW = "default"
NAMESPACES_VIEW = "namespaces"
TAGS_VIEW = "tags"

# Separates the group name from the option value in option-group filter names
OPTION_NAME_SEPARATOR = "__"


@dataclass(frozen=True)
class FilterDefinition:
    """
    Declared (static) description of a single filter.

    - name: unique name of the filter across the whole taxonomy
    - value: token used for the filter inside its group's URL parameter
    - label/description: human-readable text, passed through to the UI
    - identifiers: free-form tags (e.g. 'subject' / 'talk' for namespaces)
    - css_class: class the results markup uses for rows matching this filter
    - default: selection state in the base (default) filter state
    - conflicts: names of filters that should not be selected together with this one
    """
    name: str
    value: str
    label: str = ""
    description: str = ""
    identifiers: Tuple[str, ...] = ()
    css_class: Optional[str] = None
    default: bool = False
    conflicts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FilterGroup:
    name: str
    type: str = GROUP_BOOLEAN
    title: str = ""
    separator: str = ","
    full_coverage: bool = False
    supports_highlights: bool = True
    filters: Tuple[FilterDefinition, ...] = ()

    @property
    def is_option_group(self) -> bool:
        return self.type != GROUP_BOOLEAN


@dataclass(frozen=True)
class ViewDefinition:
    name: str
    title: str = ""
    trigger: str = ""
    groups: Tuple[FilterGroup, ...] = ()


@dataclass(frozen=True)
class Taxonomy:
    """
    The full, ordered set of views/groups/filters the controller works with.

    Built once at startup and never mutated; everything that depends on it
    (base state, query codec) can be computed once per session.
    """
    views: Tuple[ViewDefinition, ...] = ()
    _filters: Dict[str, FilterDefinition] = field(default_factory=dict, repr=False, compare=False)
    _group_of: Dict[str, FilterGroup] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        for view in self.views:
            for group in view.groups:
                for definition in group.filters:
                    if definition.name in self._filters:
                        raise TaxonomyError(f"Duplicate filter name '{definition.name}'")
                    self._filters[definition.name] = definition
                    self._group_of[definition.name] = group

    def groups(self) -> Iterator[FilterGroup]:
        for view in self.views:
            yield from view.groups

    def filters(self) -> Iterator[FilterDefinition]:
        return iter(self._filters.values())

    def filter_names(self) -> List[str]:
        return list(self._filters)

    def get_filter(self, name: str) -> Optional[FilterDefinition]:
        return self._filters.get(name)

    def group_of(self, name: str) -> Optional[FilterGroup]:
        return self._group_of.get(name)

    def get_view(self, name: str) -> Optional[ViewDefinition]:
        return next((v for v in self.views if v.name == name), None)

    def __contains__(self, name: object) -> bool:
        return name in self._filters


# -------------------------------------------------------------------------
# Building from raw (JSON-like) structures
# -------------------------------------------------------------------------

def _build_filter(raw: Mapping[str, Any], group_name: str, group_type: str) -> FilterDefinition:
    raw_name = str(raw["name"])
    if group_type == GROUP_BOOLEAN:
        name = raw_name
    else:
        name = f"{group_name}{OPTION_NAME_SEPARATOR}{raw_name}"

    return FilterDefinition(
        name=name,
        value=raw_name,
        label=raw.get("label") or raw_name,
        description=raw.get("description", ""),
        identifiers=tuple(raw.get("identifiers", ())),
        css_class=raw.get("cssClass", raw.get("css_class")),
        default=bool(raw.get("default", False)),
        conflicts=tuple(raw.get("conflicts", ())),
    )


def build_group(raw: Mapping[str, Any]) -> FilterGroup:
    try:
        name = str(raw["name"])
    except KeyError:
        raise TaxonomyError("Filter group is missing a 'name'")

    group_type = raw.get("type", GROUP_BOOLEAN)
    if group_type not in GROUP_TYPES:
        raise TaxonomyError(f"Group '{name}' has unknown type '{group_type}'")

    filters = tuple(_build_filter(f, name, group_type) for f in raw.get("filters", []))

    if group_type == GROUP_SINGLE_OPTION:
        if not filters:
            raise TaxonomyError(f"Single-option group '{name}' has no filters")
        if sum(1 for f in filters if f.default) > 1:
            raise TaxonomyError(f"Single-option group '{name}' declares more than one default")

    return FilterGroup(
        name=name,
        type=group_type,
        title=raw.get("title", name),
        separator=raw.get("separator", ","),
        full_coverage=bool(raw.get("fullCoverage", raw.get("full_coverage", False))),
        supports_highlights=bool(raw.get("supportsHighlights", raw.get("supports_highlights", True))),
        filters=filters,
    )


def build_namespace_view(namespaces: Mapping[Any, Optional[str]]) -> ViewDefinition:
    """
    Synthesize the namespaces view from a {namespace id: label} mapping.

    Even (and negative) ids are subject namespaces, odd ids are talk namespaces.
    """
    items = []
    for namespace_id, label in namespaces.items():
        ns = int(namespace_id)
        items.append({
            "name": str(namespace_id),
            "label": label or "(Main)",
            "description": "",
            "identifiers": ["subject" if (ns < 0 or ns % 2 == 0) else "talk"],
            "cssClass": f"mw-changeslist-ns-{namespace_id}",
        })

    group = build_group({
        "name": "namespaces",
        "type": GROUP_STRING_OPTIONS,
        "title": "Namespaces",
        "separator": ";",
        "fullCoverage": True,
        "filters": items,
    })
    return ViewDefinition(name=NAMESPACES_VIEW, title="Namespaces", trigger=":", groups=(group,))


def build_tag_view(tags: Sequence[Mapping[str, Any]]) -> ViewDefinition:
    group = build_group({
        "name": "tagfilter",
        "type": GROUP_STRING_OPTIONS,
        "title": "Tags",
        "separator": "|",
        "fullCoverage": False,
        "filters": list(tags),
    })
    return ViewDefinition(name=TAGS_VIEW, title="Tags", trigger="#", groups=(group,))


def build_taxonomy(
        filter_structure: Sequence[Mapping[str, Any]],
        namespaces: Optional[Mapping[Any, Optional[str]]] = None,
        tags: Optional[Sequence[Mapping[str, Any]]] = None,
) -> Taxonomy:
    """
    Build the Taxonomy from the filter structure plus the optional
    namespace and tag collections (each becomes its own view).

    :raises TaxonomyError: on unknown group types or duplicate filter names
    """
    views = [
        ViewDefinition(
            name=DEFAULT_VIEW,
            title="Filters",
            trigger="",
            groups=tuple(build_group(g) for g in filter_structure),
        )
    ]
    if namespaces:
        views.append(build_namespace_view(namespaces))
    if tags:
        views.append(build_tag_view(tags))

    taxonomy = Taxonomy(views=tuple(views))
    logger.debug(
        "Taxonomy built",
        extra={"views": [v.name for v in taxonomy.views], "n_filters": len(taxonomy.filter_names())},
    )
    return taxonomy
