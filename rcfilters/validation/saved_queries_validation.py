from __future__ import annotations

from typing import Any, List

from rcfilters.validation.errors import ValidationIssue, ValidationError


def validate_saved_queries_dict(obj: Any) -> None:
    """
    Validate the parsed saved-queries preference BEFORE it reaches the saved
    queries model, so a half-valid blob never poisons the store.

    Expected shape:
        {"queries": {id: {"label": str, "data": {"filters": {}, "highlights": {}, ...}}}, "default": id | None}

    :raises ValidationError: with every issue found
    """
    if not isinstance(obj, dict):
        raise ValidationError([ValidationIssue("BLOB_TYPE", "Saved queries preference must be a JSON object.")])

    issues: List[ValidationIssue] = []

    queries = obj.get("queries")
    if queries is None:
        queries = {}
    if not isinstance(queries, dict):
        issues.append(ValidationIssue("QUERIES_TYPE", "must be an object", "queries"))
        queries = {}

    for query_id, info in queries.items():
        path = f"queries.{query_id}"
        if not isinstance(info, dict):
            issues.append(ValidationIssue("QUERY_TYPE", "must be an object", path))
            continue

        data = info.get("data", {})
        if not isinstance(data, dict):
            issues.append(ValidationIssue("QUERY_DATA", "must be an object", f"{path}.data"))
            continue

        for part in ("filters", "highlights"):
            if data.get(part) is not None and not isinstance(data[part], dict):
                issues.append(ValidationIssue("QUERY_PART", "must be an object", f"{path}.data.{part}"))

    default = obj.get("default")
    if default is not None and not isinstance(default, str):
        issues.append(ValidationIssue("DEFAULT_TYPE", "must be a query id or null", "default"))

    if issues:
        raise ValidationError(issues)
