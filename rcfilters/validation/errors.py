from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class ValidationIssue:
    """
    One problem found in a persisted blob.

    - code: stable machine-readable identifier (e.g. "QUERY_DATA")
    - message: human-readable explanation
    - path: dotted location of the offending value, "" for the whole blob
    """
    code: str
    message: str
    path: str = ""


class ValidationError(Exception):
    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        super().__init__("\n".join(
            f"{i.code} at {i.path}: {i.message}" if i.path else f"{i.code}: {i.message}"
            for i in issues
        ))

    @property
    def codes(self) -> List[str]:
        return [i.code for i in self.issues]
