from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

# Designated empty-result marker: used for failed fetches and empty first paints.
NO_RESULTS = "NO_RESULTS"


@dataclass
class ResultsState:
    """
    Companion of the filters model holding the (opaque) results payload.

    - payload: whatever the transport returned, or NO_RESULTS
    - loading: True between invalidate() and the next update()
    - epoch: epoch of the fetch that produced payload (None for adopted results)
    """
    payload: Any = NO_RESULTS
    loading: bool = False
    epoch: Optional[int] = None

    def invalidate(self) -> None:
        self.loading = True

    def update(self, payload: Any, epoch: Optional[int] = None) -> None:
        self.payload = payload if payload is not None else NO_RESULTS
        self.epoch = epoch
        self.loading = False

    def has_results(self) -> bool:
        return self.payload != NO_RESULTS
