from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# The preference backend can only hold this many characters.
MAX_PREFERENCE_SIZE = 65535


@dataclass(frozen=True)
class ControllerSettings:
    """
    Knobs of the synchronization controller.

    - preference_key: key the saved queries blob is stored under
    - max_preference_size: serialized blobs longer than this are not persisted
    - default_label: label for saved queries saved without one
    - actor_id: user identifier attached to tracking events
    """
    preference_key: str = "rcfilters-saved-queries"
    max_preference_size: int = MAX_PREFERENCE_SIZE
    default_label: str = "Saved filters"
    actor_id: int = 0


@dataclass
class GlobalConfig:
    ui_title: str
    results_url: str
    fetch_timeout: Optional[float] = None
    controller: ControllerSettings = field(default_factory=ControllerSettings)
