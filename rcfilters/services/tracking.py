from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

logger = logging.getLogger(__name__)

HIGHLIGHT_TOPIC = "event.ChangesListHighlights"


class Tracker(ABC):
    """Fire-and-forget telemetry sink. No response is expected."""

    @abstractmethod
    def track(self, topic: str, data: Mapping[str, Any]) -> None:
        pass


class LoggingTracker(Tracker):
    """Emits events as structured log records."""

    def track(self, topic: str, data: Mapping[str, Any]) -> None:
        logger.info("Tracking event", extra={"topic": topic, **dict(data)})


class RecordingTracker(Tracker):
    """Keeps every event in memory, in emission order."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def track(self, topic: str, data: Mapping[str, Any]) -> None:
        self.events.append({"topic": topic, **dict(data)})
