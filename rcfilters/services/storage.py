from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional


class PreferenceStore(ABC):
    """
    Abstract interface for the durable per-user preference storage
    (local files, a remote preferences API, browser local storage, etc.).
    Values are opaque strings.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass


class InMemoryPreferenceStore(PreferenceStore):
    """
    Dict-backed store. Used by tests and by hosts that round-trip the
    preference blob through the client (e.g. a Dash local-storage Store).
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)


class LocalFileSystemPreferenceStore(PreferenceStore):
    """
    One file per preference key under a root directory.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        # Prevent path traversal attacks
        full_path = (self.root / f"{key}.json").resolve()
        if not str(full_path).startswith(str(self.root)):
            raise ValueError(f"Access denied: {key}")
        return full_path

    def get(self, key: str) -> Optional[str]:
        p = self._resolve(key)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        p = self._resolve(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(value, encoding="utf-8")
