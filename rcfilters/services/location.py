from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)


def parse_search(search: Optional[str]) -> Dict[str, str]:
    """
    Parse a "?a=1&b=2" search string into an ordered dict.
    Repeated keys keep their last value.
    """
    if not search:
        return {}
    params = httpx.QueryParams(search.lstrip("?"))
    return {key: value for key, value in params.multi_items()}


def format_search(query: Mapping[str, str]) -> str:
    if not query:
        return ""
    return "?" + str(httpx.QueryParams(dict(query)))


class QueryLocation(ABC):
    """
    Read/write boundary for the textual query of the current page.

    push() adds a history entry, replace() rewrites the current one.
    """

    @abstractmethod
    def query(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def push(self, query: Mapping[str, str]) -> None:
        pass

    @abstractmethod
    def replace(self, query: Mapping[str, str]) -> None:
        pass


class InMemoryLocation(QueryLocation):
    """
    History stack held in memory. The last entry is the current location.
    """

    def __init__(self, search: Optional[str] = None):
        self.history: List[Dict[str, str]] = [parse_search(search)]

    @property
    def search(self) -> str:
        return format_search(self.history[-1])

    def query(self) -> Dict[str, str]:
        return dict(self.history[-1])

    def push(self, query: Mapping[str, str]) -> None:
        self.history.append(dict(query))
        logger.debug("Location pushed", extra={"search": self.search})

    def replace(self, query: Mapping[str, str]) -> None:
        self.history[-1] = dict(query)
        logger.debug("Location replaced", extra={"search": self.search})

    def back(self) -> None:
        if len(self.history) > 1:
            self.history.pop()
