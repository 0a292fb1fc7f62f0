from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Set

import httpx

from rcfilters.core.results import NO_RESULTS, ResultsState

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised by a ResultsTransport when the results could not be fetched."""
    pass


class ResultsTransport(ABC):
    """
    Low-level transport for results. Receives the full textual query and
    returns an opaque payload or raises TransportError.
    """

    @abstractmethod
    async def fetch(self, query: Mapping[str, str]) -> Any:
        raise NotImplementedError()


class HttpxResultsTransport(ResultsTransport):
    """
    GET <url>?<query> and return the response body as text.

    No timeout is applied by default: a hung request simply never completes.
    """

    def __init__(
            self,
            url: str,
            timeout: Optional[float] = None,
            client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._timeout = timeout
        self._client = client

    async def fetch(self, query: Mapping[str, str]) -> Any:
        if self._client is not None:
            response = await self._client.get(self.url, params=dict(query))
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self.url, params=dict(query))

        response.raise_for_status()
        return response.text


@dataclass(frozen=True)
class FetchOutcome:
    """
    Epoch-tagged result of one fetch.

    - epoch: value of the coordinator's counter when the fetch was issued
    - payload: transport payload, or NO_RESULTS on failure
    - failed: True when the transport failed and payload was normalised
    """
    epoch: int
    payload: Any
    failed: bool = False


class FetchCoordinator:
    """
    Issues result fetches and makes sure only the latest one takes effect.

    Every issue() bumps the epoch synchronously. When a fetch completes its
    outcome is applied to the results state only if its epoch is still the
    latest; superseded outcomes are dropped without error. Superseded fetches
    are never cancelled, they run to completion and are ignored.
    """

    def __init__(self, transport: ResultsTransport, results: ResultsState):
        self.transport = transport
        self.results = results
        self._epoch = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def in_flight(self) -> int:
        """Number of fetches that have not completed yet."""
        return len(self._tasks)

    def is_latest(self, epoch: int) -> bool:
        return epoch == self._epoch

    def issue(self, query: Mapping[str, str]) -> asyncio.Task:
        """
        Start a fetch for `query`. Must be called with a running event loop.

        :return: the task; it resolves to the applied FetchOutcome, or None if superseded
        """
        self._epoch += 1
        epoch = self._epoch
        task = asyncio.get_running_loop().create_task(self._run(epoch, dict(query)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Fetch issued", extra={"epoch": epoch})
        return task

    async def _run(self, epoch: int, query: Mapping[str, str]) -> Optional[FetchOutcome]:
        try:
            payload = await self.transport.fetch(query)
            outcome = FetchOutcome(epoch=epoch, payload=payload)
        except (TransportError, httpx.HTTPError) as e:
            logger.warning("Results fetch failed", extra={"epoch": epoch, "error": str(e)})
            outcome = FetchOutcome(epoch=epoch, payload=NO_RESULTS, failed=True)
        except Exception:
            logger.exception("Results transport raised unexpectedly", extra={"epoch": epoch})
            outcome = FetchOutcome(epoch=epoch, payload=NO_RESULTS, failed=True)

        return self.apply(outcome)

    def apply(self, outcome: FetchOutcome) -> Optional[FetchOutcome]:
        """Apply an outcome to the results state if it is still the latest."""
        if not self.is_latest(outcome.epoch):
            logger.debug("Discarding superseded fetch", extra={"epoch": outcome.epoch, "latest": self._epoch})
            return None

        self.results.update(outcome.payload, epoch=outcome.epoch)
        return outcome

    async def wait_idle(self) -> None:
        """Wait for every fetch issued so far (including ones issued while waiting)."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending)
