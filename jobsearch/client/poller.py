"""Client-side status poller.

Observes one request until it reaches a terminal status. Polling is
read-only, so any number of pollers may watch the same request.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from jobsearch.core.errors import TransientPollError
from jobsearch.core.schemas import RequestStatus
from jobsearch.pipeline.state import is_terminal, progress_rank

logger = logging.getLogger(__name__)

StatusSnapshot = dict[str, Any]
Fetch = Callable[[], Awaitable[StatusSnapshot]]
OnStatus = Callable[[StatusSnapshot], None]

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (httpx.HTTPError, OSError, TransientPollError)


class StatusPoller:
    """Poll *fetch* every *interval* seconds until a terminal status.

    Usage::

        poller = StatusPoller(lambda: client.get_status(request_id))
        snapshot = await poller.run()  # None if stopped locally
    """

    def __init__(
        self,
        fetch: Fetch,
        interval: float = 2.0,
        on_status: OnStatus | None = None,
    ) -> None:
        if interval <= 0:
            msg = "interval must be positive"
            raise ValueError(msg)
        self._fetch = fetch
        self._interval = interval
        self._on_status = on_status
        self._stopped = asyncio.Event()
        self.polls = 0
        self.failures = 0
        self._last_rank = -1

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        """Stop polling at the next opportunity (local cancellation)."""
        self._stopped.set()

    async def run(self) -> StatusSnapshot | None:
        """Poll until a terminal snapshot is seen and return it.

        Returns None if :meth:`stop` was called first. Transient fetch
        failures are logged and retried on the next tick. A snapshot older
        than one already seen (e.g. from a stale cache) is skipped.
        """
        while not self.stopped:
            snapshot = await self._poll_once()
            if snapshot is not None and self._accept(snapshot):
                if self._on_status is not None:
                    self._on_status(snapshot)
                if is_terminal(RequestStatus(snapshot["status"])):
                    return snapshot
            if await self._sleep():
                break
        return None

    def _accept(self, snapshot: StatusSnapshot) -> bool:
        rank = progress_rank(RequestStatus(snapshot["status"]))
        if rank < self._last_rank:
            logger.debug("Skipping stale '%s' snapshot of %s", snapshot["status"], snapshot.get("id"))
            return False
        self._last_rank = rank
        return True

    async def _poll_once(self) -> StatusSnapshot | None:
        self.polls += 1
        try:
            return await self._fetch()
        except TRANSIENT_ERRORS as e:
            self.failures += 1
            logger.warning("Status poll failed, retrying in %.1fs: %s", self._interval, e)
            return None

    async def _sleep(self) -> bool:
        """Wait one interval; True if stopped while waiting."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            return False
        return True
