"""Tests for the client-side status poller."""

import asyncio

import httpx
import pytest

from jobsearch.client.poller import StatusPoller
from jobsearch.core.errors import RequestNotFound, TransientPollError


def _fetcher(*outcomes: object):  # type: ignore[no-untyped-def]
    """Build a fetch callable that yields snapshots or raises exceptions in order."""
    queue = list(outcomes)

    async def fetch() -> dict[str, object]:
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return {"id": "r1", "status": outcome}

    return fetch


class TestStatusPoller:
    async def test_stops_on_terminal(self) -> None:
        seen: list[str] = []
        poller = StatusPoller(
            _fetcher("pending", "processing", "enriching", "completed"),
            interval=0.001,
            on_status=lambda s: seen.append(s["status"]),
        )
        snapshot = await poller.run()
        assert snapshot == {"id": "r1", "status": "completed"}
        assert seen == ["pending", "processing", "enriching", "completed"]
        assert poller.polls == 4

    @pytest.mark.parametrize("terminal", ["failed", "cancelled"])
    async def test_any_terminal_status(self, terminal: str) -> None:
        poller = StatusPoller(_fetcher("processing", terminal), interval=0.001)
        snapshot = await poller.run()
        assert snapshot is not None
        assert snapshot["status"] == terminal

    async def test_transient_failures_retried(self) -> None:
        request = httpx.Request("GET", "http://test")
        poller = StatusPoller(
            _fetcher(
                httpx.ConnectError("refused", request=request),
                TransientPollError("502"),
                OSError("reset"),
                "completed",
            ),
            interval=0.001,
        )
        snapshot = await poller.run()
        assert snapshot is not None
        assert snapshot["status"] == "completed"
        assert poller.failures == 3

    async def test_not_found_propagates(self) -> None:
        poller = StatusPoller(_fetcher(RequestNotFound("r1")), interval=0.001)
        with pytest.raises(RequestNotFound):
            await poller.run()

    async def test_stop_from_callback(self) -> None:
        poller: StatusPoller

        def on_status(snapshot: dict[str, object]) -> None:
            poller.stop()

        poller = StatusPoller(_fetcher("processing"), interval=10, on_status=on_status)
        assert await asyncio.wait_for(poller.run(), timeout=1) is None
        assert poller.polls == 1
        assert poller.stopped

    async def test_stop_interrupts_sleep(self) -> None:
        poller = StatusPoller(_fetcher("processing"), interval=10)
        task = asyncio.create_task(poller.run())
        await asyncio.sleep(0.01)
        poller.stop()
        assert await asyncio.wait_for(task, timeout=1) is None

    async def test_stopped_before_run(self) -> None:
        poller = StatusPoller(_fetcher("processing"), interval=0.001)
        poller.stop()
        assert await poller.run() is None
        assert poller.polls == 0

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="interval must be positive"):
            StatusPoller(_fetcher("pending"), interval=0)

    async def test_stale_snapshot_skipped(self) -> None:
        seen: list[str] = []
        poller = StatusPoller(
            _fetcher("filtering", "processing", "enriching", "completed"),
            interval=0.001,
            on_status=lambda s: seen.append(s["status"]),
        )
        snapshot = await poller.run()
        assert snapshot == {"id": "r1", "status": "completed"}
        assert seen == ["filtering", "enriching", "completed"]
        assert poller.polls == 4
