"""Async client for the Apify v2 REST API.

Only the calls the service needs: start an actor run, wait for it, read its
dataset, and abort it. Transient HTTP failures (network errors, 429, 5xx)
are retried with exponential backoff.
"""

import logging
import os
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from jobsearch.core.config import ApifyConfig
from jobsearch.core.errors import AdapterError

logger = logging.getLogger(__name__)

RUN_SUCCEEDED = "SUCCEEDED"
TERMINAL_RUN_STATUSES = frozenset({"SUCCEEDED", "FAILED", "TIMED-OUT", "ABORTED"})


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


class ApifyClient:
    """Thin async wrapper over the Apify REST API.

    Usage::

        async with ApifyClient.from_env(config) as client:
            items = await client.run_actor("owner/actor", {"urls": [...]})
    """

    def __init__(
        self,
        token: str,
        config: ApifyConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=config.request_timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_env(cls, config: ApifyConfig) -> "ApifyClient":
        """Build a client from the token in ``config.token_env``."""
        token = os.environ.get(config.token_env)
        if not token:
            msg = f"{config.token_env} is not configured"
            raise AdapterError(msg)
        return cls(token, config)

    async def __aenter__(self) -> "ApifyClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def start_run(self, actor_id: str, run_input: dict[str, Any]) -> dict[str, Any]:
        """Start an actor run and return its run object (``id``, ``status``, ...)."""
        path = f"/acts/{actor_id.replace('/', '~')}/runs"
        data = await self._request("POST", path, json=run_input)
        run: dict[str, Any] = data["data"]
        logger.info("Apify run %s started for actor %s", run.get("id"), actor_id)
        return run

    async def get_run(self, run_id: str, wait_seconds: int = 0) -> dict[str, Any]:
        params = {"waitForFinish": wait_seconds} if wait_seconds else None
        data = await self._request("GET", f"/actor-runs/{run_id}", params=params)
        run: dict[str, Any] = data["data"]
        return run

    async def wait_for_run(self, run_id: str) -> dict[str, Any]:
        """Long-poll until the run reaches a terminal status."""
        while True:
            run = await self.get_run(run_id, self._config.wait_for_finish_seconds)
            status = run.get("status", "")
            if status in TERMINAL_RUN_STATUSES:
                logger.info("Apify run %s finished with status %s", run_id, status)
                return run
            logger.debug("Apify run %s still %s", run_id, status)

    async def list_items(self, dataset_id: str) -> list[dict[str, Any]]:
        """Return all items from a dataset."""
        data = await self._request(
            "GET",
            f"/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json"},
        )
        if not isinstance(data, list):
            msg = f"Unexpected dataset payload for {dataset_id}"
            raise AdapterError(msg)
        return data

    async def abort_run(self, run_id: str) -> None:
        await self._request("POST", f"/actor-runs/{run_id}/abort")
        logger.info("Apify run %s abort requested", run_id)

    async def run_actor(
        self,
        actor_id: str,
        run_input: dict[str, Any],
        on_start: Callable[[str], Awaitable[None] | None] | None = None,
    ) -> list[dict[str, Any]]:
        """Start a run, wait for it, and return its dataset items.

        ``on_start`` receives the run id as soon as the run exists, so the
        caller can abort it while waiting.

        Raises:
            AdapterError: If the run does not succeed.
        """
        run = await self.start_run(actor_id, run_input)
        run_id = run["id"]
        if on_start is not None:
            result = on_start(run_id)
            if result is not None:
                await result

        finished = await self.wait_for_run(run_id)
        status = finished.get("status")
        if status != RUN_SUCCEEDED:
            msg = f"Apify actor {actor_id} ended with status {status}"
            raise AdapterError(msg)

        dataset_id = finished.get("defaultDatasetId") or run.get("defaultDatasetId")
        if not dataset_id:
            msg = f"Apify run {run_id} has no dataset"
            raise AdapterError(msg)
        return await self.list_items(dataset_id)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.max_retries),
            wait=wait_exponential(multiplier=self._config.retry_backoff_seconds, max=16),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                response = await self._client.request(method, path, **kwargs)
                response.raise_for_status()
        return response.json()
