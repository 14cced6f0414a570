"""Async HTTP client for the job search service."""

import logging
from types import TracebackType
from typing import Any

import httpx

from jobsearch.client.poller import OnStatus, StatusPoller, StatusSnapshot
from jobsearch.core.errors import (
    AdapterError,
    InvalidSearchParams,
    RequestNotFound,
    TransientPollError,
)

logger = logging.getLogger(__name__)


class JobSearchClient:
    """Calls the service's HTTP API on behalf of one user."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        *,
        user_header: str = "X-User-Id",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={user_header: user_id},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "JobSearchClient":
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

    async def start_search(self, payload: dict[str, Any]) -> str:
        """Create a request; *payload* uses the API's camelCase fields."""
        response = await self._client.post("/api/scrape-job", json=payload)
        _raise_for_error(response)
        request_id: str = response.json()["requestId"]
        logger.info("Started job search %s", request_id)
        return request_id

    async def get_status(self, request_id: str) -> StatusSnapshot:
        response = await self._client.get(f"/api/scrape-job/{request_id}")
        _raise_for_error(response, request_id)
        snapshot: StatusSnapshot = response.json()
        return snapshot

    async def abort(self, request_id: str) -> None:
        response = await self._client.post(f"/api/scrape-job/{request_id}/abort")
        _raise_for_error(response, request_id)

    async def list_requests(self) -> list[StatusSnapshot]:
        response = await self._client.get("/api/scrape-jobs")
        _raise_for_error(response)
        requests: list[StatusSnapshot] = response.json()["requests"]
        return requests

    async def wait(
        self,
        request_id: str,
        interval: float = 2.0,
        on_status: OnStatus | None = None,
    ) -> StatusSnapshot | None:
        """Poll until *request_id* reaches a terminal status."""
        poller = StatusPoller(lambda: self.get_status(request_id), interval, on_status)
        return await poller.run()


def _raise_for_error(response: httpx.Response, request_id: str = "") -> None:
    if response.is_success:
        return
    error = _error_text(response)
    status = response.status_code
    if status == 404 and request_id:
        raise RequestNotFound(request_id)
    if status == 400:
        raise InvalidSearchParams(error)
    if status == 429 or status >= 500:
        msg = f"Service returned {status}: {error}"
        raise TransientPollError(msg)
    msg = f"Service returned {status}: {error}"
    raise AdapterError(msg)


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text
