"""Job request orchestrator: owns each request's lifecycle.

Step chain for one request (runs as its own asyncio task):
  1. pending -> processing, start the scrape, record its run id
  2. collect listings, store raw_results         -> filtering
  3. filter listings, store filtered_results     -> enriching
  4. enrich with contacts, build counters        -> completed

The abort flag is read from the database before every transition. Once it
is set, the chain asks the active adapter to stop and ends in ``cancelled``
as soon as the in-flight adapter call returns. Adapter errors end in
``failed`` with a message safe to show to users.
"""

import asyncio
import logging
import sqlite3
import uuid
from collections.abc import Awaitable
from typing import TypeVar

from jobsearch.core import db
from jobsearch.core.config import OrchestratorConfig
from jobsearch.core.errors import AdapterError, InvalidSearchParams, RequestNotFound
from jobsearch.core.schemas import EnrichedResults, JobRequest, RequestStatus, SearchParams
from jobsearch.pipeline.counters import build_enriched_results
from jobsearch.pipeline.state import next_stage
from jobsearch.platforms.base import EnrichmentAdapter, ScrapeHandle, ScrapeProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

INTERRUPTED_MESSAGE = "Job search was interrupted before it finished. Please try again."


class _Superseded(Exception):
    """The row left the expected status under us; the chain must stop."""


class _AbortObserved(Exception):
    """The abort flag was seen at a checkpoint."""


class JobRequestOrchestrator:
    """Creates requests, drives their step chains, and serves status/abort.

    Usage::

        orchestrator = JobRequestOrchestrator(conn, scraper, enricher, config)
        request_id = await orchestrator.start(user_id, params)
        snapshot = orchestrator.get_status(request_id, user_id)
        await orchestrator.abort(request_id, user_id)
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        scraper: ScrapeProvider,
        enricher: EnrichmentAdapter,
        config: OrchestratorConfig,
    ) -> None:
        self._conn = conn
        self._scraper = scraper
        self._enricher = enricher
        self._config = config
        self._chains: dict[str, asyncio.Task[None]] = {}
        self._signals: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self, user_id: str, params: SearchParams) -> str:
        """Create a request and schedule its step chain. Returns immediately.

        Raises:
            InvalidSearchParams: If the params violate configured limits.
        """
        if params.job_count > self._config.max_job_count:
            msg = f"job_count must be at most {self._config.max_job_count}"
            raise InvalidSearchParams(msg)

        request_id = uuid.uuid4().hex
        db.insert_request(self._conn, request_id, user_id, params)
        logger.info(
            "Request %s created for user %s: '%s' in '%s' (%s, %d jobs)",
            request_id, user_id, params.keyword, params.location,
            params.work_type.value, params.job_count,
        )

        task = asyncio.create_task(self._run(request_id, params), name=f"job-request-{request_id}")
        self._chains[request_id] = task
        task.add_done_callback(lambda _t: self._chains.pop(request_id, None))
        return request_id

    def get_status(self, request_id: str, user_id: str) -> JobRequest:
        """Return the current snapshot of a request owned by *user_id*.

        Raises:
            RequestNotFound: For unknown ids and for other users' ids alike.
        """
        request = db.get_request(self._conn, request_id)
        if request is None or request.user_id != user_id:
            raise RequestNotFound(request_id)
        return request

    def list_requests(self, user_id: str, limit: int = 10) -> list[JobRequest]:
        """Recent requests of *user_id*, newest first."""
        return db.list_requests(self._conn, user_id, limit)

    async def abort(self, request_id: str, user_id: str) -> None:
        """Request cancellation. No-op for terminal requests.

        Sets the abort flag and signals the active adapter in the
        background; the final ``cancelled`` transition is made by the chain.

        Raises:
            RequestNotFound: For unknown ids and for other users' ids alike.
        """
        request = self.get_status(request_id, user_id)
        if request.is_terminal:
            logger.debug("Abort of %s ignored: already %s", request_id, request.status.value)
            return
        if not db.request_abort(self._conn, request_id):
            return
        logger.info("Abort requested for %s while %s", request_id, request.status.value)

        if request_id not in self._chains:
            # No chain will observe the flag (e.g. created by another process).
            self._finish(request_id, request.status, RequestStatus.CANCELLED)
            return
        self._spawn_signal(self._signal_adapters(request))

    async def join(self, request_id: str) -> None:
        """Wait until the chain of *request_id* (if running here) ends."""
        task = self._chains.get(request_id)
        if task is not None:
            await asyncio.shield(task)

    def recover_interrupted(self) -> int:
        """Fail requests left non-terminal by a previous process.

        Returns the number of requests marked failed.
        """
        recovered = 0
        for request in db.list_active_requests(self._conn):
            if request.id in self._chains:
                continue
            if request.abort_requested:
                ok = db.transition(self._conn, request.id, request.status, RequestStatus.CANCELLED)
            else:
                ok = db.transition(
                    self._conn, request.id, request.status, RequestStatus.FAILED,
                    error_message=INTERRUPTED_MESSAGE,
                )
            recovered += int(ok)
        if recovered:
            logger.warning("Closed %d requests interrupted by a restart", recovered)
        return recovered

    async def shutdown(self) -> None:
        """Cancel running chains.

        Each records itself as failed, or cancelled if abort was requested.
        """
        tasks = [*self._chains.values(), *self._signals]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Step chain
    # ------------------------------------------------------------------

    async def _run(self, request_id: str, params: SearchParams) -> None:
        status = RequestStatus.PENDING
        stage = "starting the job search"
        handle: ScrapeHandle | None = None
        try:
            self._checkpoint(request_id)
            status = self._advance(request_id, status)

            stage = "starting the job scrape"
            handle = await self._call(self._scraper.start(params), stage)
            db.set_scrape_run_id(self._conn, request_id, handle.run_id)
            self._checkpoint(request_id)

            stage = "scraping jobs"
            scrape = await self._call(self._scraper.collect(handle), stage)
            db.store_raw_results(self._conn, request_id, scrape.jobs)
            self._checkpoint(request_id)
            status = self._advance(request_id, status)

            stage = "filtering jobs"
            filtered = await self._call(self._enricher.filter(scrape.jobs, params), stage)
            db.store_filtered_results(self._conn, request_id, filtered)
            self._checkpoint(request_id)
            status = self._advance(request_id, status)

            stage = "finding contacts"
            enriched = await self._call(
                self._enricher.enrich(filtered, params.resume_text, request_id), stage,
            )
            self._checkpoint(request_id)

            results = build_enriched_results(
                request_id, enriched, len(scrape.jobs), scrape.reported_total,
            )
            self._finish(request_id, status, RequestStatus.COMPLETED, enriched_results=results)
        except _Superseded:
            logger.info("Request %s changed outside its chain, stopping", request_id)
        except _AbortObserved:
            await self._stop_scrape(status, handle)
            self._finish(request_id, status, RequestStatus.CANCELLED)
        except asyncio.CancelledError:
            if db.is_abort_requested(self._conn, request_id):
                self._finish(request_id, status, RequestStatus.CANCELLED)
            else:
                self._finish(
                    request_id, status, RequestStatus.FAILED, error_message=INTERRUPTED_MESSAGE,
                )
            raise
        except Exception as e:
            await self._stop_scrape(status, handle)
            if db.is_abort_requested(self._conn, request_id):
                self._finish(request_id, status, RequestStatus.CANCELLED)
                return
            if isinstance(e, AdapterError):
                logger.warning("Request %s failed while %s: %s", request_id, stage, e)
                message = str(e)
            else:
                logger.exception("Request %s failed unexpectedly while %s", request_id, stage)
                message = f"Job search failed while {stage}. Please try again."
            self._finish(request_id, status, RequestStatus.FAILED, error_message=message)

    async def _call(self, awaitable: Awaitable[T], stage: str) -> T:
        """Await an adapter call under the configured time ceiling."""
        timeout = self._config.adapter_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            msg = f"Job search timed out after {timeout:g} seconds while {stage}"
            raise AdapterError(msg) from e

    def _checkpoint(self, request_id: str) -> None:
        if db.is_abort_requested(self._conn, request_id):
            raise _AbortObserved

    def _advance(self, request_id: str, current: RequestStatus) -> RequestStatus:
        """Move one step along the success path."""
        target = next_stage(current)
        if target is None or not db.transition(self._conn, request_id, current, target):
            raise _Superseded
        logger.info("Request %s: %s -> %s", request_id, current.value, target.value)
        return target

    def _finish(
        self,
        request_id: str,
        current: RequestStatus,
        target: RequestStatus,
        *,
        enriched_results: EnrichedResults | None = None,
        error_message: str | None = None,
    ) -> None:
        ok = db.transition(
            self._conn, request_id, current, target,
            enriched_results=enriched_results,
            error_message=error_message,
        )
        if ok:
            logger.info("Request %s: %s -> %s", request_id, current.value, target.value)
        else:
            logger.debug("Request %s already left %s, not marking %s",
                         request_id, current.value, target.value)

    # ------------------------------------------------------------------
    # Best-effort adapter cancellation
    # ------------------------------------------------------------------

    async def _stop_scrape(self, status: RequestStatus, handle: ScrapeHandle | None) -> None:
        if handle is None or status is not RequestStatus.PROCESSING:
            return
        try:
            await self._scraper.abort(handle)
        except Exception:
            logger.warning("Best-effort scrape abort failed for run %s", handle.run_id, exc_info=True)

    async def _signal_adapters(self, request: JobRequest) -> None:
        if request.status is RequestStatus.PROCESSING and request.scrape_run_id:
            await self._stop_scrape(request.status, ScrapeHandle(run_id=request.scrape_run_id))
        elif request.status in (RequestStatus.FILTERING, RequestStatus.ENRICHING):
            try:
                await self._enricher.abort(request.id)
            except Exception:
                logger.warning("Best-effort enrichment abort failed for %s", request.id, exc_info=True)

    def _spawn_signal(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._signals.add(task)
        task.add_done_callback(self._signals.discard)
