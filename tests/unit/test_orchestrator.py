"""Tests for the job request orchestrator's lifecycle."""

import asyncio

import pytest

from jobsearch.client.poller import StatusPoller
from jobsearch.core import db
from jobsearch.core.config import OrchestratorConfig
from jobsearch.core.errors import AdapterError, InvalidSearchParams, RequestNotFound
from jobsearch.core.schemas import RequestStatus, SearchParams
from jobsearch.pipeline.counters import display_total_jobs
from jobsearch.pipeline.orchestrator import INTERRUPTED_MESSAGE, JobRequestOrchestrator
from jobsearch.pipeline.state import progress_rank


def _distinct(statuses: list[str]) -> list[str]:
    """Collapse consecutive repeats."""
    return [s for i, s in enumerate(statuses) if i == 0 or statuses[i - 1] != s]


async def _run_to_end(orchestrator, user_id, params):  # type: ignore[no-untyped-def]
    request_id = await orchestrator.start(user_id, params)
    await orchestrator.join(request_id)
    return orchestrator.get_status(request_id, user_id)


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------
class TestStart:
    async def test_returns_before_scraping(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        request_id = await orchestrator.start("u1", params)
        request = orchestrator.get_status(request_id, "u1")
        assert request.status in (RequestStatus.PENDING, RequestStatus.PROCESSING)
        assert request.abort_requested is False
        assert request.search_params == params

    async def test_ids_are_unique(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        ids = {await orchestrator.start("u1", params) for _ in range(5)}
        assert len(ids) == 5

    async def test_job_count_over_limit_rejected(self, conn, scraper, enricher) -> None:  # type: ignore[no-untyped-def]
        orch = JobRequestOrchestrator(conn, scraper, enricher, OrchestratorConfig(max_job_count=50))
        with pytest.raises(InvalidSearchParams, match="at most 50"):
            await orch.start("u1", SearchParams(keyword="x", location="y", job_count=51))
        assert db.list_requests(conn, "u1") == []
        assert scraper.start_calls == []

    async def test_one_scrape_per_start(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        await _run_to_end(orchestrator, "u1", params)
        assert len(scraper.start_calls) == 1


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------
class TestCompletedRequest:
    async def test_completes_with_counters(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        request = await _run_to_end(orchestrator, "u1", params)

        assert request.status == RequestStatus.COMPLETED
        assert request.error_message is None
        assert request.completed_at is not None
        results = request.enriched_results
        assert results is not None
        assert len(results.jobs) == 3
        assert results.can_apply_count == 2
        assert results.free_jobs == 2
        assert results.locked_jobs == 1
        assert results.scraped_count == 3
        assert results.total_jobs_found == display_total_jobs(request.id)
        assert results.total_jobs_found_is_estimate is True

    async def test_intermediate_results_persisted(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        request = await _run_to_end(orchestrator, "u1", params)
        assert request.raw_results is not None
        assert len(request.raw_results) == 3
        assert request.filtered_results is not None
        assert len(request.filtered_results) == 3

    async def test_reported_total_used_when_available(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        scraper.reported_total = 4321
        request = await _run_to_end(orchestrator, "u1", params)
        assert request.enriched_results is not None
        assert request.enriched_results.total_jobs_found == 4321
        assert request.enriched_results.total_jobs_found_is_estimate is False

    async def test_resume_passed_to_enrichment(self, orchestrator, enricher) -> None:  # type: ignore[no-untyped-def]
        p = SearchParams(keyword="x", location="y", resume_text="10 years of Python")
        request = await _run_to_end(orchestrator, "u1", p)
        assert enricher.enrich_calls == [("10 years of Python", request.id)]

    async def test_repeated_reads_identical(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        request = await _run_to_end(orchestrator, "u1", params)
        again = orchestrator.get_status(request.id, "u1")
        assert again == request

    async def test_every_status_observed_in_order(self, orchestrator, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        scraper.gate = asyncio.Event()
        enricher.filter_gate = asyncio.Event()
        enricher.gate = asyncio.Event()

        request_id = await orchestrator.start("u1", params)
        seen = [orchestrator.get_status(request_id, "u1").status]
        for entered, gate in (
            (scraper.collect_entered, scraper.gate),
            (enricher.filter_entered, enricher.filter_gate),
            (enricher.enrich_entered, enricher.gate),
        ):
            await entered.wait()
            seen.append(orchestrator.get_status(request_id, "u1").status)
            gate.set()
        await orchestrator.join(request_id)
        seen.append(orchestrator.get_status(request_id, "u1").status)

        assert seen == [
            RequestStatus.PENDING,
            RequestStatus.PROCESSING,
            RequestStatus.FILTERING,
            RequestStatus.ENRICHING,
            RequestStatus.COMPLETED,
        ]
        ranks = [progress_rank(s) for s in seen]
        assert ranks == sorted(ranks)

    async def test_two_pollers_see_same_sequence(self, orchestrator, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        scraper.gate = asyncio.Event()
        enricher.filter_gate = asyncio.Event()
        enricher.gate = asyncio.Event()
        request_id = await orchestrator.start("u1", params)

        async def fetch() -> dict[str, object]:
            request = orchestrator.get_status(request_id, "u1")
            return {"id": request.id, "status": request.status.value}

        seen_a: list[str] = []
        seen_b: list[str] = []
        pollers = [
            StatusPoller(fetch, interval=0.001, on_status=lambda s: seen_a.append(s["status"])),
            StatusPoller(fetch, interval=0.001, on_status=lambda s: seen_b.append(s["status"])),
        ]

        async def step() -> None:
            for status, gate in (
                ("processing", scraper.gate),
                ("filtering", enricher.filter_gate),
                ("enriching", enricher.gate),
            ):
                while not (seen_a and seen_b and seen_a[-1] == status and seen_b[-1] == status):
                    await asyncio.sleep(0.001)
                gate.set()

        results = await asyncio.wait_for(
            asyncio.gather(pollers[0].run(), pollers[1].run(), step()), timeout=5,
        )

        assert results[0] == results[1] == {"id": request_id, "status": "completed"}
        assert _distinct(seen_a) == _distinct(seen_b)
        assert _distinct(seen_a)[-4:] == ["processing", "filtering", "enriching", "completed"]

    async def test_concurrent_requests_per_user(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        ids = [await orchestrator.start("u1", params) for _ in range(3)]
        for request_id in ids:
            await orchestrator.join(request_id)
        statuses = {orchestrator.get_status(i, "u1").status for i in ids}
        assert statuses == {RequestStatus.COMPLETED}


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------
class TestFailedRequest:
    async def test_adapter_error_message_kept(self, orchestrator, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        scraper.collect_error = AdapterError("Failed to scrape LinkedIn jobs: vendor down")
        request = await _run_to_end(orchestrator, "u1", params)

        assert request.status == RequestStatus.FAILED
        assert request.error_message == "Failed to scrape LinkedIn jobs: vendor down"
        assert request.enriched_results is None
        assert request.completed_at is not None
        assert enricher.filter_calls == 0

    async def test_unexpected_error_sanitized(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        scraper.collect_error = RuntimeError("token=secret in traceback")
        request = await _run_to_end(orchestrator, "u1", params)

        assert request.status == RequestStatus.FAILED
        assert request.error_message == "Job search failed while scraping jobs. Please try again."
        assert "secret" not in request.error_message

    async def test_enrichment_failure(self, orchestrator, enricher, params) -> None:  # type: ignore[no-untyped-def]
        enricher.enrich_error = AdapterError("Failed to look up job poster contacts: 502")
        request = await _run_to_end(orchestrator, "u1", params)
        assert request.status == RequestStatus.FAILED
        assert request.error_message == "Failed to look up job poster contacts: 502"
        assert request.filtered_results is not None

    async def test_timeout_fails_request(self, conn, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        orch = JobRequestOrchestrator(
            conn, scraper, enricher, OrchestratorConfig(adapter_timeout_seconds=0.05),
        )
        scraper.collect_delay = 5
        request = await _run_to_end(orch, "u1", params)

        assert request.status == RequestStatus.FAILED
        assert request.error_message == "Job search timed out after 0.05 seconds while scraping jobs"
        assert scraper.aborted == ["run-1"]


# ---------------------------------------------------------------------------
# Abort
# ---------------------------------------------------------------------------
class TestAbort:
    async def test_abort_before_chain_runs(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        request_id = await orchestrator.start("u1", params)
        await orchestrator.abort(request_id, "u1")
        await orchestrator.join(request_id)

        request = orchestrator.get_status(request_id, "u1")
        assert request.status == RequestStatus.CANCELLED
        assert request.abort_requested is True
        assert scraper.start_calls == []

    async def test_abort_while_scraping(self, orchestrator, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        scraper.gate = asyncio.Event()
        request_id = await orchestrator.start("u1", params)
        await scraper.collect_entered.wait()

        await orchestrator.abort(request_id, "u1")
        assert orchestrator.get_status(request_id, "u1").status == RequestStatus.PROCESSING
        scraper.gate.set()
        await orchestrator.join(request_id)

        request = orchestrator.get_status(request_id, "u1")
        assert request.status == RequestStatus.CANCELLED
        assert request.enriched_results is None
        assert request.error_message is None
        assert "run-1" in scraper.aborted
        assert enricher.filter_calls == 0

    async def test_abort_while_enriching(self, orchestrator, enricher, params) -> None:  # type: ignore[no-untyped-def]
        enricher.gate = asyncio.Event()
        request_id = await orchestrator.start("u1", params)
        await enricher.enrich_entered.wait()

        await orchestrator.abort(request_id, "u1")
        await asyncio.sleep(0)
        enricher.gate.set()
        await orchestrator.join(request_id)

        request = orchestrator.get_status(request_id, "u1")
        assert request.status == RequestStatus.CANCELLED
        assert request.enriched_results is None
        assert enricher.aborted == [request_id]

    async def test_error_after_abort_resolves_to_cancelled(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        scraper.gate = asyncio.Event()
        scraper.collect_error = AdapterError("Failed to scrape LinkedIn jobs: run aborted")
        request_id = await orchestrator.start("u1", params)
        await scraper.collect_entered.wait()

        await orchestrator.abort(request_id, "u1")
        scraper.gate.set()
        await orchestrator.join(request_id)

        request = orchestrator.get_status(request_id, "u1")
        assert request.status == RequestStatus.CANCELLED
        assert request.error_message is None

    async def test_abort_terminal_is_noop(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        request = await _run_to_end(orchestrator, "u1", params)
        await orchestrator.abort(request.id, "u1")
        await orchestrator.abort(request.id, "u1")

        after = orchestrator.get_status(request.id, "u1")
        assert after.status == RequestStatus.COMPLETED
        assert after.abort_requested is False
        assert after.enriched_results == request.enriched_results

    async def test_abort_twice_same_outcome(self, orchestrator, scraper, params) -> None:  # type: ignore[no-untyped-def]
        scraper.gate = asyncio.Event()
        request_id = await orchestrator.start("u1", params)
        await scraper.collect_entered.wait()
        await orchestrator.abort(request_id, "u1")
        await orchestrator.abort(request_id, "u1")
        scraper.gate.set()
        await orchestrator.join(request_id)
        assert orchestrator.get_status(request_id, "u1").status == RequestStatus.CANCELLED


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------
class TestOwnership:
    async def test_unknown_id(self, orchestrator) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(RequestNotFound):
            orchestrator.get_status("missing", "u1")

    async def test_foreign_id_looks_unknown(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        request_id = await orchestrator.start("owner", params)
        with pytest.raises(RequestNotFound):
            orchestrator.get_status(request_id, "intruder")
        with pytest.raises(RequestNotFound):
            await orchestrator.abort(request_id, "intruder")
        await orchestrator.join(request_id)
        assert orchestrator.get_status(request_id, "owner").abort_requested is False

    async def test_list_only_own_requests(self, orchestrator, params) -> None:  # type: ignore[no-untyped-def]
        mine = await orchestrator.start("u1", params)
        await orchestrator.start("u2", params)
        assert [r.id for r in orchestrator.list_requests("u1")] == [mine]


# ---------------------------------------------------------------------------
# Restart handling
# ---------------------------------------------------------------------------
class TestRecovery:
    def test_recover_interrupted(self, conn, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        db.insert_request(conn, "a", "u1", params)
        db.insert_request(conn, "b", "u1", params)
        db.transition(conn, "b", RequestStatus.PENDING, RequestStatus.PROCESSING)
        db.insert_request(conn, "c", "u1", params)
        db.request_abort(conn, "c")

        orch = JobRequestOrchestrator(conn, scraper, enricher, OrchestratorConfig())
        assert orch.recover_interrupted() == 3

        a = db.get_request(conn, "a")
        b = db.get_request(conn, "b")
        c = db.get_request(conn, "c")
        assert a is not None and a.status == RequestStatus.FAILED
        assert a.error_message == INTERRUPTED_MESSAGE
        assert b is not None and b.status == RequestStatus.FAILED
        assert c is not None and c.status == RequestStatus.CANCELLED

    def test_recover_leaves_terminal_rows(self, conn, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        db.insert_request(conn, "a", "u1", params)
        db.transition(conn, "a", RequestStatus.PENDING, RequestStatus.CANCELLED)
        orch = JobRequestOrchestrator(conn, scraper, enricher, OrchestratorConfig())
        assert orch.recover_interrupted() == 0

    async def test_shutdown_marks_running_failed(self, conn, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        orch = JobRequestOrchestrator(conn, scraper, enricher, OrchestratorConfig())
        scraper.gate = asyncio.Event()
        request_id = await orch.start("u1", params)
        await scraper.collect_entered.wait()

        await orch.shutdown()

        request = orch.get_status(request_id, "u1")
        assert request.status == RequestStatus.FAILED
        assert request.error_message == INTERRUPTED_MESSAGE

    async def test_shutdown_after_abort_marks_cancelled(self, conn, scraper, enricher, params) -> None:  # type: ignore[no-untyped-def]
        orch = JobRequestOrchestrator(conn, scraper, enricher, OrchestratorConfig())
        scraper.gate = asyncio.Event()
        request_id = await orch.start("u1", params)
        await scraper.collect_entered.wait()

        await orch.abort(request_id, "u1")
        await orch.shutdown()

        request = orch.get_status(request_id, "u1")
        assert request.status == RequestStatus.CANCELLED
        assert request.abort_requested is True
        assert request.error_message is None
