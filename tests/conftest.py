"""Shared fixtures: sqlite connection, fake adapters, orchestrator."""

import asyncio

import pytest

from jobsearch.core.config import FilterConfig, OrchestratorConfig
from jobsearch.core.db import init_db
from jobsearch.core.schemas import FilteredJob, RawJob, ScrapeResult, SearchParams
from jobsearch.pipeline.matcher import build_filters, normalize_job, run_filter_chain
from jobsearch.pipeline.orchestrator import JobRequestOrchestrator
from jobsearch.platforms.base import EnrichmentAdapter, ScrapeHandle, ScrapeProvider

# ---------------------------------------------------------------------------
# Fake adapters
# ---------------------------------------------------------------------------


class FakeScraper(ScrapeProvider):
    """Returns pre-configured listings; can be held open with ``gate``."""

    def __init__(self, jobs: list[RawJob]) -> None:
        self.jobs = jobs
        self.reported_total: int | None = None
        self.start_calls: list[SearchParams] = []
        self.aborted: list[str] = []
        self.gate: asyncio.Event | None = None
        self.collect_entered = asyncio.Event()
        self.collect_delay = 0.0
        self.collect_error: Exception | None = None

    @property
    def provider_id(self) -> str:
        return "fake"

    async def start(self, params: SearchParams) -> ScrapeHandle:
        self.start_calls.append(params)
        return ScrapeHandle(run_id=f"run-{len(self.start_calls)}")

    async def collect(self, handle: ScrapeHandle) -> ScrapeResult:
        self.collect_entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.collect_delay:
            await asyncio.sleep(self.collect_delay)
        if self.collect_error is not None:
            raise self.collect_error
        return ScrapeResult(jobs=list(self.jobs), reported_total=self.reported_total)

    async def abort(self, handle: ScrapeHandle) -> None:
        self.aborted.append(handle.run_id)


class FakeEnricher(EnrichmentAdapter):
    """Real filter chain; contacts come from ``emails`` keyed by job title."""

    def __init__(self) -> None:
        self.emails: dict[str, str] = {}
        self.filter_calls = 0
        self.enrich_calls: list[tuple[str | None, str]] = []
        self.aborted: list[str] = []
        self.gate: asyncio.Event | None = None
        self.enrich_entered = asyncio.Event()
        self.filter_gate: asyncio.Event | None = None
        self.filter_entered = asyncio.Event()
        self.enrich_error: Exception | None = None

    async def filter(self, raw_jobs: list[RawJob], params: SearchParams) -> list[FilteredJob]:
        self.filter_calls += 1
        self.filter_entered.set()
        if self.filter_gate is not None:
            await self.filter_gate.wait()
        jobs = [normalize_job(r) for r in raw_jobs]
        return run_filter_chain(jobs, build_filters(params, FilterConfig()))

    async def enrich(
        self,
        jobs: list[FilteredJob],
        resume_text: str | None,
        request_id: str,
    ) -> list[FilteredJob]:
        self.enrich_calls.append((resume_text, request_id))
        self.enrich_entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.enrich_error is not None:
            raise self.enrich_error
        result = []
        for job in jobs:
            email = self.emails.get(job.title)
            if email:
                job = job.model_copy(update={"contact_email": email, "can_apply": True})
            result.append(job)
        return result

    async def abort(self, request_id: str) -> None:
        self.aborted.append(request_id)


def _raw(title: str, company: str = "Acme", job_id: str = "1") -> RawJob:
    return RawJob(
        job_title=title,
        company_name=company,
        location="Remote",
        description=f"{title} at {company}",
        apply_url=f"https://www.linkedin.com/jobs/view/{job_id}/",
        job_poster_url=f"https://www.linkedin.com/in/poster-{job_id}",
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def conn(tmp_path):  # type: ignore[no-untyped-def]
    """Fresh SQLite connection per test."""
    c = init_db(tmp_path / "requests.db")
    yield c
    c.close()


@pytest.fixture()
def raw_jobs() -> list[RawJob]:
    return [
        _raw("Senior Python Engineer", "Acme", "1"),
        _raw("Backend Developer", "Globex", "2"),
        _raw("Data Engineer", "Initech", "3"),
    ]


@pytest.fixture()
def scraper(raw_jobs: list[RawJob]) -> FakeScraper:
    return FakeScraper(raw_jobs)


@pytest.fixture()
def enricher() -> FakeEnricher:
    e = FakeEnricher()
    e.emails = {
        "Senior Python Engineer": "hr@acme.test",
        "Backend Developer": "jobs@globex.test",
    }
    return e


@pytest.fixture()
def orchestrator_config() -> OrchestratorConfig:
    return OrchestratorConfig(adapter_timeout_seconds=5)


@pytest.fixture()
async def orchestrator(conn, scraper, enricher, orchestrator_config):  # type: ignore[no-untyped-def]
    orch = JobRequestOrchestrator(conn, scraper, enricher, orchestrator_config)
    yield orch
    await orch.shutdown()


@pytest.fixture()
def params() -> SearchParams:
    return SearchParams(keyword="Python Engineer", location="Remote", job_count=10)
