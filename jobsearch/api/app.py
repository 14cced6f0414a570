"""HTTP surface of the job search service (FastAPI).

All routes act on behalf of the user named by the configured user header,
which an upstream session layer is expected to set.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException

from jobsearch.core import db
from jobsearch.core.config import Settings
from jobsearch.core.errors import InvalidSearchParams, RequestNotFound
from jobsearch.core.schemas import JobRequest, SearchParams, WorkType
from jobsearch.pipeline.enricher import ContactEnricher
from jobsearch.pipeline.orchestrator import JobRequestOrchestrator
from jobsearch.platforms.apify import ApifyClient
from jobsearch.platforms.linkedin.adapter import ApifyJobScraper
from jobsearch.platforms.linkedin.searcher import build_search_url, parse_search_url

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class StartSearchBody(BaseModel):
    """Body of ``POST /api/scrape-job``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    linkedin_url: str | None = None
    keyword: str | None = None
    location: str | None = None
    work_type: str | None = None
    resume_text: str | None = None
    job_count: int | None = None
    exclude_keywords: list[str] = Field(default_factory=list)


class LinkedInUrlBody(BaseModel):
    """Body of ``POST /api/generate-linkedin-url``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    keyword: str
    location: str
    work_type: str = WorkType.REMOTE.value


def to_search_params(body: StartSearchBody, default_job_count: int) -> SearchParams:
    """Normalize a start body into SearchParams.

    A ``linkedinUrl`` supplies keyword, location, and work type; explicit
    fields only fill in what the URL leaves out.

    Raises:
        InvalidSearchParams: If neither a URL nor keyword/location is given.
        ValidationError: If the normalized fields are invalid.
    """
    fields: dict[str, Any] = {}
    if body.linkedin_url:
        fields.update(parse_search_url(body.linkedin_url))
    elif not body.keyword and not body.location:
        msg = "LinkedIn URL is required"
        raise InvalidSearchParams(msg)
    else:
        fields["keyword"] = body.keyword or ""
        fields["location"] = body.location or ""

    if "work_type" not in fields and body.work_type:
        fields["work_type"] = body.work_type
    return SearchParams(
        **fields,
        job_count=default_job_count if body.job_count is None else body.job_count,
        resume_text=body.resume_text,
        exclude_keywords=body.exclude_keywords,
    )


def status_payload(request: JobRequest, poll_interval_ms: int) -> dict[str, Any]:
    """camelCase status snapshot; optional fields are present once set."""
    data: dict[str, Any] = {
        "id": request.id,
        "status": request.status.value,
        "abortRequested": request.abort_requested,
        "pollIntervalMs": 0 if request.is_terminal else poll_interval_ms,
        "createdAt": request.created_at.isoformat(),
        "updatedAt": request.updated_at.isoformat(),
    }
    if request.raw_results is not None:
        data["results"] = [j.model_dump(by_alias=True, mode="json") for j in request.raw_results]
    if request.filtered_results is not None:
        data["filteredResults"] = [
            j.model_dump(by_alias=True, mode="json") for j in request.filtered_results
        ]
    if request.enriched_results is not None:
        data["enrichedResults"] = request.enriched_results.model_dump(by_alias=True, mode="json")
        data["totalJobsFound"] = request.enriched_results.total_jobs_found
    if request.error_message is not None:
        data["errorMessage"] = request.error_message
    if request.completed_at is not None:
        data["completedAt"] = request.completed_at.isoformat()
    return data


def summary_payload(request: JobRequest) -> dict[str, Any]:
    """Compact entry for the recent searches list."""
    params = request.search_params
    data: dict[str, Any] = {
        "id": request.id,
        "status": request.status.value,
        "keyword": params.keyword,
        "location": params.location,
        "workType": params.work_type.value,
        "jobCount": params.job_count,
        "createdAt": request.created_at.isoformat(),
    }
    if request.enriched_results is not None:
        data["totalJobsFound"] = request.enriched_results.total_jobs_found
        data["canApplyCount"] = request.enriched_results.can_apply_count
    if request.completed_at is not None:
        data["completedAt"] = request.completed_at.isoformat()
    return data


def build_orchestrator(settings: Settings) -> tuple[JobRequestOrchestrator, ApifyClient]:
    """Wire the Apify-backed adapters into an orchestrator.

    Raises:
        AdapterError: If the Apify token is not configured.
    """
    client = ApifyClient.from_env(settings.apify)
    conn = db.init_db(settings.database.path)
    orchestrator = JobRequestOrchestrator(
        conn,
        ApifyJobScraper(client, settings.apify),
        ContactEnricher(client, settings.apify, settings.filters, settings.scoring),
        settings.orchestrator,
    )
    return orchestrator, client


def get_orchestrator(request: Request) -> JobRequestOrchestrator:
    orchestrator: JobRequestOrchestrator = request.app.state.orchestrator
    return orchestrator


def get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_user_id(request: Request, settings: Settings = Depends(get_settings)) -> str:
    user_id = request.headers.get(settings.server.user_header, "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _validation_message(exc: ValidationError | RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err['msg']}" if loc else str(err["msg"]))
    return "; ".join(parts) or "Invalid request"


def create_app(
    settings: Settings | None = None,
    orchestrator: JobRequestOrchestrator | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    When *orchestrator* is None, one backed by Apify is built on startup
    and requests interrupted by a previous run are closed.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if orchestrator is not None:
            yield
            return
        built, client = build_orchestrator(settings)
        built.recover_interrupted()
        app.state.orchestrator = built
        try:
            yield
        finally:
            await built.shutdown()
            await client.aclose()

    app = FastAPI(title="Job Search Service", lifespan=lifespan)
    app.state.settings = settings
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    if settings.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.server.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    poll_interval_ms = int(settings.poller.interval_seconds * 1000)

    @app.exception_handler(RequestNotFound)
    async def not_found_handler(request: Request, exc: RequestNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Request not found"})

    @app.exception_handler(InvalidSearchParams)
    async def invalid_params_handler(request: Request, exc: InvalidSearchParams) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(RequestValidationError)
    async def body_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/api/scrape-job")
    async def start_search(
        body: StartSearchBody,
        user_id: str = Depends(get_user_id),
        jobs: JobRequestOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, str]:
        params = to_search_params(body, settings.orchestrator.default_job_count)
        request_id = await jobs.start(user_id, params)
        return {"requestId": request_id}

    @app.get("/api/scrape-job/{request_id}")
    async def get_status(
        request_id: str,
        user_id: str = Depends(get_user_id),
        jobs: JobRequestOrchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        request = jobs.get_status(request_id, user_id)
        return JSONResponse(
            content=status_payload(request, poll_interval_ms),
            headers=NO_CACHE_HEADERS,
        )

    @app.post("/api/scrape-job/{request_id}/abort")
    async def abort(
        request_id: str,
        user_id: str = Depends(get_user_id),
        jobs: JobRequestOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, bool]:
        await jobs.abort(request_id, user_id)
        return {"success": True}

    @app.get("/api/scrape-jobs")
    async def list_searches(
        limit: int = 10,
        user_id: str = Depends(get_user_id),
        jobs: JobRequestOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, list[dict[str, Any]]]:
        limit = max(1, min(limit, 50))
        return {"requests": [summary_payload(r) for r in jobs.list_requests(user_id, limit)]}

    @app.post("/api/generate-linkedin-url")
    async def generate_linkedin_url(
        body: LinkedInUrlBody,
        user_id: str = Depends(get_user_id),
    ) -> dict[str, str]:
        params = SearchParams(keyword=body.keyword, location=body.location, work_type=body.work_type)
        return {"linkedinUrl": build_search_url(params.keyword, params.location, params.work_type)}

    return app
