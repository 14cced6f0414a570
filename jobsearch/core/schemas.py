"""Core data models for the job search service."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class RequestStatus(str, Enum):
    """Lifecycle states of a job search request."""

    PENDING = "pending"
    PROCESSING = "processing"
    FILTERING = "filtering"
    ENRICHING = "enriching"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.FAILED, RequestStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset(set(RequestStatus) - TERMINAL_STATUSES)


class WorkType(str, Enum):
    """Workplace type filter understood by LinkedIn job search."""

    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"

    @property
    def code(self) -> str:
        """LinkedIn ``f_WT`` query value."""
        return WORK_TYPE_CODES[self]

    @classmethod
    def from_code(cls, code: str) -> "WorkType":
        for work_type, value in WORK_TYPE_CODES.items():
            if value == code:
                return work_type
        msg = f"Unknown LinkedIn work type code '{code}'"
        raise ValueError(msg)


WORK_TYPE_CODES: dict[WorkType, str] = {
    WorkType.REMOTE: "2",
    WorkType.HYBRID: "3",
    WorkType.ONSITE: "1",
}


class SearchParams(BaseModel):
    """Normalized search criteria captured when a request is created.

    Frozen: re-running a search creates a new request with new params.
    """

    model_config = ConfigDict(frozen=True)

    keyword: str
    location: str
    work_type: WorkType = WorkType.REMOTE
    job_count: int = Field(default=100, ge=1)
    resume_text: str | None = None
    exclude_keywords: list[str] = Field(default_factory=list)

    @field_validator("keyword", "location")
    @classmethod
    def not_blank(cls, v: str, info: ValidationInfo) -> str:
        if not v.strip():
            msg = f"{info.field_name} must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("work_type", mode="before")
    @classmethod
    def normalize_work_type(cls, v: object) -> object:
        if isinstance(v, str):
            value = v.strip().lower().replace("-", "").replace(" ", "")
            if value in WORK_TYPE_CODES.values():
                return WorkType.from_code(value)
            return value
        return v

    @field_validator("resume_text")
    @classmethod
    def empty_resume_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v


class _Payload(BaseModel):
    """Base for JSON payloads exposed over HTTP in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RawJob(_Payload):
    """A listing as returned by the scrape provider."""

    job_title: str
    company_name: str
    company_logo: str | None = None
    location: str = "Not specified"
    salary: str | None = None
    description: str = ""
    apply_url: str = ""
    posted_date: str | None = None
    experience_level: str | None = None
    work_type: str | None = None
    job_poster_url: str | None = None
    job_poster_name: str | None = None


class FilteredJob(_Payload):
    """A normalized listing, extended with contact data during enrichment."""

    job_id: str
    title: str
    company_name: str
    company_logo: str | None = None
    link: str = ""
    description: str = ""
    location: str = "Not specified"
    salary_info: str | None = None
    work_type: str = "Not specified"
    posted_date: str | None = None
    experience_level: str | None = None
    job_poster_name: str = ""
    job_poster_url: str = ""
    job_poster_title: str = ""
    job_poster_image_url: str | None = None
    contact_email: str | None = None
    can_apply: bool = False
    relevance_score: float | None = Field(default=None, ge=0.0, le=100.0)
    relevance_reasoning: str = ""


class ScrapeResult(BaseModel):
    """Listings collected by a finished scrape, plus the vendor's total if known."""

    jobs: list[RawJob] = Field(default_factory=list)
    reported_total: int | None = Field(default=None, ge=0)


class EnrichedResults(_Payload):
    """Final payload of a completed request with derived display counters."""

    jobs: list[FilteredJob] = Field(default_factory=list)
    total_jobs_found: int = Field(ge=0)
    total_jobs_found_is_estimate: bool = False
    scraped_count: int = Field(default=0, ge=0)
    can_apply_count: int = Field(default=0, ge=0)
    free_jobs: int = Field(default=0, ge=0)
    locked_jobs: int = Field(default=0, ge=0)


class JobRequest(BaseModel):
    """Snapshot of one persisted job search request."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    search_params: SearchParams
    status: RequestStatus = RequestStatus.PENDING
    raw_results: list[RawJob] | None = None
    filtered_results: list[FilteredJob] | None = None
    enriched_results: EnrichedResults | None = None
    error_message: str | None = None
    abort_requested: bool = False
    scrape_run_id: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
