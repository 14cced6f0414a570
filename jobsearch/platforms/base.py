"""Abstract interfaces for the scrape provider and the enrichment adapter."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from jobsearch.core.schemas import FilteredJob, RawJob, ScrapeResult, SearchParams


class ScrapeHandle(BaseModel):
    """Opaque reference to a scrape started by a provider."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    dataset_id: str | None = None
    search_url: str = ""


class ScrapeProvider(ABC):
    """Starts, collects, and aborts long-running job scrapes."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'apify')."""

    @abstractmethod
    async def start(self, params: SearchParams) -> ScrapeHandle:
        """Kick off a scrape and return its handle without waiting for results."""

    @abstractmethod
    async def collect(self, handle: ScrapeHandle) -> ScrapeResult:
        """Wait for the scrape to finish and return its listings.

        Raises:
            AdapterError: If the scrape failed or was aborted.
        """

    @abstractmethod
    async def abort(self, handle: ScrapeHandle) -> None:
        """Ask the provider to stop the scrape. Best effort."""


class EnrichmentAdapter(ABC):
    """Filters raw listings and attaches contact information."""

    @abstractmethod
    async def filter(self, raw_jobs: list[RawJob], params: SearchParams) -> list[FilteredJob]:
        """Normalize listings and keep the relevant ones."""

    @abstractmethod
    async def enrich(
        self,
        jobs: list[FilteredJob],
        resume_text: str | None,
        request_id: str,
    ) -> list[FilteredJob]:
        """Attach discovered contacts (and optional relevance) to each job."""

    async def abort(self, request_id: str) -> None:  # noqa: B027
        """Stop any external work started for *request_id*. Best effort."""
