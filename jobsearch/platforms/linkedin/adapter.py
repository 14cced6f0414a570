"""LinkedIn scrape provider backed by an Apify actor."""

import logging

import httpx

from jobsearch.core.config import ApifyConfig
from jobsearch.core.errors import AdapterError
from jobsearch.core.schemas import ScrapeResult, SearchParams
from jobsearch.platforms.apify import RUN_SUCCEEDED, ApifyClient
from jobsearch.platforms.base import ScrapeHandle, ScrapeProvider
from jobsearch.platforms.linkedin.parser import parse_job_items
from jobsearch.platforms.linkedin.searcher import build_search_url

logger = logging.getLogger(__name__)


class ApifyJobScraper(ScrapeProvider):
    """Runs the LinkedIn jobs actor for one search URL per request."""

    def __init__(self, client: ApifyClient, config: ApifyConfig) -> None:
        self._client = client
        self._config = config

    @property
    def provider_id(self) -> str:
        return "apify"

    async def start(self, params: SearchParams) -> ScrapeHandle:
        url = build_search_url(params.keyword, params.location, params.work_type)
        logger.info("Starting LinkedIn scrape for %s", url)
        try:
            run = await self._client.start_run(
                self._config.job_actor,
                {
                    "count": params.job_count,
                    "scrapeCompany": self._config.scrape_company,
                    "urls": [url],
                },
            )
        except httpx.HTTPError as e:
            msg = f"Failed to scrape LinkedIn jobs: {e}"
            raise AdapterError(msg) from e
        return ScrapeHandle(
            run_id=run["id"],
            dataset_id=run.get("defaultDatasetId"),
            search_url=url,
        )

    async def collect(self, handle: ScrapeHandle) -> ScrapeResult:
        try:
            run = await self._client.wait_for_run(handle.run_id)
            status = run.get("status")
            if status != RUN_SUCCEEDED:
                msg = f"Failed to scrape LinkedIn jobs: scraper run ended with status {status}"
                raise AdapterError(msg)
            dataset_id = run.get("defaultDatasetId") or handle.dataset_id
            if not dataset_id:
                msg = "Failed to scrape LinkedIn jobs: scraper returned no dataset"
                raise AdapterError(msg)
            items = await self._client.list_items(dataset_id)
        except httpx.HTTPError as e:
            msg = f"Failed to scrape LinkedIn jobs: {e}"
            raise AdapterError(msg) from e

        jobs = parse_job_items(items, fallback_url=handle.search_url)
        logger.info("Scraped %d jobs from LinkedIn (run %s)", len(jobs), handle.run_id)
        return ScrapeResult(jobs=jobs)

    async def abort(self, handle: ScrapeHandle) -> None:
        try:
            await self._client.abort_run(handle.run_id)
        except httpx.HTTPError:
            logger.warning("Failed to abort scrape run %s", handle.run_id, exc_info=True)
