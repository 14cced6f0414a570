"""Enrichment adapter: quality filtering plus job poster contact discovery.

Contacts come from a LinkedIn profile scraper actor, run once per request
for every poster profile URL found in the filtered listings. A job can be
applied to directly only when its poster's e-mail was found.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from jobsearch.core.config import ApifyConfig, FilterConfig, ScoringConfig
from jobsearch.core.errors import AdapterError
from jobsearch.core.schemas import FilteredJob, RawJob, SearchParams
from jobsearch.llm.base import LLMProvider
from jobsearch.pipeline.matcher import build_filters, normalize_job, run_filter_chain
from jobsearch.pipeline.relevance import score_jobs
from jobsearch.platforms.apify import ApifyClient
from jobsearch.platforms.base import EnrichmentAdapter
from jobsearch.platforms.linkedin.parser import is_profile_url, parse_profile_item

logger = logging.getLogger(__name__)


def profile_key(url: str) -> str:
    """Canonical form of a LinkedIn profile URL for matching scraper output."""
    parsed = urlparse(url.strip())
    host = parsed.netloc.lower().removeprefix("www.")
    return f"{host}{parsed.path.rstrip('/').lower()}"


class ContactEnricher(EnrichmentAdapter):
    """Filters listings and looks up job poster contacts via Apify."""

    def __init__(
        self,
        client: ApifyClient | None,
        apify_config: ApifyConfig,
        filter_config: FilterConfig,
        scoring_config: ScoringConfig,
        provider: LLMProvider | None = None,
    ) -> None:
        self._client = client
        self._apify_config = apify_config
        self._filter_config = filter_config
        self._scoring_config = scoring_config
        self._provider = provider
        self._runs: dict[str, set[str]] = {}

    async def filter(self, raw_jobs: list[RawJob], params: SearchParams) -> list[FilteredJob]:
        jobs = [normalize_job(r) for r in raw_jobs]
        filtered = run_filter_chain(jobs, build_filters(params, self._filter_config))
        logger.info("Filtered %d raw jobs down to %d quality leads", len(raw_jobs), len(filtered))
        return filtered

    async def enrich(
        self,
        jobs: list[FilteredJob],
        resume_text: str | None,
        request_id: str,
    ) -> list[FilteredJob]:
        urls = sorted({j.job_poster_url for j in jobs if is_profile_url(j.job_poster_url)})
        profiles: dict[str, dict[str, Any]] = {}
        if urls and self._client is not None:
            profiles = await self._lookup_profiles(self._client, urls, request_id)
        elif urls:
            logger.warning("No Apify client configured, skipping contact lookup")

        enriched = [
            _attach_contact(j, profiles.get(profile_key(j.job_poster_url))) for j in jobs
        ]
        logger.info(
            "Found contact e-mails for %d of %d jobs",
            sum(1 for j in enriched if j.can_apply),
            len(enriched),
        )

        return await asyncio.to_thread(
            score_jobs, enriched, resume_text, self._scoring_config, self._provider,
        )

    async def abort(self, request_id: str) -> None:
        if self._client is None:
            return
        for run_id in list(self._runs.get(request_id, ())):
            try:
                await self._client.abort_run(run_id)
            except httpx.HTTPError:
                logger.warning("Failed to abort profile run %s", run_id, exc_info=True)

    async def _lookup_profiles(
        self,
        client: ApifyClient,
        urls: list[str],
        request_id: str,
    ) -> dict[str, dict[str, Any]]:
        runs = self._runs.setdefault(request_id, set())
        logger.info("Looking up %d job poster profiles", len(urls))
        try:
            items = await client.run_actor(
                self._apify_config.profile_actor,
                {"profileUrls": urls},
                on_start=runs.add,
            )
        except httpx.HTTPError as e:
            msg = f"Failed to look up job poster contacts: {e}"
            raise AdapterError(msg) from e
        finally:
            self._runs.pop(request_id, None)

        # Items without a URL can only be matched positionally.
        positional = len(items) == len(urls)
        profiles: dict[str, dict[str, Any]] = {}
        for i, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            profile = parse_profile_item(item)
            url = profile["profile_url"] or (urls[i] if positional else None)
            if url:
                profiles[profile_key(url)] = profile
        return profiles


def _attach_contact(job: FilteredJob, profile: dict[str, Any] | None) -> FilteredJob:
    if profile is None:
        return job
    email = profile.get("email")
    return job.model_copy(
        update={
            "job_poster_name": profile.get("name") or job.job_poster_name,
            "job_poster_title": profile.get("headline") or f"Hiring for {job.title}",
            "job_poster_image_url": profile.get("picture"),
            "contact_email": email,
            "can_apply": bool(email),
        },
    )
