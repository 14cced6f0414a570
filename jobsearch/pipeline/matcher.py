"""Normalization and filter chain for scraped listings.

Filter order:
  1. ExcludeKeywordsFilter - title-only, case-insensitive
  2. RequireCompanyFilter  - drop listings with no known company
  3. DeduplicationFilter   - by job_id within one request
  4. LimitFilter           - keep at most the requested job count
"""

import hashlib
import logging
from collections.abc import Callable

from jobsearch.core.config import FilterConfig
from jobsearch.core.schemas import FilteredJob, RawJob, SearchParams
from jobsearch.platforms.linkedin.parser import UNKNOWN_COMPANY

logger = logging.getLogger(__name__)

# A filter is a callable that takes jobs and returns a subset.
Filter = Callable[[list[FilteredJob]], list[FilteredJob]]


def job_id_for(raw: RawJob) -> str:
    """Stable id for a listing: its URL if known, else title/company/location."""
    basis = raw.apply_url or f"{raw.job_title}|{raw.company_name}|{raw.location}"
    return hashlib.sha1(basis.encode("utf-8")).hexdigest()[:16]


def normalize_job(raw: RawJob) -> FilteredJob:
    """Map a raw listing onto the normalized shape used downstream."""
    return FilteredJob(
        job_id=job_id_for(raw),
        title=raw.job_title,
        company_name=raw.company_name,
        company_logo=raw.company_logo,
        link=raw.apply_url,
        description=raw.description,
        location=raw.location,
        salary_info=raw.salary,
        work_type=raw.work_type or "Not specified",
        posted_date=raw.posted_date,
        experience_level=raw.experience_level,
        job_poster_name=raw.job_poster_name or "",
        job_poster_url=raw.job_poster_url or "",
    )


class ExcludeKeywordsFilter:
    """Remove jobs whose title contains any excluded keyword (case-insensitive)."""

    def __init__(self, exclude_keywords: list[str]) -> None:
        self._keywords = [kw.lower().strip() for kw in exclude_keywords if kw.strip()]

    def __call__(self, jobs: list[FilteredJob]) -> list[FilteredJob]:
        if not self._keywords:
            return jobs
        result = [j for j in jobs if not self._title_matches(j.title)]
        excluded = len(jobs) - len(result)
        if excluded:
            logger.debug("ExcludeKeywordsFilter: removed %d jobs", excluded)
        return result

    def _title_matches(self, title: str) -> bool:
        title_lower = title.lower()
        return any(kw in title_lower for kw in self._keywords)


class RequireCompanyFilter:
    """Keep only quality leads: listings that name a company."""

    def __call__(self, jobs: list[FilteredJob]) -> list[FilteredJob]:
        result = [
            j for j in jobs
            if j.company_name.strip() and j.company_name != UNKNOWN_COMPANY
        ]
        removed = len(jobs) - len(result)
        if removed:
            logger.debug("RequireCompanyFilter: removed %d jobs", removed)
        return result


class DeduplicationFilter:
    """Remove duplicates by job_id. Keeps the first occurrence."""

    def __call__(self, jobs: list[FilteredJob]) -> list[FilteredJob]:
        seen: set[str] = set()
        result: list[FilteredJob] = []
        for j in jobs:
            if j.job_id not in seen:
                seen.add(j.job_id)
                result.append(j)
        deduped = len(jobs) - len(result)
        if deduped:
            logger.debug("DeduplicationFilter: removed %d duplicates", deduped)
        return result


class LimitFilter:
    """Truncate to at most *limit* jobs."""

    def __init__(self, limit: int) -> None:
        self._limit = limit

    def __call__(self, jobs: list[FilteredJob]) -> list[FilteredJob]:
        return jobs[: self._limit]


def build_filters(params: SearchParams, config: FilterConfig) -> list[Filter]:
    """Build the filter chain for one request."""
    filters: list[Filter] = [
        ExcludeKeywordsFilter([*config.exclude_keywords, *params.exclude_keywords]),
    ]
    if config.require_company:
        filters.append(RequireCompanyFilter())
    filters.append(DeduplicationFilter())
    filters.append(LimitFilter(params.job_count))
    return filters


def run_filter_chain(jobs: list[FilteredJob], filters: list[Filter]) -> list[FilteredJob]:
    """Apply filters in order, returning the surviving jobs."""
    result = jobs
    for f in filters:
        result = f(result)
    return result
