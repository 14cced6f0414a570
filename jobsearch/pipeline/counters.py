"""Display counters attached to a completed request."""

from jobsearch.core.schemas import EnrichedResults, FilteredJob

DISPLAY_TOTAL_MIN = 500
DISPLAY_TOTAL_SPAN = 1501  # totals fall in 500..2000


def _string_hash32(value: str) -> int:
    """Signed 32-bit ``h = h * 31 + code`` hash over UTF-16 code units."""
    h = 0
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    return h - 0x1_0000_0000 if h & 0x8000_0000 else h


def display_total_jobs(request_id: str) -> int:
    """Estimated "jobs found" figure, stable for a given request id."""
    return DISPLAY_TOTAL_MIN + abs(_string_hash32(request_id)) % DISPLAY_TOTAL_SPAN


def build_enriched_results(
    request_id: str,
    jobs: list[FilteredJob],
    scraped_count: int,
    reported_total: int | None = None,
) -> EnrichedResults:
    """Final payload: jobs plus contact and paywall counters.

    Jobs with a discovered contact are free; the rest are locked behind the
    paid tier. ``total_jobs_found`` is the provider's total when it reports
    one, otherwise the stable estimate from :func:`display_total_jobs`.
    """
    can_apply = sum(1 for j in jobs if j.can_apply)
    if reported_total is not None:
        total, estimate = reported_total, False
    else:
        total, estimate = display_total_jobs(request_id), True
    return EnrichedResults(
        jobs=jobs,
        total_jobs_found=total,
        total_jobs_found_is_estimate=estimate,
        scraped_count=scraped_count,
        can_apply_count=can_apply,
        free_jobs=can_apply,
        locked_jobs=len(jobs) - can_apply,
    )
