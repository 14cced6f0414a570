"""LinkedIn search URL builder and parser.

Pure functions, no network access.
"""

import logging
from urllib.parse import parse_qs, quote_plus, urlencode, urlparse

from jobsearch.core.errors import InvalidSearchParams
from jobsearch.core.schemas import WorkType

logger = logging.getLogger(__name__)

SEARCH_BASE = "https://www.linkedin.com/jobs/search"


def build_search_url(keyword: str, location: str, work_type: WorkType = WorkType.REMOTE) -> str:
    """Build a LinkedIn jobs search URL.

    Args:
        keyword: Job title or search keyword (URL-encoded).
        location: Free-text location, e.g. "Remote" or "Berlin".
        work_type: Workplace filter, mapped to the ``f_WT`` code.

    Returns:
        Fully qualified LinkedIn search URL.
    """
    params = {
        "keywords": keyword,
        "location": location,
        "f_WT": work_type.code,
    }
    return f"{SEARCH_BASE}?{urlencode(params, quote_via=quote_plus)}"


def parse_search_url(url: str) -> dict[str, str]:
    """Extract ``keyword``, ``location``, and ``work_type`` from a search URL.

    ``work_type`` is omitted when the URL carries no ``f_WT`` filter. When
    ``f_WT`` lists several codes only the first is kept.

    Raises:
        InvalidSearchParams: If the URL is not a LinkedIn jobs search URL or
            lacks a keyword or location.
    """
    parsed = urlparse(url.strip())
    host = parsed.netloc.lower()
    if parsed.scheme not in ("http", "https") or not (
        host == "linkedin.com" or host.endswith(".linkedin.com")
    ):
        msg = f"Not a LinkedIn URL: {url}"
        raise InvalidSearchParams(msg)
    if not parsed.path.rstrip("/").endswith("/jobs/search"):
        msg = f"Not a LinkedIn jobs search URL: {url}"
        raise InvalidSearchParams(msg)

    query = parse_qs(parsed.query)
    keyword = _first(query, "keywords")
    location = _first(query, "location")
    if not keyword or not location:
        msg = "LinkedIn URL must include both 'keywords' and 'location'"
        raise InvalidSearchParams(msg)

    result = {"keyword": keyword, "location": location}
    codes = _first(query, "f_WT")
    if codes:
        code = codes.split(",")[0].strip()
        try:
            result["work_type"] = WorkType.from_code(code).value
        except ValueError:
            logger.warning("Unknown f_WT code '%s' in search URL, using default", code)
    return result


def _first(query: dict[str, list[str]], key: str) -> str:
    values = query.get(key) or [""]
    return values[0].strip()
