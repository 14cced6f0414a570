"""Map LinkedIn scraper dataset items into RawJob objects.

Actor output is loosely structured, so every field is looked up through a
tuple of candidate keys. Missing optional fields never raise.
"""

import logging
import re
from typing import Any
from urllib.parse import quote

from jobsearch.core.schemas import RawJob

logger = logging.getLogger(__name__)

TITLE_KEYS = ("title", "jobTitle", "position")
COMPANY_KEYS = ("company", "companyName", "employer")
DESCRIPTION_KEYS = ("description", "descriptionText")
URL_KEYS = ("url", "link")
POSTED_KEYS = ("postedDate", "posted", "postedAt")
EXPERIENCE_KEYS = ("experienceLevel", "experience", "seniorityLevel")
WORK_TYPE_KEYS = ("workType", "type", "employmentType")
POSTER_URL_KEYS = (
    "jobPosterProfileUrl",
    "jobPosterUrl",
    "postedByUrl",
    "recruiterUrl",
    "hrUrl",
    "contactUrl",
    "postedBy.url",
    "poster.url",
    "recruiter.profileUrl",
)
POSTER_NAME_KEYS = (
    "jobPosterName",
    "postedByName",
    "recruiterName",
    "hrName",
    "contactName",
    "postedBy.name",
    "poster.name",
    "recruiter.name",
)
POSTER_OBJECT_KEYS = ("jobPoster", "hiringManager", "recruiter", "contactPerson", "postedBy")
LOGO_KEYS = (
    "companyLogoUrl",
    "companyLogo",
    "logoUrl",
    "companyPictureUrl",
    "companyImageUrl",
    "companyImage",
    "company.logoUrl",
    "company.logo",
    "company.imageUrl",
    "companyDetails.logo",
    "companyDetails.logoUrl",
    "employer.logo",
    "employer.logoUrl",
)

UNKNOWN_TITLE = "Unknown Position"
UNKNOWN_COMPANY = "Unknown Company"

_POSTED_BY_RE = re.compile(r"This job was posted by ([^.]+)", re.IGNORECASE)
_PROFILE_MARKER = "linkedin.com/in/"


def parse_job_item(item: dict[str, Any], fallback_url: str = "") -> RawJob:
    """Convert one scraper dataset item into a RawJob."""
    title = _lookup_str(item, TITLE_KEYS)
    company = _lookup_str(item, COMPANY_KEYS)
    poster_url, poster_name = _parse_poster(item)

    return RawJob(
        job_title=title or UNKNOWN_TITLE,
        company_name=company or UNKNOWN_COMPANY,
        company_logo=_parse_logo(item, company),
        location=_lookup_str(item, ("location",)) or "Not specified",
        salary=_lookup_str(item, ("salary",)) or None,
        description=_lookup_str(item, DESCRIPTION_KEYS),
        apply_url=_lookup_str(item, URL_KEYS) or fallback_url,
        posted_date=_lookup_str(item, POSTED_KEYS) or None,
        experience_level=_lookup_str(item, EXPERIENCE_KEYS) or None,
        work_type=_lookup_str(item, WORK_TYPE_KEYS) or None,
        job_poster_url=poster_url,
        job_poster_name=poster_name,
    )


def parse_job_items(items: list[dict[str, Any]], fallback_url: str = "") -> list[RawJob]:
    """Parse many items, skipping any that are not objects."""
    results: list[RawJob] = []
    for item in items:
        if not isinstance(item, dict):
            logger.debug("Skipping non-object dataset item: %r", item)
            continue
        results.append(parse_job_item(item, fallback_url))
    return results


def parse_profile_item(item: dict[str, Any]) -> dict[str, str | None]:
    """Extract contact fields from a profile scraper dataset item."""
    contact = item.get("contactInfo") if isinstance(item.get("contactInfo"), dict) else {}
    return {
        "name": _lookup_str(item, ("name", "fullName")) or None,
        "email": _lookup_str(item, ("email",)) or _lookup_str(contact, ("email",)) or None,
        "headline": _lookup_str(item, ("headline",)) or None,
        "picture": _lookup_str(
            item, ("profilePicture", "avatar", "imageUrl", "photoUrl", "picture"),
        ) or None,
        "profile_url": _lookup_str(
            item, ("linkedinUrl", "profileUrl", "url", "inputUrl"),
        ) or None,
    }


def is_profile_url(url: str | None) -> bool:
    return url is not None and _PROFILE_MARKER in url


def _parse_poster(item: dict[str, Any]) -> tuple[str | None, str | None]:
    poster_url = _lookup_str(item, POSTER_URL_KEYS) or None
    poster_name = _lookup_str(item, POSTER_NAME_KEYS) or None

    if poster_name is None:
        match = _POSTED_BY_RE.search(_lookup_str(item, ("descriptionText",)))
        if match:
            poster_name = match.group(1).strip()

    if poster_url is None:
        for key in POSTER_OBJECT_KEYS:
            nested = item.get(key)
            if not isinstance(nested, dict):
                continue
            for url_key in ("linkedinUrl", "profileUrl"):
                if isinstance(nested.get(url_key), str) and nested[url_key]:
                    poster_url = nested[url_key]
            url = nested.get("url")
            if isinstance(url, str) and is_profile_url(url):
                poster_url = url
            if poster_name is None and isinstance(nested.get("name"), str):
                poster_name = nested["name"]

    return poster_url, poster_name


def _parse_logo(item: dict[str, Any], company: str) -> str | None:
    logo = _lookup_str(item, LOGO_KEYS)
    if logo:
        return logo
    if company:
        return (
            f"https://ui-avatars.com/api/?name={quote(company)}"
            "&background=0D8ABC&color=fff&size=200&bold=true"
        )
    return None


def _lookup_str(item: dict[str, Any], keys: tuple[str, ...]) -> str:
    """Return the first non-empty string found under any of *keys*.

    Dotted keys walk nested objects (``"postedBy.url"``).
    """
    for key in keys:
        value: Any = item
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None
            if value is None:
                break
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
