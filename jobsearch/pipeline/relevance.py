"""LLM relevance scoring of listings against the user's resume."""

import json
import logging
import re

from jobsearch.core.config import ScoringConfig
from jobsearch.core.schemas import FilteredJob
from jobsearch.llm import get_provider
from jobsearch.llm.base import LLMProvider

logger = logging.getLogger(__name__)

_RESUME_CHAR_LIMIT = 6000
_DESCRIPTION_CHAR_LIMIT = 3000

_SCORING_SYSTEM_PROMPT = (
    "You are a senior recruiter evaluating how well a job fits a candidate.\n\n"
    "Given the candidate's resume and a job listing, score the fit on a 0-100 "
    "scale:\n"
    "  90-100: Perfect fit - role, skills, and seniority all align\n"
    "  70-89:  Strong fit - minor gaps in 1-2 areas\n"
    "  50-69:  Moderate fit - some relevant experience, notable mismatches\n"
    "  30-49:  Weak fit - partial skill overlap\n"
    "  0-29:   Poor fit - fundamentally misaligned\n\n"
    "Return ONLY a JSON object (no markdown, no explanation):\n"
    '{"score": <integer 0-100>, "reasoning": "<1-2 sentence explanation>"}'
)


def _build_user_prompt(job: FilteredJob, resume_text: str) -> str:
    """Assemble the user prompt from resume and job data."""
    job_section = (
        "JOB LISTING\n"
        f"Title: {job.title}\n"
        f"Company: {job.company_name or 'not provided'}\n"
        f"Location: {job.location or 'not provided'}\n"
        f"Workplace type: {job.work_type or 'not specified'}\n"
        f"Experience level: {job.experience_level or 'not specified'}\n"
    )
    if job.description:
        job_section += f"Description:\n{job.description[:_DESCRIPTION_CHAR_LIMIT]}\n"

    return f"CANDIDATE RESUME\n{resume_text[:_RESUME_CHAR_LIMIT]}\n\n{job_section}"


def _parse_llm_score(raw_text: str) -> tuple[float, str]:
    """Parse LLM JSON response into (score, reasoning).

    Handles markdown-wrapped JSON. Clamps score to 0-100.
    Raises ValueError on malformed response.
    """
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse LLM score response as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict) or "score" not in data:
        msg = "LLM response missing 'score' field"
        raise ValueError(msg)

    score = max(0.0, min(100.0, float(data["score"])))
    return score, str(data.get("reasoning", ""))


def score_job(
    job: FilteredJob,
    resume_text: str,
    config: ScoringConfig,
    provider: LLMProvider,
) -> FilteredJob:
    """Score one job against the resume.

    On any LLM error, logs a warning and returns the job unscored.
    """
    try:
        raw = provider.complete(
            _build_user_prompt(job, resume_text),
            model=config.llm_model,
            system=_SCORING_SYSTEM_PROMPT,
        )
        score, reasoning = _parse_llm_score(raw)
    except Exception:
        logger.warning(
            "LLM scoring failed for '%s' at %s, leaving unscored",
            job.title,
            job.company_name,
            exc_info=True,
        )
        return job

    return job.model_copy(update={"relevance_score": score, "relevance_reasoning": reasoning})


def score_jobs(
    jobs: list[FilteredJob],
    resume_text: str | None,
    config: ScoringConfig,
    provider: LLMProvider | None = None,
) -> list[FilteredJob]:
    """Score up to ``config.max_jobs`` jobs and sort scored jobs first.

    Returns the list unchanged when scoring is disabled or there is no resume.
    """
    if not config.llm_enabled or not resume_text:
        return jobs

    provider = provider or get_provider(config.llm_provider)
    head = [score_job(j, resume_text, config, provider) for j in jobs[: config.max_jobs]]
    result = head + jobs[config.max_jobs:]
    # Stable sort: unscored jobs keep their original relative order at the end.
    return sorted(
        result,
        key=lambda j: -1.0 if j.relevance_score is None else j.relevance_score,
        reverse=True,
    )
