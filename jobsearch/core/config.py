"""Configuration models and YAML loader for the job search service."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/job_requests.db"


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    # Header carrying the authenticated user id, set by the session layer.
    user_header: str = "X-User-Id"
    cors_origins: list[str] = Field(default_factory=list)

    @field_validator("user_header")
    @classmethod
    def user_header_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "user_header must not be empty"
            raise ValueError(msg)
        return v.strip()


class ApifyConfig(BaseModel):
    """Apify actors used for scraping and contact discovery."""

    base_url: str = "https://api.apify.com/v2"
    token_env: str = "APIFY_API_TOKEN"
    job_actor: str = "curious_coder/linkedin-jobs-scraper"
    profile_actor: str = "dev_fusion/Linkedin-Profile-Scraper"
    scrape_company: bool = True
    wait_for_finish_seconds: int = Field(default=60, ge=1, le=60)
    request_timeout_seconds: float = Field(default=90.0, gt=0)
    max_retries: int = Field(default=4, ge=1, le=10)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)


class OrchestratorConfig(BaseModel):
    """Limits applied by the job request orchestrator."""

    adapter_timeout_seconds: float = Field(default=240.0, gt=0)
    default_job_count: int = Field(default=100, ge=1)
    max_job_count: int = Field(default=200, ge=1)


class PollerConfig(BaseModel):
    """Client-side polling behaviour."""

    interval_seconds: float = Field(default=2.0, gt=0)
    base_url: str = "http://127.0.0.1:8000"


class FilterConfig(BaseModel):
    """Quality filters applied to scraped listings."""

    exclude_keywords: list[str] = Field(default_factory=list)
    require_company: bool = True


class ScoringConfig(BaseModel):
    """LLM relevance scoring against the user's resume (optional)."""

    llm_enabled: bool = False
    llm_provider: str = "openai"
    llm_model: str | None = None
    max_jobs: int = Field(default=25, ge=1)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    apify: ApifyConfig = Field(default_factory=ApifyConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    @classmethod
    def load(cls, path: str | Path | None) -> "Settings":
        """Load from *path* if it exists, otherwise fall back to defaults."""
        if path is not None and Path(path).exists():
            return cls.from_yaml(path)
        return cls()
