"""Configuration system for internagg.

Uses pydantic-settings to load configuration from environment variables
and .env files. The numeric resilience and freshness defaults are tuning
knobs, not protocol constants: override any of them per deployment.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_QUERIES = [
    "software development",
    "web development",
    "data science",
    "marketing",
    "design",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Environment variables are prefixed with INTERNAGG_ (e.g., INTERNAGG_DB_PATH).
    """

    model_config = SettingsConfigDict(
        env_prefix="INTERNAGG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider credentials
    rapidapi_key: str | None = Field(
        default=None,
        description="RapidAPI key enabling the hosted search APIs (scraping is used otherwise)",
    )

    # Canonical listing store
    db_path: Path = Field(
        default=Path.home() / ".internagg" / "listings.db",
        description="SQLite database holding aggregated external listings",
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        description="Listings not re-synced within this many days are expired",
    )
    purge_interval_minutes: int = Field(
        default=60,
        ge=1,
        description="How often the store purges expired rows on its own",
    )

    # Resilience executor
    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before a source's circuit opens",
    )
    cooldown_seconds: float = Field(
        default=300.0,
        ge=0,
        description="How long an open circuit short-circuits calls",
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per call before giving up",
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Delay before the first retry; doubles on each further retry",
    )
    rate_limit_weight: int = Field(
        default=2,
        ge=1,
        description="Failure count added by a rate-limit response",
    )

    # Source adapters
    request_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout in seconds for every outbound HTTP request",
    )
    attempt_timeout: float = Field(
        default=45.0,
        gt=0,
        description="Upper bound in seconds for one source call, API and page requests together",
    )
    response_cache_ttl: int = Field(
        default=1800,
        ge=0,
        description="Seconds a raw provider response stays cached",
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User-Agent sent to provider pages",
    )

    # Aggregation orchestrator
    default_queries: list[str] = Field(
        default=DEFAULT_QUERIES,
        description="Queries fanned out to every source on each run",
    )
    politeness_delay: float = Field(
        default=2.0,
        ge=0,
        description="Pause in seconds between successive query/source calls",
    )

    # Scheduler
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the daily background sync",
    )
    sync_time: str = Field(
        default="02:00",
        pattern=r"^\d{1,2}:\d{2}$",
        description="Local wall-clock time (HH:MM) of the daily sync",
    )
    sync_timezone: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone that sync_time is expressed in",
    )
    initial_sync_delay: float = Field(
        default=10.0,
        ge=0,
        description="Seconds after startup before the seed sync runs",
    )


# Singleton instance for easy import
config = Settings()
