"""
Application settings.

Values come from ``OBIS_EXPLORER_*`` environment variables or a local
``.env`` file. Nothing here is consulted implicitly by the query or fetch
code: callers read settings once and pass them down as explicit values
(see ``FetchOptions.from_settings``).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from obis_explorer.schemas import MissingValuePolicy


class Settings(BaseSettings):
    """Runtime configuration for the explorer."""

    model_config = SettingsConfigDict(
        env_prefix="OBIS_EXPLORER_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "obis-explorer"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Data sources
    obis_api_url: str = "https://api.obis.org/v3"
    gbif_api_url: str = "https://api.gbif.org/v1"
    source: str = Field(default="obis", description="Default source for the CLI (obis, gbif)")

    # Paging and concurrency
    page_size: int = Field(default=5000, ge=1)
    max_workers: int = Field(default=4, ge=1, le=16)

    # Time budgets (seconds)
    page_timeout: float = Field(default=60.0, gt=0)
    total_timeout: float = Field(default=600.0, gt=0)
    partial_on_timeout: bool = False

    # Retry budget for transient failures
    max_retries: int = Field(default=4, ge=0)
    backoff_factor: float = Field(default=2.0, ge=0)

    missing_values: MissingValuePolicy = MissingValuePolicy.INCLUDE

    # Where the walkthrough flow caches result sets
    data_dir: Path = Path("data")


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
