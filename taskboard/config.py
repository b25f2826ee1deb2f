"""
Configuration and settings for the task board service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings, read from ``TASKBOARD_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="TASKBOARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected). Unset means the in-memory store.
    database_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TASKBOARD_DATABASE_URL", "DATABASE_URL"),
    )
    use_in_memory_backends: bool = Field(default=False)

    # Sessions
    session_ttl_seconds: Optional[float] = Field(default=None, gt=0)
    session_cookie_name: str = Field(default="session")
    session_cookie_secure: bool = Field(default=False)

    # Seeded for every new account
    default_categories: list[str] = Field(
        default_factory=lambda: ["ToDo", "In progress", "Completed"]
    )

    log_level: str = Field(default="INFO")

    # Session sweep command
    sweep_interval_seconds: int = Field(default=600, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
