"""
Configuration and settings for the Teamboard service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_AUTH_SECRET = "change-me"
MAX_USER_SEARCH_RESULTS = 20


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Record store. A database URL selects the SQL backend; without one the
    # whole store lives in a single JSON document on disk.
    database_url: Optional[str] = Field(default=None)
    local_db_path: str = Field(default="local-db.json")

    # Sessions
    auth_secret: str = Field(default=DEFAULT_AUTH_SECRET)
    session_max_age_seconds: int = Field(default=30 * 24 * 60 * 60, ge=60)
    session_cookie_secure: bool = Field(default=False)

    user_search_limit: int = Field(
        default=MAX_USER_SEARCH_RESULTS, ge=1, le=MAX_USER_SEARCH_RESULTS
    )

    # Client hints
    chat_poll_interval_seconds: float = Field(default=2.0, gt=0)

    # App
    cors_origins: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")

    @property
    def uses_database(self) -> bool:
        return bool(self.database_url)

    def get_cors_origins_list(self) -> list[str]:
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
