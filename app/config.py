"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Episodic", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_timeout_seconds: float = Field(
        default=20.0, alias="TMDB_TIMEOUT", ge=5.0, le=120.0
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./episodic.db", alias="DATABASE_URL"
    )

    sync_enabled: bool = Field(default=False, alias="SYNC_ENABLED")
    sync_interval_seconds: int = Field(
        default=86_400, alias="SYNC_INTERVAL", ge=3_600
    )
    sync_stale_seconds: int = Field(
        default=604_800, alias="SYNC_STALE_AFTER", ge=3_600
    )
    sync_show_delay_seconds: float = Field(
        default=0.25, alias="SYNC_SHOW_DELAY", ge=0.0, le=10.0
    )
    sync_season_delay_seconds: float = Field(
        default=0.3, alias="SYNC_SEASON_DELAY", ge=0.0, le=10.0
    )

    recent_activity_limit: int = Field(
        default=10, alias="RECENT_ACTIVITY_LIMIT", ge=1, le=100
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank_key(cls, value: object) -> object:
        """Treat blank credentials as missing."""

        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
