"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="BFFlix", alias="APP_NAME")

    api_base_url: HttpUrl = Field(
        default="https://bfflix.onrender.com",
        alias="API_BASE_URL",
        validation_alias=AliasChoices("API_BASE_URL", "VITE_API_BASE_URL"),
    )
    request_timeout_seconds: float = Field(
        default=20.0, alias="REQUEST_TIMEOUT_SECONDS", gt=0, le=300
    )
    request_retry_limit: int = Field(
        default=2, alias="REQUEST_RETRY_LIMIT", ge=0, le=5
    )

    tmdb_api_key: str | None = Field(
        default=None,
        alias="TMDB_API_KEY",
        validation_alias=AliasChoices("TMDB_API_KEY", "VITE_TMDB_API_KEY"),
    )
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/w342", alias="TMDB_IMAGE_BASE_URL"
    )

    feed_page_size: int = Field(default=20, alias="FEED_PAGE_SIZE", ge=1, le=100)
    circle_posts_limit: int = Field(
        default=50, alias="CIRCLE_POSTS_LIMIT", ge=1, le=100
    )
    service_search_limit: int = Field(
        default=20, alias="SERVICE_SEARCH_LIMIT", ge=1, le=200
    )
    avatar_max_bytes: int = Field(
        default=600 * 1024, alias="AVATAR_MAX_BYTES", ge=1
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./bfflix.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("tmdb_image_base_url")
    @classmethod
    def _normalise_image_base(cls, value: str) -> str:
        """Image paths from TMDB start with a slash, so drop the trailing one."""

        return value.strip().rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
