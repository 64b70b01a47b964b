"""Utilities for resolving title metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..config import Settings
from ..errors import EnrichmentFailure
from ..models import TitleMetadata

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("movie", "tv")


class TMDBClient:
    """Client responsible for looking up TMDB titles by identifier."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def fetch_title(self, media_type: str, external_id: str) -> TitleMetadata:
        """Return the display title and poster for a movie or TV show.

        Raises :class:`EnrichmentFailure` when TMDB cannot be reached or does
        not know the title.
        """

        if media_type not in MEDIA_TYPES:
            raise EnrichmentFailure(f"Unsupported media type {media_type!r}")

        segment = quote(str(external_id), safe="")
        endpoint = f"/{media_type}/{segment}"
        params = {
            "api_key": self._settings.tmdb_api_key,
            "language": "en-US",
        }
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as exc:
            raise EnrichmentFailure(
                f"TMDB lookup for {media_type}:{external_id} failed: {exc.__class__.__name__}"
            ) from exc
        if response.status_code >= 400:
            logger.debug(
                "TMDB details for %s:%s failed: %s",
                media_type,
                external_id,
                response.status_code,
            )
            raise EnrichmentFailure(
                f"TMDB returned {response.status_code} for {media_type}:{external_id}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise EnrichmentFailure("Unexpected non-JSON TMDB response") from exc
        if not isinstance(data, dict):
            raise EnrichmentFailure("Unexpected TMDB response structure")

        if media_type == "movie":
            title = data.get("title") or data.get("name")
        else:
            title = data.get("name") or data.get("title")
        poster_path = data.get("poster_path")

        return TitleMetadata(
            title=title if isinstance(title, str) and title.strip() else None,
            poster_url=(
                self._build_image_url(poster_path, self._settings.tmdb_image_base_url)
                if isinstance(poster_path, str)
                else None
            ),
            year=self._extract_year(data, media_type),
        )

    @staticmethod
    def _extract_year(result: dict[str, Any], media_type: str) -> int | None:
        date_key = "release_date" if media_type == "movie" else "first_air_date"
        date_value = result.get(date_key)
        if not isinstance(date_value, str) or len(date_value) < 4:
            return None
        try:
            return int(date_value[:4])
        except ValueError:
            return None

    @staticmethod
    def _build_image_url(path: str, base_url: str) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{base_url}{path}"
