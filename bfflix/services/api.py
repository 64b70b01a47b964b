"""Utilities for communicating with the BFFlix API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping
from urllib.parse import quote

import httpx

from ..config import Settings
from ..context import SessionContext
from ..errors import ApiError, AuthError, NetworkError, NotFoundError

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class BFFlixClient:
    """Thin wrapper around the BFFlix HTTP API.

    Methods return the decoded JSON body untouched; shaping it into canonical
    records is left to :mod:`bfflix.normalize`. Every call takes the caller's
    :class:`SessionContext` explicitly.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._max_retries = settings.request_retry_limit

    def _headers(self, session: SessionContext) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (bfflix-sync)",
        }
        headers.update(session.headers())
        return headers

    async def fetch_feed(
        self,
        *,
        session: SessionContext,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> Any:
        """Fetch one cursor page of the aggregated feed."""

        params: dict[str, Any] = {
            "limit": limit if limit is not None else self._settings.feed_page_size
        }
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/feed", session=session, params=params)

    async def fetch_circle(self, circle_id: str, *, session: SessionContext) -> Any:
        return await self._request(
            "GET", f"/circles/{_segment(circle_id)}", session=session
        )

    async def fetch_circle_posts(
        self,
        circle_id: str,
        *,
        session: SessionContext,
        page: int = 1,
        limit: int | None = None,
    ) -> Any:
        """Fetch a page of posts shared into a circle (page-numbered, 1-based)."""

        params = {
            "page": max(1, int(page)),
            "limit": limit if limit is not None else self._settings.circle_posts_limit,
        }
        return await self._request(
            "GET",
            f"/posts/circle/{_segment(circle_id)}",
            session=session,
            params=params,
        )

    async def join_circle(
        self, circle_id: str, invite_code: str, *, session: SessionContext
    ) -> Any:
        return await self._request(
            "POST",
            f"/circles/{_segment(circle_id)}/join",
            session=session,
            json={"inviteCode": invite_code},
        )

    async def fetch_viewings(self, *, session: SessionContext) -> Any:
        return await self._request("GET", "/viewings", session=session)

    async def fetch_viewing(self, viewing_id: str, *, session: SessionContext) -> Any:
        return await self._request(
            "GET", f"/viewings/{_segment(viewing_id)}", session=session
        )

    async def fetch_profile(self, *, session: SessionContext) -> Any:
        return await self._request("GET", "/me", session=session)

    async def update_profile(
        self, changes: Mapping[str, Any], *, session: SessionContext
    ) -> Any:
        return await self._request("PATCH", "/me", session=session, json=dict(changes))

    async def fetch_streaming_services(self, *, session: SessionContext) -> Any:
        """Fetch the full streaming-service catalog."""

        return await self._request("GET", "/api/streaming-services", session=session)

    async def fetch_user_services(self, *, session: SessionContext) -> Any:
        """Fetch the services the signed-in user has selected."""

        return await self._request(
            "GET", "/api/users/me/streaming-services", session=session
        )

    async def replace_user_services(
        self, service_ids: Iterable[str], *, session: SessionContext
    ) -> Any:
        """Replace the user's selected services with ``service_ids``."""

        return await self._request(
            "PUT",
            "/api/users/me/streaming-services",
            session=session,
            json={"serviceIds": list(service_ids)},
        )

    async def fetch_comments(self, post_id: str, *, session: SessionContext) -> Any:
        return await self._request(
            "GET", f"/posts/{_segment(post_id)}/comments", session=session
        )

    async def add_comment(
        self, post_id: str, text: str, *, session: SessionContext
    ) -> Any:
        return await self._request(
            "POST",
            f"/posts/{_segment(post_id)}/comments",
            session=session,
            json={"text": text},
        )

    async def toggle_like(self, post_id: str, *, session: SessionContext) -> Any:
        return await self._request(
            "POST", f"/posts/{_segment(post_id)}/like", session=session
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        session: SessionContext,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        # Only idempotent reads are retried; a write may already have applied.
        retryable = method == "GET"
        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method,
                    path,
                    headers=self._headers(session),
                    params=params,
                    json=json,
                )
            except httpx.HTTPError as exc:
                attempt += 1
                if retryable and attempt <= self._max_retries:
                    backoff = self._backoff(attempt)
                    logger.info(
                        "Transient error talking to BFFlix (%s). Retrying %s in %.1fs",
                        exc.__class__.__name__,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning("BFFlix %s %s failed: %s", method, path, exc)
                raise NetworkError(
                    f"Could not reach BFFlix ({exc.__class__.__name__})"
                ) from exc

            if 500 <= response.status_code < 600 and retryable:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._backoff(attempt)
                    logger.info(
                        "BFFlix %s for %s. Retrying in %.1fs",
                        response.status_code,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
            break

        payload = self._decode(response)
        if response.status_code >= 400:
            error = self._error_for(response.status_code, payload)
            logger.warning(
                "BFFlix %s %s returned %s: %s",
                method,
                path,
                response.status_code,
                error.message,
            )
            raise error
        return payload

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(2 ** (attempt - 1), 5) + (0.1 * attempt)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # HTML error pages and other non-JSON bodies
            return None

    @staticmethod
    def _error_for(status_code: int, payload: Any) -> ApiError:
        if status_code in (401, 403):
            return AuthError.from_payload(status_code, payload, default="access denied")
        if status_code == 404:
            return NotFoundError.from_payload(status_code, payload, default="not found")
        if status_code >= 500:
            return NetworkError.from_payload(status_code, payload)
        return ApiError.from_payload(status_code, payload)
