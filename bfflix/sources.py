"""Page fetchers and detail loaders bound to the BFFlix API."""

from __future__ import annotations

import logging
from typing import Any

from .context import SessionContext
from .errors import NotFoundError
from .models import CanonicalCircle, CanonicalComment, CanonicalPost, CanonicalViewing, LikeState
from .normalize import (
    extract_next_cursor,
    normalize_batch,
    normalize_circle,
    normalize_comment,
    normalize_like_state,
    normalize_post,
    normalize_viewing,
)
from .pagination import Page, PageFetcher
from .services.api import BFFlixClient
from .services.enrichment import EnrichmentCache

logger = logging.getLogger(__name__)


def feed_source(client: BFFlixClient, session: SessionContext) -> PageFetcher:
    """Cursor pages of ``GET /feed``."""

    async def fetch(cursor: str | None, limit: int) -> Page[CanonicalPost]:
        payload = await client.fetch_feed(session=session, cursor=cursor, limit=limit)
        batch = normalize_batch(payload, normalize_post, kind="feed post")
        return Page(items=batch.items, next_cursor=extract_next_cursor(payload))

    return fetch


def circle_posts_source(
    client: BFFlixClient, session: SessionContext, circle_id: str
) -> PageFetcher:
    """Posts of one circle, mapping the endpoint's page numbers onto cursors.

    The cursor is the next page number. It is offered only while full pages keep
    arriving, since the endpoint does not say when the list ends.
    """

    async def fetch(cursor: str | None, limit: int) -> Page[CanonicalPost]:
        page = int(cursor) if cursor else 1
        payload = await client.fetch_circle_posts(
            circle_id, session=session, page=page, limit=limit
        )
        batch = normalize_batch(payload, normalize_post, kind="circle post")
        received = len(batch.items) + batch.dropped
        next_cursor = str(page + 1) if received >= limit else None
        return Page(items=batch.items, next_cursor=next_cursor)

    return fetch


def viewings_source(client: BFFlixClient, session: SessionContext) -> PageFetcher:
    """The user's viewings; the endpoint returns everything in one page."""

    async def fetch(cursor: str | None, limit: int) -> Page[CanonicalViewing]:
        payload = await client.fetch_viewings(session=session)
        batch = normalize_batch(payload, normalize_viewing, kind="viewing")
        return Page(items=batch.items, next_cursor=None)

    return fetch


async def load_circle(
    client: BFFlixClient, session: SessionContext, circle_id: str
) -> CanonicalCircle:
    """Load a circle's detail; a payload without an id falls back to ``circle_id``."""

    payload = await client.fetch_circle(circle_id, session=session)
    if payload is None:
        raise NotFoundError(f"Circle {circle_id} not found", status_code=404)
    circle = normalize_circle(payload)
    if circle is None:
        logger.info("Circle payload for %s carried no id; using the requested id", circle_id)
        circle = normalize_circle({**payload, "id": circle_id}) if isinstance(payload, dict) else None
    if circle is None:
        raise NotFoundError(f"Circle {circle_id} not found", status_code=404)
    return circle


async def join_circle(
    client: BFFlixClient, session: SessionContext, circle_id: str, invite_code: str
) -> CanonicalCircle | None:
    """Join a circle with an invite code and return the circle when the server echoes it."""

    payload = await client.join_circle(circle_id, invite_code.strip(), session=session)
    if isinstance(payload, dict) and isinstance(payload.get("circle"), dict):
        payload = payload["circle"]
    return normalize_circle(payload) if isinstance(payload, dict) else None


async def load_viewing(
    client: BFFlixClient, session: SessionContext, viewing_id: str
) -> CanonicalViewing:
    payload = await client.fetch_viewing(viewing_id, session=session)
    viewing = normalize_viewing(payload)
    if viewing is None:
        raise NotFoundError(f"Viewing {viewing_id} not found", status_code=404)
    return viewing


async def load_comments(
    client: BFFlixClient, session: SessionContext, post_id: str
) -> list[CanonicalComment]:
    payload = await client.fetch_comments(post_id, session=session)
    keys = ("comments", "items", "data")
    return normalize_batch(payload, normalize_comment, kind="comment", keys=keys).items


async def add_comment(
    client: BFFlixClient, session: SessionContext, post_id: str, text: str
) -> CanonicalComment | None:
    payload = await client.add_comment(post_id, text, session=session)
    return normalize_comment(payload)


async def toggle_like(
    client: BFFlixClient, session: SessionContext, post_id: str
) -> LikeState:
    payload = await client.toggle_like(post_id, session=session)
    return normalize_like_state(payload)


def enriched_source(fetch: PageFetcher, cache: EnrichmentCache) -> PageFetcher:
    """Wrap ``fetch`` so every page is passed through the metadata cache before use."""

    async def fetch_enriched(cursor: str | None, limit: int) -> Page[Any]:
        page = await fetch(cursor, limit)
        if not cache.enabled or not page.items:
            return page
        return Page(items=await cache.enrich_many(page.items), next_cursor=page.next_cursor)

    return fetch_enriched
