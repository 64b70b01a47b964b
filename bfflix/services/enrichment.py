"""Process-wide memo of external title metadata used to enrich records."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence, TypeVar, Union

from ..models import CanonicalPost, CanonicalViewing, TitleMetadata, ViewingKind

logger = logging.getLogger(__name__)

NO_METADATA = TitleMetadata()
LOOKUP_TYPES = ("movie", "tv")

Enrichable = Union[CanonicalPost, CanonicalViewing]
E = TypeVar("E", CanonicalPost, CanonicalViewing)


class MetadataProvider(Protocol):
    async def fetch_title(self, media_type: str, external_id: str) -> TitleMetadata:
        ...


class EnrichmentCache:
    """Single-flight, append-only cache keyed by ``media_type:external_id``.

    Concurrent lookups of one key share a single provider call. Results,
    including "nothing found", are kept for the lifetime of the cache. Provider
    failures are logged and answered with empty metadata without being
    remembered, so the next lookup asks again.
    """

    def __init__(self, provider: MetadataProvider | None) -> None:
        self._provider = provider
        self._entries: dict[str, TitleMetadata] = {}
        self._inflight: dict[str, asyncio.Task[TitleMetadata]] = {}

    @staticmethod
    def cache_key(media_type: str, external_id: str) -> str:
        return f"{media_type}:{external_id}"

    @property
    def enabled(self) -> bool:
        return self._provider is not None

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, media_type: str, external_id: str) -> TitleMetadata | None:
        return self._entries.get(self.cache_key(media_type, external_id))

    async def lookup(self, media_type: str, external_id: str) -> TitleMetadata:
        media_type = (media_type or "").strip().lower()
        external_id = str(external_id or "").strip()
        provider = self._provider
        if provider is None or not external_id or media_type not in LOOKUP_TYPES:
            return NO_METADATA

        key = self.cache_key(media_type, external_id)
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(provider, key, media_type, external_id))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        # A cancelled caller must not cancel the lookup other callers share.
        return await asyncio.shield(task)

    async def enrich_post(self, post: CanonicalPost) -> CanonicalPost:
        """Fill a post's missing title and image; present fields are never replaced."""

        if not post.needs_enrichment or post.external_id is None:
            return post
        metadata = await self.lookup(post.media_type.lookup_type, post.external_id)
        update: dict[str, str] = {}
        if not post.title and metadata.title:
            update["title"] = metadata.title
        if not post.image_url and metadata.poster_url:
            update["image_url"] = metadata.poster_url
        return post.model_copy(update=update) if update else post

    async def enrich_viewing(self, viewing: CanonicalViewing) -> CanonicalViewing:
        """Fill a viewing's missing title and poster; present fields are never replaced."""

        if not viewing.needs_enrichment or viewing.external_id is None:
            return viewing
        if viewing.media_type is ViewingKind.UNKNOWN:
            return viewing
        metadata = await self.lookup(viewing.media_type.value, viewing.external_id)
        update: dict[str, str] = {}
        if not viewing.display_title and metadata.title:
            update["display_title"] = metadata.title
        if not viewing.poster_url and metadata.poster_url:
            update["poster_url"] = metadata.poster_url
        return viewing.model_copy(update=update) if update else viewing

    async def enrich_many(self, records: Sequence[E]) -> list[E]:
        """Enrich records concurrently, preserving their order."""

        async def _enrich(record: Enrichable) -> Enrichable:
            if isinstance(record, CanonicalPost):
                return await self.enrich_post(record)
            return await self.enrich_viewing(record)

        if not records or self._provider is None:
            return list(records)
        return list(await asyncio.gather(*(_enrich(record) for record in records)))

    async def _fetch(
        self, provider: MetadataProvider, key: str, media_type: str, external_id: str
    ) -> TitleMetadata:
        try:
            metadata = await provider.fetch_title(media_type, external_id)
        except Exception as exc:  # provider failures only cost the enrichment
            logger.warning("Metadata lookup for %s failed: %s", key, exc)
            return NO_METADATA
        self._entries[key] = metadata
        return metadata

    def _forget(self, key: str, task: asyncio.Task[TitleMetadata]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
