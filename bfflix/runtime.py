"""Process-level wiring of HTTP clients, the metadata cache and the preference store."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from .catalog import ServiceCatalog
from .config import Settings, get_settings
from .context import SessionContext
from .database import Database
from .pagination import PaginationController
from .preferences import PreferenceStore
from .profile import ProfileReconciler
from .services.api import BFFlixClient
from .services.enrichment import EnrichmentCache
from .services.tmdb import TMDBClient
from .sources import circle_posts_source, enriched_source, feed_source, viewings_source

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Long-lived collaborators shared by every screen of one process."""

    settings: Settings
    api: BFFlixClient
    enrichment: EnrichmentCache
    preferences: PreferenceStore
    catalog: ServiceCatalog

    def feed_controller(self, session: SessionContext) -> PaginationController:
        fetch = enriched_source(feed_source(self.api, session), self.enrichment)
        return PaginationController(fetch, page_size=self.settings.feed_page_size, name="feed")

    def circle_posts_controller(
        self, session: SessionContext, circle_id: str
    ) -> PaginationController:
        fetch = enriched_source(
            circle_posts_source(self.api, session, circle_id), self.enrichment
        )
        return PaginationController(
            fetch,
            page_size=self.settings.circle_posts_limit,
            name=f"circle:{circle_id}",
        )

    def viewings_controller(self, session: SessionContext) -> PaginationController:
        fetch = enriched_source(viewings_source(self.api, session), self.enrichment)
        return PaginationController(fetch, page_size=self.settings.feed_page_size, name="viewings")

    def profile_reconciler(self, session: SessionContext) -> ProfileReconciler:
        return ProfileReconciler(
            self.api,
            session,
            catalog=self.catalog,
            avatar_max_bytes=self.settings.avatar_max_bytes,
        )


@asynccontextmanager
async def open_runtime(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[Runtime]:
    """Open the HTTP clients and database for one process and close them on exit.

    ``transport`` replaces the network transport of both HTTP clients.
    """

    settings = settings or get_settings()
    exit_stack = AsyncExitStack()
    api_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.api_base_url),
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            transport=transport,
        )
    )
    provider: TMDBClient | None = None
    if settings.tmdb_api_key:
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.tmdb_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
                transport=transport,
            )
        )
        provider = TMDBClient(settings, tmdb_http_client)
    else:
        logger.info("TMDB_API_KEY is not set; records will not be enriched")

    database = Database(settings.database_url)
    await database.create_all()

    runtime = Runtime(
        settings=settings,
        api=BFFlixClient(settings, api_http_client),
        enrichment=EnrichmentCache(provider),
        preferences=PreferenceStore(database),
        catalog=ServiceCatalog(search_limit=settings.service_search_limit),
    )
    try:
        yield runtime
    finally:
        await database.dispose()
        await exit_stack.aclose()
