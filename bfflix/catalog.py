"""Merging and deterministic ordering of streaming-service catalogs."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .models import StreamingService

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20


def service_sort_key(service: StreamingService) -> tuple[int, str, str]:
    """Priority descending, then case-insensitive name, then id."""

    return (-service.display_priority, service.name.casefold(), service.id)


def sort_services(services: Iterable[StreamingService]) -> list[StreamingService]:
    return sorted(services, key=service_sort_key)


def merge_catalog(
    existing: Iterable[StreamingService],
    incoming: Iterable[StreamingService],
) -> list[StreamingService]:
    """Add unseen services to ``existing`` and return the sorted result.

    Entries already known keep their first-seen metadata; an incoming entry with
    a known id is ignored.
    """

    merged: dict[str, StreamingService] = {}
    for service in existing:
        merged.setdefault(service.id, service)
    for service in incoming:
        merged.setdefault(service.id, service)
    return sort_services(merged.values())


def filter_services(
    catalog: Iterable[StreamingService],
    term: str | None,
    *,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[StreamingService]:
    """Return services whose name contains ``term``, capped at ``limit``."""

    needle = (term or "").strip().casefold()
    ordered = sort_services(catalog)
    if needle:
        ordered = [service for service in ordered if needle in service.name.casefold()]
    return ordered[: max(0, limit)]


class ServiceCatalog:
    """In-memory catalog keyed by service id, always presented in sorted order."""

    def __init__(
        self,
        services: Iterable[StreamingService] = (),
        *,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        self._search_limit = search_limit
        self._services: dict[str, StreamingService] = {}
        self._ordered: list[StreamingService] = []
        self.merge(services)

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._services

    @property
    def services(self) -> list[StreamingService]:
        return list(self._ordered)

    def get(self, service_id: str) -> StreamingService | None:
        return self._services.get(service_id)

    def merge(self, incoming: Iterable[StreamingService]) -> list[StreamingService]:
        """Merge ``incoming`` into the catalog and return the services that were new."""

        added: list[StreamingService] = []
        for service in incoming:
            if service.id in self._services:
                continue
            self._services[service.id] = service
            added.append(service)
        if added:
            self._ordered = sort_services(self._services.values())
            logger.debug("Catalog grew by %s service(s) to %s", len(added), len(self._services))
        return added

    def search(self, term: str | None, *, limit: int | None = None) -> list[StreamingService]:
        if limit is None:
            limit = self._search_limit
        return filter_services(self._ordered, term, limit=limit)

    def order_ids(self, service_ids: Sequence[str]) -> list[str]:
        """Order ``service_ids`` by catalog position; unknown ids follow in given order."""

        unique = list(dict.fromkeys(service_ids))
        positions = {service.id: index for index, service in enumerate(self._ordered)}
        known = sorted((sid for sid in unique if sid in positions), key=positions.__getitem__)
        unknown = [sid for sid in unique if sid not in positions]
        return known + unknown
