"""Cursor-driven incremental loading for feed-like lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Protocol, TypeVar

from .cancellation import OperationScope, OperationToken
from .errors import SyncError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class Identified(Protocol):
    id: str


R = TypeVar("R", bound=Identified)


class Phase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"
    END = "end"
    ERROR = "error"


@dataclass
class Page(Generic[R]):
    """One page of canonical records and the cursor of the page after it."""

    items: list[R] = field(default_factory=list)
    next_cursor: str | None = None


PageFetcher = Callable[[str | None, int], Awaitable[Page[Any]]]


@dataclass
class PaginationState(Generic[R]):
    """Snapshot of a controller, safe to hand to rendering code."""

    items: list[R]
    cursor: str | None
    has_more: bool
    phase: Phase
    error: SyncError | None = None


@dataclass(slots=True)
class LoadOutcome:
    """What a load call did.

    ``applied`` is False when the call was a no-op or its response arrived
    after being superseded (``stale``) or after the controller was disposed.
    ``error`` carries the failure of an applied call.
    """

    applied: bool
    added: int = 0
    error: SyncError | None = None
    stale: bool = False


class PaginationController(Generic[R]):
    """Owns the items and cursor state of one paginated list on one screen."""

    def __init__(
        self,
        fetch_page: PageFetcher,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        name: str = "feed",
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._fetch_page = fetch_page
        self._page_size = page_size
        self._name = name
        self._scope = OperationScope(name)
        self._records: dict[str, R] = {}
        self._cursor: str | None = None
        self._has_more = False
        self._phase = Phase.IDLE
        self._error: SyncError | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def items(self) -> list[R]:
        return list(self._records.values())

    @property
    def cursor(self) -> str | None:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def error(self) -> SyncError | None:
        return self._error

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def disposed(self) -> bool:
        return self._scope.closed

    @property
    def state(self) -> PaginationState[R]:
        return PaginationState(
            items=self.items,
            cursor=self._cursor,
            has_more=self._has_more,
            phase=self._phase,
            error=self._error,
        )

    async def load_initial(self) -> LoadOutcome:
        """Load the first page, replacing whatever the controller held.

        Accepted from IDLE and ERROR. A call made while another initial load is
        in flight supersedes it; the earlier response is then discarded.
        """

        if self._scope.closed:
            return LoadOutcome(applied=False)
        if self._phase not in (Phase.IDLE, Phase.ERROR, Phase.LOADING):
            logger.debug("Ignoring initial load of %s while %s", self._name, self._phase.value)
            return LoadOutcome(applied=False)

        token = self._scope.issue()
        self._phase = Phase.LOADING
        self._error = None
        try:
            page = await self._fetch_page(None, self._page_size)
        except SyncError as exc:
            if not token.current:
                return self._discard(token)
            logger.warning("Initial load of %s failed: %s", self._name, exc)
            self._records = {}
            self._cursor = None
            self._has_more = False
            self._phase = Phase.ERROR
            self._error = exc
            return LoadOutcome(applied=True, error=exc)
        except Exception:
            if token.current:
                self._phase = Phase.ERROR
            raise

        if not token.current:
            return self._discard(token)

        self._records = {}
        added = self._append(page.items)
        self._advance(page.next_cursor, previous=None)
        return LoadOutcome(applied=True, added=added)

    async def load_more(self) -> LoadOutcome:
        """Append the next page; a no-op unless the list is ready and not exhausted.

        Failures leave existing items in place, return the controller to READY
        and are reported on the outcome so the caller can retry.
        """

        if self._scope.closed:
            return LoadOutcome(applied=False)
        if (
            self._phase is not Phase.READY
            or not self._has_more
            or self._cursor is None
        ):
            return LoadOutcome(applied=False)

        token = self._scope.issue()
        cursor = self._cursor
        self._phase = Phase.LOADING_MORE
        try:
            page = await self._fetch_page(cursor, self._page_size)
        except SyncError as exc:
            if not token.current:
                return self._discard(token)
            logger.info("Loading more of %s failed: %s", self._name, exc)
            self._phase = Phase.READY
            return LoadOutcome(applied=True, error=exc)
        except Exception:
            if token.current:
                self._phase = Phase.READY
            raise

        if not token.current:
            return self._discard(token)

        added = self._append(page.items)
        self._advance(page.next_cursor, previous=cursor)
        return LoadOutcome(applied=True, added=added)

    def reset(self) -> None:
        """Drop every item and return to IDLE; in-flight responses become stale."""

        self._scope.invalidate()
        self._records = {}
        self._cursor = None
        self._has_more = False
        self._phase = Phase.IDLE
        self._error = None

    def dispose(self) -> None:
        """Tear the controller down; responses still in flight are discarded."""

        self._scope.close()

    def _append(self, records: list[R]) -> int:
        added = 0
        for record in records:
            if record.id in self._records:
                logger.debug("Skipping duplicate %s item %s", self._name, record.id)
                continue
            self._records[record.id] = record
            added += 1
        return added

    def _advance(self, next_cursor: str | None, *, previous: str | None) -> None:
        if next_cursor is not None and next_cursor == previous:
            logger.warning(
                "Server repeated cursor %s for %s; treating the list as complete",
                next_cursor,
                self._name,
            )
            next_cursor = None
        self._cursor = next_cursor
        self._has_more = next_cursor is not None
        self._phase = Phase.READY if self._has_more else Phase.END

    def _discard(self, token: OperationToken) -> LoadOutcome:
        reason = "disposed" if token.cancelled else "superseded"
        logger.debug(
            "Discarding %s response #%s (%s)", self._name, token.sequence, reason
        )
        return LoadOutcome(applied=False, stale=True)
