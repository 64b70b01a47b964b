"""Pagination controller behaviour tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from bfflix.errors import NetworkError
from bfflix.models import CanonicalPost
from bfflix.pagination import Page, PaginationController, Phase


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def make_posts(start: int, count: int) -> list[CanonicalPost]:
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [CanonicalPost(id=f"p{index}", created_at=created) for index in range(start, start + count)]


class ScriptedFetcher:
    """Serves queued pages and records the cursors it was asked for."""

    def __init__(self, *pages: Page | Exception) -> None:
        self.pages = list(pages)
        self.calls: list[tuple[str | None, int]] = []

    async def __call__(self, cursor: str | None, limit: int) -> Page:
        self.calls.append((cursor, limit))
        result = self.pages.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.anyio("asyncio")
async def test_feed_loads_until_the_cursor_runs_out() -> None:
    fetcher = ScriptedFetcher(
        Page(items=make_posts(0, 20), next_cursor="c1"),
        Page(items=make_posts(20, 5), next_cursor=None),
    )
    controller = PaginationController(fetcher, page_size=20)

    first = await controller.load_initial()
    assert first.applied and first.added == 20
    assert controller.phase is Phase.READY
    assert controller.has_more is True

    second = await controller.load_more()
    assert second.added == 5

    assert len(controller.items) == 25
    assert len({post.id for post in controller.items}) == 25
    assert controller.has_more is False
    assert controller.cursor is None
    assert controller.phase is Phase.END
    assert fetcher.calls == [(None, 20), ("c1", 20)]

    assert (await controller.load_more()).applied is False
    assert len(fetcher.calls) == 2


@pytest.mark.anyio("asyncio")
async def test_duplicate_ids_across_pages_are_skipped() -> None:
    fetcher = ScriptedFetcher(
        Page(items=make_posts(0, 3), next_cursor="c1"),
        Page(items=make_posts(2, 3), next_cursor="c2"),
    )
    controller = PaginationController(fetcher, page_size=3)

    await controller.load_initial()
    outcome = await controller.load_more()

    assert outcome.added == 2
    assert [post.id for post in controller.items] == ["p0", "p1", "p2", "p3", "p4"]
    assert controller.cursor == "c2"


@pytest.mark.anyio("asyncio")
async def test_load_more_while_loading_more_is_a_no_op() -> None:
    release = asyncio.Event()
    calls: list[str | None] = []

    async def fetch(cursor: str | None, limit: int) -> Page:
        calls.append(cursor)
        if cursor is None:
            return Page(items=make_posts(0, 2), next_cursor="c1")
        await release.wait()
        return Page(items=make_posts(2, 2), next_cursor="c2")

    controller = PaginationController(fetch, page_size=2)
    await controller.load_initial()

    pending = asyncio.create_task(controller.load_more())
    await asyncio.sleep(0)
    assert controller.phase is Phase.LOADING_MORE

    ignored = await controller.load_more()
    assert ignored.applied is False
    assert calls == [None, "c1"]

    release.set()
    outcome = await pending
    assert outcome.added == 2
    assert controller.phase is Phase.READY


@pytest.mark.anyio("asyncio")
async def test_only_the_latest_initial_load_is_applied() -> None:
    first_gate = asyncio.Event()
    second_gate = asyncio.Event()
    started = 0

    async def fetch(cursor: str | None, limit: int) -> Page:
        nonlocal started
        started += 1
        if started == 1:
            await first_gate.wait()
            return Page(items=make_posts(0, 2), next_cursor="old")
        await second_gate.wait()
        return Page(items=make_posts(100, 1), next_cursor="new")

    controller = PaginationController(fetch)
    earlier = asyncio.create_task(controller.load_initial())
    await asyncio.sleep(0)
    later = asyncio.create_task(controller.load_initial())
    await asyncio.sleep(0)

    second_gate.set()
    later_outcome = await later
    first_gate.set()
    earlier_outcome = await earlier

    assert later_outcome.applied is True
    assert earlier_outcome.applied is False
    assert earlier_outcome.stale is True
    assert [post.id for post in controller.items] == ["p100"]
    assert controller.cursor == "new"


@pytest.mark.anyio("asyncio")
async def test_initial_failure_enters_error_and_can_retry() -> None:
    fetcher = ScriptedFetcher(
        NetworkError("offline"),
        Page(items=make_posts(0, 1), next_cursor=None),
    )
    controller = PaginationController(fetcher)

    failed = await controller.load_initial()
    assert failed.applied is True
    assert isinstance(failed.error, NetworkError)
    assert controller.phase is Phase.ERROR
    assert controller.items == []
    assert controller.error is failed.error

    retried = await controller.load_initial()
    assert retried.added == 1
    assert controller.phase is Phase.END
    assert controller.error is None


@pytest.mark.anyio("asyncio")
async def test_load_more_after_initial_failure_is_a_no_op() -> None:
    fetcher = ScriptedFetcher(NetworkError("offline"))
    controller = PaginationController(fetcher)
    await controller.load_initial()

    outcome = await controller.load_more()

    assert outcome.applied is False
    assert outcome.error is None
    assert controller.phase is Phase.ERROR
    assert len(fetcher.calls) == 1


@pytest.mark.anyio("asyncio")
async def test_load_more_failure_keeps_items_and_returns_to_ready() -> None:
    fetcher = ScriptedFetcher(
        Page(items=make_posts(0, 2), next_cursor="c1"),
        NetworkError("timeout"),
        Page(items=make_posts(2, 1), next_cursor=None),
    )
    controller = PaginationController(fetcher, page_size=2)
    await controller.load_initial()

    failed = await controller.load_more()
    assert isinstance(failed.error, NetworkError)
    assert controller.phase is Phase.READY
    assert len(controller.items) == 2
    assert controller.cursor == "c1"

    await controller.load_more()
    assert len(controller.items) == 3
    assert fetcher.calls[-1] == ("c1", 2)


@pytest.mark.anyio("asyncio")
async def test_initial_load_is_ignored_once_ready() -> None:
    fetcher = ScriptedFetcher(Page(items=make_posts(0, 1), next_cursor="c1"))
    controller = PaginationController(fetcher)
    await controller.load_initial()

    outcome = await controller.load_initial()

    assert outcome.applied is False
    assert len(fetcher.calls) == 1


@pytest.mark.anyio("asyncio")
async def test_reset_allows_a_fresh_initial_load() -> None:
    fetcher = ScriptedFetcher(
        Page(items=make_posts(0, 2), next_cursor=None),
        Page(items=make_posts(5, 1), next_cursor=None),
    )
    controller = PaginationController(fetcher)
    await controller.load_initial()

    controller.reset()
    assert controller.phase is Phase.IDLE
    assert controller.items == []

    await controller.load_initial()
    assert [post.id for post in controller.items] == ["p5"]


@pytest.mark.anyio("asyncio")
async def test_responses_after_dispose_are_discarded() -> None:
    gate = asyncio.Event()

    async def fetch(cursor: str | None, limit: int) -> Page:
        await gate.wait()
        return Page(items=make_posts(0, 3), next_cursor="c1")

    controller = PaginationController(fetch)
    pending = asyncio.create_task(controller.load_initial())
    await asyncio.sleep(0)

    controller.dispose()
    gate.set()
    outcome = await pending

    assert outcome.applied is False
    assert outcome.stale is True
    assert controller.items == []
    assert controller.disposed is True
    assert (await controller.load_initial()).applied is False


@pytest.mark.anyio("asyncio")
async def test_repeated_cursor_ends_the_list() -> None:
    fetcher = ScriptedFetcher(
        Page(items=make_posts(0, 1), next_cursor="same"),
        Page(items=make_posts(1, 1), next_cursor="same"),
    )
    controller = PaginationController(fetcher)
    await controller.load_initial()
    await controller.load_more()

    assert controller.phase is Phase.END
    assert controller.has_more is False


def test_page_size_must_be_positive() -> None:
    async def fetch(cursor, limit):  # pragma: no cover - never awaited
        return Page()

    with pytest.raises(ValueError):
        PaginationController(fetch, page_size=0)
