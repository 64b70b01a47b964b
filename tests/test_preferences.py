"""Durable preference store tests."""

from __future__ import annotations

import pytest

from bfflix.database import Database
from bfflix.models import CircleVisibility
from bfflix.preferences import VIEWINGS_VISIBILITY_KEY, PreferenceStore


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


async def open_store(path) -> tuple[Database, PreferenceStore]:
    database = Database(f"sqlite+aiosqlite:///{path}")
    await database.create_all()
    return database, PreferenceStore(database)


@pytest.mark.anyio("asyncio")
async def test_viewings_visibility_defaults_to_private(tmp_path) -> None:
    database, store = await open_store(tmp_path / "prefs.db")
    try:
        assert await store.get_viewings_visibility() is CircleVisibility.PRIVATE
    finally:
        await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_viewings_visibility_survives_a_restart(tmp_path) -> None:
    path = tmp_path / "prefs.db"
    database, store = await open_store(path)
    try:
        assert await store.set_viewings_visibility("Public") is CircleVisibility.PUBLIC
    finally:
        await database.dispose()

    database, store = await open_store(path)
    try:
        assert await store.get_viewings_visibility() is CircleVisibility.PUBLIC
        await store.set_viewings_visibility(CircleVisibility.PRIVATE)
        assert await store.get(VIEWINGS_VISIBILITY_KEY) == "private"
    finally:
        await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_unknown_stored_values_fall_back_to_private(tmp_path) -> None:
    database, store = await open_store(tmp_path / "prefs.db")
    try:
        await store.set(VIEWINGS_VISIBILITY_KEY, "friends-only")
        assert await store.get_viewings_visibility() is CircleVisibility.PRIVATE
        assert await store.delete(VIEWINGS_VISIBILITY_KEY) is True
        assert await store.delete(VIEWINGS_VISIBILITY_KEY) is False
        assert await store.get(VIEWINGS_VISIBILITY_KEY, "unset") == "unset"
    finally:
        await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_invalid_visibility_is_rejected(tmp_path) -> None:
    database, store = await open_store(tmp_path / "prefs.db")
    try:
        with pytest.raises(ValueError):
            await store.set_viewings_visibility("everyone")
    finally:
        await database.dispose()
