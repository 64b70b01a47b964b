"""Durable device-local preferences."""

from __future__ import annotations

import logging
from typing import Any

from .database import Database
from .db_models import Preference
from .models import CircleVisibility

logger = logging.getLogger(__name__)

VIEWINGS_VISIBILITY_KEY = "profile:viewingsVisibility"


class PreferenceStore:
    """Key/value preferences persisted through :class:`Database`."""

    def __init__(self, database: Database):
        self._database = database

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._database.session() as session:
            record = await session.get(Preference, key)
        if record is None or record.value is None:
            return default
        return record.value

    async def set(self, key: str, value: Any) -> None:
        async with self._database.session() as session:
            record = await session.get(Preference, key)
            if record is None:
                session.add(Preference(key=key, value=value))
            else:
                record.value = value
            await session.commit()
        logger.debug("Stored preference %s", key)

    async def delete(self, key: str) -> bool:
        async with self._database.session() as session:
            record = await session.get(Preference, key)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
        return True

    async def get_viewings_visibility(self) -> CircleVisibility:
        """Return who may see the user's viewings; private unless set otherwise."""

        stored = await self.get(VIEWINGS_VISIBILITY_KEY)
        try:
            return CircleVisibility(str(stored).strip().lower())
        except ValueError:
            if stored is not None:
                logger.info("Ignoring unknown viewings visibility %r", stored)
            return CircleVisibility.PRIVATE

    async def set_viewings_visibility(self, visibility: CircleVisibility | str) -> CircleVisibility:
        value = CircleVisibility(visibility.strip().lower() if isinstance(visibility, str) else visibility)
        await self.set(VIEWINGS_VISIBILITY_KEY, value.value)
        return value
