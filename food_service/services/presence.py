"""Driver online flag and last known coordinate."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_service.db import models as m
from food_service.db.upsert import upsert
from food_service.services.clock import Clock, SystemClock, as_utc
from food_service.services.errors import NotFound

_log = logging.getLogger(__name__)

DEFAULT_FRESHNESS_SECONDS = 300


@dataclass(frozen=True, slots=True)
class DriverLocation:
    driver_id: int
    lat: float
    lon: float
    updated_at: datetime


class DriverPresence:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Optional[Clock] = None,
        freshness_seconds: int = DEFAULT_FRESHNESS_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self.freshness = timedelta(seconds=freshness_seconds)

    def fresh_cutoff(self) -> datetime:
        return self._clock.now() - self.freshness

    def is_fresh(self, location: Optional[DriverLocation]) -> bool:
        if location is None:
            return False
        return location.updated_at >= self.fresh_cutoff()

    async def set_online(self, driver_id: int, online: bool) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                update(m.drivers)
                .where(m.drivers.id == driver_id)
                .values(is_online=online, updated_at=self._clock.now())
                .returning(m.drivers.id)
                .execution_options(synchronize_session=False)
            )
            if result.first() is None:
                await session.rollback()
                raise NotFound(f"driver {driver_id} not found")
            await session.commit()
        _log.info("set_online: driver=%s online=%s", driver_id, online)

    async def is_online(self, driver_id: int) -> bool:
        async with self._session_factory() as session:
            value = await session.scalar(
                select(m.drivers.is_online).where(m.drivers.id == driver_id)
            )
        if value is None:
            raise NotFound(f"driver {driver_id} not found")
        return bool(value)

    async def update_location(self, driver_id: int, lat: float, lon: float) -> DriverLocation:
        now = self._clock.now()
        async with self._session_factory() as session:
            await upsert(
                session,
                m.driver_locations,
                {"driver_id": driver_id, "lat": lat, "lon": lon, "updated_at": now},
                conflict_on=("driver_id",),
            )
            await session.commit()
        _log.debug("update_location: driver=%s lat=%.5f lon=%.5f", driver_id, lat, lon)
        return DriverLocation(driver_id=driver_id, lat=lat, lon=lon, updated_at=now)

    async def get_location_any(self, driver_id: int) -> Optional[DriverLocation]:
        async with self._session_factory() as session:
            row = await session.get(m.driver_locations, driver_id)
        if row is None:
            return None
        return DriverLocation(
            driver_id=row.driver_id,
            lat=row.lat,
            lon=row.lon,
            updated_at=as_utc(row.updated_at),
        )

    async def get_location_fresh(self, driver_id: int) -> Optional[DriverLocation]:
        location = await self.get_location_any(driver_id)
        if not self.is_fresh(location):
            return None
        return location
