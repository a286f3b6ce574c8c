"""
Geo queries: drivers near an order and ready orders near a driver.

SQL narrows rows by online flag, freshness and status; great-circle distance
is computed here so the same code runs on PostgreSQL and SQLite.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_service.db import models as m
from food_service.services.errors import StalePresence
from food_service.services.geo import distance_km
from food_service.services.presence import DriverPresence

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 10
MAX_NEARBY_JOBS = 10


@dataclass(frozen=True, slots=True)
class Candidate:
    driver_id: int
    chat_id: int
    language: str
    distance_km: float


@dataclass(frozen=True, slots=True)
class NearbyJob:
    order_id: int
    items_total: int
    delivery_fee: int
    grand_total: int
    distance_km: float


class CandidateFinder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        presence: DriverPresence,
    ) -> None:
        self._session_factory = session_factory
        self._presence = presence

    async def nearby_online_drivers(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        *,
        limit: int = MAX_CANDIDATES,
    ) -> list[Candidate]:
        """Online drivers with fresh presence within ``radius_km``, nearest first."""
        cutoff = self._presence.fresh_cutoff()
        async with self._session_factory() as session:
            rows = await session.execute(
                select(
                    m.drivers.id,
                    m.drivers.chat_id,
                    m.drivers.language,
                    m.driver_locations.lat,
                    m.driver_locations.lon,
                )
                .join(m.driver_locations, m.driver_locations.driver_id == m.drivers.id)
                .where(
                    and_(
                        m.drivers.is_online.is_(True),
                        m.driver_locations.updated_at >= cutoff,
                    )
                )
            )
            found: list[Candidate] = []
            for row in rows:
                km = distance_km(lat, lon, row.lat, row.lon)
                if km > radius_km:
                    continue
                found.append(
                    Candidate(
                        driver_id=row.id,
                        chat_id=row.chat_id,
                        language=row.language,
                        distance_km=km,
                    )
                )
        found.sort(key=lambda c: (c.distance_km, c.driver_id))
        return found[:limit]

    async def jobs_near_me(
        self,
        driver_id: int,
        radius_km: float,
        *,
        limit: int = MAX_NEARBY_JOBS,
    ) -> list[NearbyJob]:
        """Unclaimed delivery orders around the driver's fresh location."""
        location = await self._presence.get_location_fresh(driver_id)
        if location is None:
            raise StalePresence(f"driver {driver_id} has no fresh location")
        async with self._session_factory() as session:
            rows = await session.execute(
                select(
                    m.orders.id,
                    m.orders.items_total,
                    m.orders.delivery_fee,
                    m.orders.grand_total,
                    m.orders.lat,
                    m.orders.lon,
                ).where(
                    and_(
                        m.orders.status == m.OrderStatus.READY,
                        m.orders.driver_id.is_(None),
                        m.orders.delivery_type == m.DeliveryType.DELIVERY,
                        m.orders.lat.is_not(None),
                        m.orders.lon.is_not(None),
                    )
                )
            )
            jobs: list[NearbyJob] = []
            for row in rows:
                km = distance_km(location.lat, location.lon, row.lat, row.lon)
                if km > radius_km:
                    continue
                jobs.append(
                    NearbyJob(
                        order_id=row.id,
                        items_total=row.items_total,
                        delivery_fee=row.delivery_fee,
                        grand_total=row.grand_total,
                        distance_km=km,
                    )
                )
        jobs.sort(key=lambda j: (j.distance_km, j.order_id))
        logger.debug("jobs_near_me: driver=%s found=%s", driver_id, len(jobs))
        return jobs[:limit]
