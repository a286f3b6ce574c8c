from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_service.db import models as m
from food_service.services.errors import NotFound

_log = logging.getLogger(__name__)


@dataclass(slots=True)
class DriverProfile:
    full_name: Optional[str] = None
    phone: Optional[str] = None
    car_plate: Optional[str] = None
    car_model: Optional[str] = None
    car_color: Optional[str] = None
    language: Optional[str] = None


class DriversService:
    """Реестр водителей: регистрация и поиск."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def register_driver(
        self,
        tg_user_id: int,
        chat_id: int,
        profile: Optional[DriverProfile] = None,
    ) -> m.drivers:
        """Create the driver or refresh chat id and the given profile fields."""
        profile = profile or DriverProfile()
        async with self._session_factory() as session:
            driver = await session.scalar(
                select(m.drivers).where(m.drivers.tg_user_id == tg_user_id)
            )
            created = driver is None
            if driver is None:
                driver = m.drivers(tg_user_id=tg_user_id, chat_id=chat_id, is_online=False)
                session.add(driver)
            driver.chat_id = chat_id
            for field in ("full_name", "phone", "car_plate", "car_model", "car_color", "language"):
                value = getattr(profile, field)
                if value is not None:
                    setattr(driver, field, value.strip() if isinstance(value, str) else value)
            await session.commit()
            await session.refresh(driver)
        _log.info(
            "register_driver: driver=%s tg_user_id=%s created=%s", driver.id, tg_user_id, created
        )
        return driver

    async def get_driver(self, driver_id: int) -> Optional[m.drivers]:
        async with self._session_factory() as session:
            return await session.get(m.drivers, driver_id)

    async def require_driver(self, driver_id: int) -> m.drivers:
        driver = await self.get_driver(driver_id)
        if driver is None:
            raise NotFound(f"driver {driver_id} not found")
        return driver

    async def get_by_tg_user_id(self, tg_user_id: int) -> Optional[m.drivers]:
        async with self._session_factory() as session:
            return await session.scalar(
                select(m.drivers).where(m.drivers.tg_user_id == tg_user_id)
            )
