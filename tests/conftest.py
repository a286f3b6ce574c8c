from __future__ import annotations

import itertools
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from food_service.db import models as m
from food_service.db.base import metadata
from food_service.infra.transport import MessageNotFound
from food_service.services.clock import FrozenClock
from food_service.services.event_hub import EventHub

BRANCH_LAT = 41.31
BRANCH_LON = 69.24


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File database: every session gets its own connection, like PostgreSQL.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'food.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture
async def hub():
    hub = EventHub()
    yield hub
    await hub.close()


class FakeTransport:
    """Records sends and edits; failures are queued per call kind."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, int, str, tuple]] = []
        self.edits: list[tuple[int, int, str, tuple]] = []
        self.deleted: set[tuple[int, int]] = set()
        self.send_errors: list[Exception] = []
        self.edit_errors: list[Exception] = []
        self._ids = itertools.count(1000)

    async def send(self, chat_id: int, text: str, buttons=()) -> int:
        if self.send_errors:
            raise self.send_errors.pop(0)
        message_id = next(self._ids)
        self.sent.append((chat_id, message_id, text, tuple(buttons)))
        return message_id

    async def edit(self, chat_id: int, message_id: int, text: str, buttons=()) -> None:
        if (chat_id, message_id) in self.deleted:
            raise MessageNotFound("message to edit not found")
        if self.edit_errors:
            raise self.edit_errors.pop(0)
        self.edits.append((chat_id, message_id, text, tuple(buttons)))

    def sent_to(self, chat_id: int) -> list[tuple[int, int, str, tuple]]:
        return [item for item in self.sent if item[0] == chat_id]


@pytest.fixture
def transports() -> dict[m.Audience, FakeTransport]:
    return {audience: FakeTransport() for audience in m.Audience}


async def create_branch(
    session: AsyncSession, *, name: str = "Chilonzor", lat: float = BRANCH_LAT, lon: float = BRANCH_LON
) -> m.branches:
    branch = m.branches(name=name, lat=lat, lon=lon)
    session.add(branch)
    await session.commit()
    await session.refresh(branch)
    return branch


async def create_admin(
    session: AsyncSession,
    branch_id: int,
    *,
    admin_user_id: int = 7001,
    chat_id: Optional[int] = None,
    language: str = "uz",
) -> m.branch_admins:
    admin = m.branch_admins(
        branch_id=branch_id,
        admin_user_id=admin_user_id,
        chat_id=chat_id if chat_id is not None else admin_user_id,
        language=language,
    )
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    return admin


async def create_driver(
    session: AsyncSession,
    *,
    tg_user_id: int,
    online: bool = True,
    full_name: str = "Driver",
    language: str = "uz",
) -> m.drivers:
    driver = m.drivers(
        tg_user_id=tg_user_id,
        chat_id=tg_user_id,
        full_name=full_name,
        phone="+998901234567",
        car_plate="01A123BC",
        language=language,
        is_online=online,
    )
    session.add(driver)
    await session.commit()
    await session.refresh(driver)
    return driver


@pytest_asyncio.fixture
async def branch(async_session) -> m.branches:
    return await create_branch(async_session)


@pytest_asyncio.fixture
async def admin(async_session, branch) -> m.branch_admins:
    return await create_admin(async_session, branch.id)


@pytest.fixture
def make_driver(async_session):
    async def _make(**kwargs) -> m.drivers:
        return await create_driver(async_session, **kwargs)

    return _make


@pytest.fixture
def make_admin(async_session):
    async def _make(branch_id: int, **kwargs) -> m.branch_admins:
        return await create_admin(async_session, branch_id, **kwargs)

    return _make


@pytest.fixture
def make_branch(async_session):
    async def _make(**kwargs) -> m.branches:
        return await create_branch(async_session, **kwargs)

    return _make


@pytest.fixture
def app(session_factory, transports, clock, hub):
    from food_service.config import Settings
    from food_service.main import build_application

    return build_application(session_factory, transports, config=Settings(), clock=clock, hub=hub)
