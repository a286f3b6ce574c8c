from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_service.db import models as m
from food_service.db.upsert import upsert
from food_service.services.clock import Clock, SystemClock


@dataclass(frozen=True, slots=True)
class MessagePointer:
    order_id: int
    audience: m.Audience
    chat_id: int
    message_id: int


class MessagePointers:
    """``(order_id, audience) -> (chat_id, message_id)`` of the live card."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    async def get(self, order_id: int, audience: m.Audience) -> Optional[MessagePointer]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(m.order_message_pointers).where(
                    and_(
                        m.order_message_pointers.order_id == order_id,
                        m.order_message_pointers.audience == audience,
                    )
                )
            )
        if row is None:
            return None
        return MessagePointer(
            order_id=row.order_id,
            audience=row.audience,
            chat_id=row.chat_id,
            message_id=row.message_id,
        )

    async def put(
        self, order_id: int, audience: m.Audience, chat_id: int, message_id: int
    ) -> MessagePointer:
        async with self._session_factory() as session:
            await upsert(
                session,
                m.order_message_pointers,
                {
                    "order_id": order_id,
                    "audience": audience,
                    "chat_id": chat_id,
                    "message_id": message_id,
                    "updated_at": self._clock.now(),
                },
                conflict_on=("order_id", "audience"),
            )
            await session.commit()
        return MessagePointer(order_id, audience, chat_id, message_id)
