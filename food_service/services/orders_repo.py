"""
Репозиторий заказов.

The only place that writes ``orders.status``. Every status change goes through
:meth:`OrdersRepository.apply_transition`, which updates the row conditionally
and appends exactly one ``order_status_history`` row in the same transaction.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, AsyncIterator, Optional

from sqlalchemy import and_, case, func, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from food_service.db import models as m
from food_service.services import geo
from food_service.services.clock import UTC, Clock, SystemClock, as_utc
from food_service.services.errors import ConstraintViolation, NotFound, StorageUnavailable
from food_service.services.event_hub import EventHub

_log = logging.getLogger(__name__)

CUSTOMER_ORDERS_LIMIT = 20


@dataclass(slots=True)
class NewOrder:
    customer_user_id: int
    customer_chat_id: int
    branch_id: int
    items_total: int
    delivery_type: m.DeliveryType = m.DeliveryType.UNSET
    phone: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    distance_km: float = 0.0
    delivery_fee: Optional[int] = None
    customer_language: str = "uz"


@dataclass(frozen=True, slots=True)
class CustomerOrderRow:
    id: int
    status: m.OrderStatus
    grand_total: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class DailyStats:
    day: date
    orders_count: int
    items_revenue: int
    delivery_revenue: int
    grand_revenue: int
    overrides_count: int


@dataclass(frozen=True, slots=True)
class AdminBinding:
    admin_user_id: int
    branch_id: int
    chat_id: int
    language: str


class OrdersRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        hub: Optional[EventHub] = None,
        clock: Optional[Clock] = None,
        base_fee: int = geo.DEFAULT_BASE_FEE,
        rate_per_km: int = geo.DEFAULT_RATE_PER_KM,
    ) -> None:
        self._session_factory = session_factory
        self._hub = hub
        self._clock = clock or SystemClock()
        self.base_fee = base_fee
        self.rate_per_km = rate_per_km

    @property
    def clock(self) -> Clock:
        return self._clock

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session that commits on success and maps driver errors to order errors."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConstraintViolation(str(exc.orig)) from exc
            except DBAPIError as exc:
                await session.rollback()
                raise StorageUnavailable(str(exc.orig)) from exc
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except DBAPIError as exc:
                raise StorageUnavailable(str(exc.orig)) from exc

    def _publish(self, order_id: int) -> None:
        if self._hub is not None:
            self._hub.publish(order_id)

    # ------------------------------------------------------------------ create / read

    async def create_order(self, data: NewOrder) -> m.orders:
        if data.items_total < 0:
            raise ConstraintViolation("items_total must be non-negative")
        delivery_type = m.DeliveryType(data.delivery_type or m.DeliveryType.UNSET)
        if delivery_type == m.DeliveryType.PICKUP:
            fee = 0
        elif data.delivery_fee is not None:
            fee = max(0, int(data.delivery_fee))
        elif data.lat is not None and data.lon is not None:
            fee = geo.delivery_fee(
                data.distance_km,
                delivery_type,
                base_fee=self.base_fee,
                rate_per_km=self.rate_per_km,
            )
        else:
            fee = 0
        now = self._clock.now()
        order = m.orders(
            customer_user_id=data.customer_user_id,
            customer_chat_id=data.customer_chat_id,
            customer_language=data.customer_language,
            phone=data.phone,
            branch_id=data.branch_id,
            status=m.OrderStatus.NEW,
            delivery_type=delivery_type,
            lat=data.lat,
            lon=data.lon,
            distance_km=data.distance_km,
            rate_per_km=self.rate_per_km,
            items_total=data.items_total,
            delivery_fee=fee,
            grand_total=data.items_total + fee,
            created_at=now,
            updated_at=now,
        )
        async with self.transaction() as session:
            session.add(order)
            await session.flush()
        _log.info(
            "create_order: order=%s branch=%s items=%s fee=%s type=%s",
            order.id, order.branch_id, order.items_total, fee, delivery_type.value,
        )
        self._publish(order.id)
        return order

    async def find_order(self, order_id: int) -> Optional[m.orders]:
        async with self.reading() as session:
            return await session.get(m.orders, order_id)

    async def get_order(self, order_id: int) -> m.orders:
        order = await self.find_order(order_id)
        if order is None:
            raise NotFound(f"order {order_id} not found", order_id=order_id)
        return order

    async def list_customer_orders(
        self, customer_user_id: int, *, limit: int = CUSTOMER_ORDERS_LIMIT
    ) -> list[CustomerOrderRow]:
        limit = max(1, min(limit, CUSTOMER_ORDERS_LIMIT))
        async with self.reading() as session:
            rows = await session.execute(
                select(m.orders.id, m.orders.status, m.orders.grand_total, m.orders.created_at)
                .where(m.orders.customer_user_id == customer_user_id)
                .order_by(m.orders.created_at.desc(), m.orders.id.desc())
                .limit(limit)
            )
            return [
                CustomerOrderRow(
                    id=row.id,
                    status=row.status,
                    grand_total=row.grand_total,
                    created_at=as_utc(row.created_at),
                )
                for row in rows
            ]

    async def status_history(self, order_id: int) -> list[m.order_status_history]:
        async with self.reading() as session:
            rows = await session.execute(
                select(m.order_status_history)
                .where(m.order_status_history.order_id == order_id)
                .order_by(m.order_status_history.id)
            )
            return list(rows.scalars())

    # ------------------------------------------------------------------ transitions

    async def apply_transition(
        self,
        order_id: int,
        from_status: m.OrderStatus,
        to_status: m.OrderStatus,
        *,
        actor_type: m.ActorType,
        actor_id: Optional[int],
        guards: Sequence[ColumnElement[bool]] = (),
        values: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Conditionally move ``order_id`` from ``from_status`` to ``to_status``.

        The UPDATE matches only while the row still has ``from_status`` and every
        extra guard holds. On a match the history row is inserted and both are
        committed together; ``OrderChanged`` is published after the commit.

        Returns False when nothing matched. Callers reload the order to tell the
        reasons apart.
        """
        now = self._clock.now()
        payload: dict[str, Any] = {"status": to_status, "updated_at": now}
        if values:
            payload.update(values)
        async with self.transaction() as session:
            result = await session.execute(
                update(m.orders)
                .where(
                    and_(
                        m.orders.id == order_id,
                        m.orders.status == from_status,
                        *guards,
                    )
                )
                .values(**payload)
                .returning(m.orders.id)
                .execution_options(synchronize_session=False)
            )
            if result.first() is None:
                _log.info(
                    "apply_transition: order=%s %s->%s matched 0 rows",
                    order_id, from_status.value, to_status.value,
                )
                return False
            await session.execute(
                insert(m.order_status_history).values(
                    order_id=order_id,
                    from_status=from_status,
                    to_status=to_status,
                    actor_type=actor_type,
                    actor_id=actor_id,
                    reason=reason,
                    created_at=now,
                )
            )
        _log.info(
            "apply_transition: order=%s %s->%s actor=%s:%s",
            order_id, from_status.value, to_status.value, actor_type.value, actor_id,
        )
        self._publish(order_id)
        return True

    # ------------------------------------------------------------------ push slot

    async def try_claim_push_slot(self, order_id: int) -> bool:
        """Set ``pushed_at`` iff it is still null. True for the single winner."""
        now = self._clock.now()
        async with self.transaction() as session:
            result = await session.execute(
                update(m.orders)
                .where(and_(m.orders.id == order_id, m.orders.pushed_at.is_(None)))
                .values(pushed_at=now)
                .returning(m.orders.id)
                .execution_options(synchronize_session=False)
            )
            return result.first() is not None

    async def pushed_within(self, order_id: int, seconds: int) -> bool:
        async with self.reading() as session:
            pushed_at = await session.scalar(
                select(m.orders.pushed_at).where(m.orders.id == order_id)
            )
        pushed_at = as_utc(pushed_at)
        if pushed_at is None:
            return False
        return self._clock.now() - pushed_at <= timedelta(seconds=seconds)

    async def is_available_for_push(self, order_id: int) -> bool:
        async with self.reading() as session:
            found = await session.scalar(
                select(m.orders.id).where(
                    and_(
                        m.orders.id == order_id,
                        m.orders.status == m.OrderStatus.READY,
                        m.orders.driver_id.is_(None),
                    )
                )
            )
        return found is not None

    # ------------------------------------------------------------------ delivery settings

    async def set_delivery_type(
        self, order_id: int, delivery_type: m.DeliveryType, delivery_fee: int
    ) -> bool:
        """Switch fulfillment mode of a ready, driver-free order."""
        now = self._clock.now()
        async with self.transaction() as session:
            result = await session.execute(
                update(m.orders)
                .where(
                    and_(
                        m.orders.id == order_id,
                        m.orders.status == m.OrderStatus.READY,
                        m.orders.driver_id.is_(None),
                    )
                )
                .values(
                    delivery_type=delivery_type,
                    delivery_fee=delivery_fee,
                    grand_total=m.orders.items_total + delivery_fee,
                    updated_at=now,
                )
                .returning(m.orders.id)
                .execution_options(synchronize_session=False)
            )
            if result.first() is None:
                return False
        _log.info(
            "set_delivery_type: order=%s type=%s fee=%s", order_id, delivery_type.value, delivery_fee
        )
        self._publish(order_id)
        return True

    async def override_delivery_fee(
        self,
        order_id: int,
        new_fee: int,
        *,
        override_by: int,
        note: Optional[str] = None,
    ) -> bool:
        if new_fee < 0:
            raise ConstraintViolation("delivery fee must be non-negative")
        now = self._clock.now()
        async with self.transaction() as session:
            result = await session.execute(
                update(m.orders)
                .where(m.orders.id == order_id)
                .values(
                    delivery_fee=new_fee,
                    grand_total=m.orders.items_total + new_fee,
                    fee_overridden=True,
                    fee_override_by=override_by,
                    fee_override_note=note,
                    fee_overridden_at=now,
                    updated_at=now,
                )
                .returning(m.orders.id)
                .execution_options(synchronize_session=False)
            )
            if result.first() is None:
                return False
        _log.info("override_delivery_fee: order=%s fee=%s by=%s", order_id, new_fee, override_by)
        self._publish(order_id)
        return True

    # ------------------------------------------------------------------ reports / lookups

    async def daily_stats(self, day: date) -> DailyStats:
        start = datetime.combine(day, time.min, tzinfo=UTC)
        end = start + timedelta(days=1)
        async with self.reading() as session:
            row = (
                await session.execute(
                    select(
                        func.count(m.orders.id),
                        func.coalesce(func.sum(m.orders.items_total), 0),
                        func.coalesce(func.sum(m.orders.delivery_fee), 0),
                        func.coalesce(func.sum(m.orders.grand_total), 0),
                        func.coalesce(
                            func.sum(case((m.orders.fee_overridden.is_(True), 1), else_=0)), 0
                        ),
                    ).where(and_(m.orders.created_at >= start, m.orders.created_at < end))
                )
            ).one()
        return DailyStats(
            day=day,
            orders_count=int(row[0]),
            items_revenue=int(row[1]),
            delivery_revenue=int(row[2]),
            grand_revenue=int(row[3]),
            overrides_count=int(row[4]),
        )

    async def driver_active_order(self, driver_id: int) -> Optional[m.orders]:
        async with self.reading() as session:
            rows = await session.execute(
                select(m.orders)
                .where(
                    and_(
                        m.orders.driver_id == driver_id,
                        m.orders.status.in_(m.DRIVER_ACTIVE_STATUSES),
                    )
                )
                .order_by(m.orders.assigned_at.desc(), m.orders.id.desc())
                .limit(1)
            )
            return rows.scalars().first()

    async def get_branch(self, branch_id: int) -> Optional[m.branches]:
        async with self.reading() as session:
            return await session.get(m.branches, branch_id)

    async def admin_binding(self, admin_user_id: int) -> Optional[AdminBinding]:
        async with self.reading() as session:
            row = await session.scalar(
                select(m.branch_admins).where(m.branch_admins.admin_user_id == admin_user_id)
            )
        if row is None:
            return None
        return AdminBinding(
            admin_user_id=row.admin_user_id,
            branch_id=row.branch_id,
            chat_id=row.chat_id,
            language=row.language,
        )

    async def branch_admins(self, branch_id: int) -> list[AdminBinding]:
        async with self.reading() as session:
            rows = await session.execute(
                select(m.branch_admins)
                .where(m.branch_admins.branch_id == branch_id)
                .order_by(m.branch_admins.id)
            )
            return [
                AdminBinding(
                    admin_user_id=row.admin_user_id,
                    branch_id=row.branch_id,
                    chat_id=row.chat_id,
                    language=row.language,
                )
                for row in rows.scalars()
            ]
