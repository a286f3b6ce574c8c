"""Атомарный захват заказа водителем (ready → assigned)."""
from __future__ import annotations

import logging

from sqlalchemy import and_, exists, select
from sqlalchemy.orm import aliased

from food_service.db import models as m
from food_service.services.errors import (
    AlreadyClaimed,
    ConstraintViolation,
    IllegalTransition,
    NotFound,
    StalePresence,
)
from food_service.services.orders_repo import OrdersRepository
from food_service.services.presence import DriverPresence

_log = logging.getLogger(__name__)


def _driver_is_free(driver_id: int):
    other = aliased(m.orders)
    return ~exists(
        select(other.id).where(
            and_(
                other.driver_id == driver_id,
                other.status.in_(m.DRIVER_ACTIVE_STATUSES),
            )
        )
    )


class AdmissionController:
    def __init__(self, repo: OrdersRepository, presence: DriverPresence) -> None:
        self._repo = repo
        self._presence = presence

    async def claim(self, order_id: int, driver_id: int, driver_actor_id: int) -> m.orders:
        """
        Bind ``driver_id`` to a ready delivery order.

        Шаг 1: the driver must be online.
        Шаг 2: one conditional UPDATE ``status='ready' AND driver_id IS NULL
        AND delivery_type='delivery'`` plus the history row, committed together.
        Among concurrent claims of one order at most one matches.
        Шаг 3: the NOT EXISTS guard turns away a driver who already has an
        order in work. Two claims by one driver on different orders can both
        pass it under READ COMMITTED; the partial unique index
        ``uq_orders__driver_active`` rejects the second commit, reported as
        driver-busy.
        Шаг 4: on zero rows reload the order and name the reason.
        """
        _log.info("claim START: order=%s driver=%s", order_id, driver_id)

        if not await self._presence.is_online(driver_id):
            raise StalePresence(f"driver {driver_id} is offline", order_id=order_id)

        try:
            claimed = await self._repo.apply_transition(
                order_id,
                m.OrderStatus.READY,
                m.OrderStatus.ASSIGNED,
                actor_type=m.ActorType.DRIVER,
                actor_id=driver_actor_id,
                guards=(
                    m.orders.driver_id.is_(None),
                    m.orders.delivery_type == m.DeliveryType.DELIVERY,
                    _driver_is_free(driver_id),
                ),
                values={"driver_id": driver_id, "assigned_at": self._repo.clock.now()},
                reason="claimed_by_driver",
            )
        except ConstraintViolation as exc:
            if await self._repo.driver_active_order(driver_id) is None:
                raise
            _log.info("claim: driver=%s lost the race for a second order=%s", driver_id, order_id)
            raise IllegalTransition(
                f"driver {driver_id} already has an active order",
                order_id=order_id,
                reason="driver-busy",
            ) from exc
        if claimed:
            _log.info("claim SUCCESS: order=%s driver=%s", order_id, driver_id)
            return await self._repo.get_order(order_id)

        order = await self._repo.find_order(order_id)
        if order is None:
            raise NotFound(f"order {order_id} not found", order_id=order_id)
        if order.driver_id is not None:
            _log.info(
                "claim: order=%s already claimed by driver=%s (loser=%s)",
                order_id, order.driver_id, driver_id,
            )
            raise AlreadyClaimed(f"order {order_id} already claimed", order_id=order_id)
        if order.status != m.OrderStatus.READY:
            raise IllegalTransition(
                f"order {order_id} is {order.status.value}", order_id=order_id, reason="not-ready"
            )
        if order.delivery_type != m.DeliveryType.DELIVERY:
            raise IllegalTransition(
                f"order {order_id} is {order.delivery_type.value}, not delivery",
                order_id=order_id,
                reason="not-delivery",
            )
        raise IllegalTransition(
            f"driver {driver_id} already has an active order",
            order_id=order_id,
            reason="driver-busy",
        )
