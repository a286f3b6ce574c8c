"""
Сервис для работы с заказами.

Role-gated status changes for branch admins and assigned drivers, delivery
type selection and fee overrides. Validation runs against a loaded snapshot;
the conditional UPDATE in :class:`OrdersRepository` decides at commit time.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from food_service.db import models as m
from food_service.services import geo, state_machine
from food_service.services.errors import (
    IllegalTransition,
    NotFound,
    StaleTransition,
    WouldUsurpDriver,
)
from food_service.services.orders_repo import AdminBinding, DailyStats, OrdersRepository

_log = logging.getLogger(__name__)


class OrdersService:
    def __init__(self, repo: OrdersRepository) -> None:
        self.repo = repo

    async def _admin_order(self, order_id: int, admin_user_id: int) -> tuple[AdminBinding, m.orders]:
        binding = await self.repo.admin_binding(admin_user_id)
        if binding is None:
            raise NotFound(f"admin {admin_user_id} is not bound to a branch", order_id=order_id)
        order = await self.repo.get_order(order_id)
        if order.branch_id != binding.branch_id:
            # Orders of other branches are invisible to this admin.
            raise NotFound(f"order {order_id} not found", order_id=order_id)
        return binding, order

    async def admin_transition(
        self,
        order_id: int,
        target: m.OrderStatus,
        *,
        admin_user_id: int,
    ) -> m.orders:
        _binding, order = await self._admin_order(order_id, admin_user_id)
        found = state_machine.check_admin_transition(
            order_id,
            order.status,
            target,
            driver_id=order.driver_id,
            delivery_type=order.delivery_type,
        )
        guards = [m.orders.driver_id.is_(None)]
        if found.pickup_only:
            guards.append(m.orders.delivery_type == m.DeliveryType.PICKUP)
        applied = await self.repo.apply_transition(
            order_id,
            found.source,
            found.target,
            actor_type=m.ActorType.BRANCH_ADMIN,
            actor_id=admin_user_id,
            guards=guards,
        )
        if not applied:
            current = await self.repo.get_order(order_id)
            if current.driver_id is not None:
                raise WouldUsurpDriver(
                    f"order {order_id} is handled by driver {current.driver_id}",
                    order_id=order_id,
                )
            raise StaleTransition(
                f"order {order_id} left {found.source.value} before commit", order_id=order_id
            )
        return await self.repo.get_order(order_id)

    async def driver_transition(
        self,
        order_id: int,
        target: m.OrderStatus,
        *,
        driver_id: int,
        actor_id: Optional[int] = None,
    ) -> m.orders:
        order = await self.repo.get_order(order_id)
        found = state_machine.check_driver_transition(
            order_id,
            order.status,
            target,
            assigned_driver_id=order.driver_id,
            acting_driver_id=driver_id,
        )
        applied = await self.repo.apply_transition(
            order_id,
            found.source,
            found.target,
            actor_type=m.ActorType.DRIVER,
            actor_id=actor_id if actor_id is not None else driver_id,
            guards=[m.orders.driver_id == driver_id],
        )
        if not applied:
            raise StaleTransition(
                f"order {order_id} left {found.source.value} before commit", order_id=order_id
            )
        return await self.repo.get_order(order_id)

    async def set_delivery_type(
        self,
        order_id: int,
        delivery_type: m.DeliveryType,
        *,
        admin_user_id: int,
    ) -> m.orders:
        """Admin picks pickup or delivery for a ready order."""
        if delivery_type not in (m.DeliveryType.PICKUP, m.DeliveryType.DELIVERY):
            raise IllegalTransition("delivery type must be pickup or delivery", order_id=order_id)
        _binding, order = await self._admin_order(order_id, admin_user_id)
        if order.driver_id is not None:
            raise WouldUsurpDriver(
                f"order {order_id} is handled by driver {order.driver_id}", order_id=order_id
            )
        if order.status != m.OrderStatus.READY:
            raise IllegalTransition(
                f"order {order_id} is {order.status.value}, not ready",
                order_id=order_id,
                reason="not-ready",
            )
        if delivery_type == m.DeliveryType.DELIVERY:
            if not order.lat and not order.lon:
                raise IllegalTransition(
                    f"order {order_id} has no customer coordinates",
                    order_id=order_id,
                    reason="missing-coordinates",
                )
            fee = geo.delivery_fee(
                order.distance_km,
                delivery_type,
                base_fee=self.repo.base_fee,
                rate_per_km=self.repo.rate_per_km,
            )
        else:
            fee = 0
        if not await self.repo.set_delivery_type(order_id, delivery_type, fee):
            current = await self.repo.get_order(order_id)
            if current.driver_id is not None:
                raise WouldUsurpDriver(
                    f"order {order_id} is handled by driver {current.driver_id}",
                    order_id=order_id,
                )
            raise StaleTransition(f"order {order_id} is no longer ready", order_id=order_id)
        return await self.repo.get_order(order_id)

    async def override_delivery_fee(
        self,
        order_id: int,
        new_fee: int,
        *,
        admin_user_id: int,
        note: Optional[str] = None,
    ) -> m.orders:
        _binding, order = await self._admin_order(order_id, admin_user_id)
        if order.delivery_type == m.DeliveryType.PICKUP and new_fee != 0:
            raise IllegalTransition(
                f"order {order_id} is pickup, fee stays 0",
                order_id=order_id,
                reason="pickup-fee",
            )
        if state_machine.is_terminal(order.status):
            raise IllegalTransition(
                f"order {order_id} is {order.status.value}", order_id=order_id, reason="terminal"
            )
        if not await self.repo.override_delivery_fee(
            order_id, new_fee, override_by=admin_user_id, note=note
        ):
            raise NotFound(f"order {order_id} not found", order_id=order_id)
        return await self.repo.get_order(order_id)

    async def daily_stats(self, day: date) -> DailyStats:
        return await self.repo.daily_stats(day)
