"""Callback token → service call, with user-facing answer texts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from food_service.services import callbacks
from food_service.services.admission import AdmissionController
from food_service.services.drivers import DriversService
from food_service.services.errors import NotFound, OrderError
from food_service.services.orders_service import OrdersService
from food_service.services.texts import error_text, t

_log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    text: str
    order_id: Optional[int] = None
    error_code: Optional[str] = None


class ActionDispatcher:
    def __init__(
        self,
        orders: OrdersService,
        admission: AdmissionController,
        drivers: DriversService,
    ) -> None:
        self._orders = orders
        self._admission = admission
        self._drivers = drivers

    @staticmethod
    def _failure(exc: OrderError, language: str) -> ActionResult:
        return ActionResult(False, error_text(language, exc.code), exc.order_id, exc.code)

    async def handle_admin(
        self,
        data: Union[str, bytes, None],
        *,
        admin_user_id: int,
        language: str = "uz",
    ) -> Optional[ActionResult]:
        action = callbacks.parse(data)
        if not isinstance(action, (callbacks.AdminTransition, callbacks.DeliveryTypeChoice)):
            return None
        _log.info("admin action: %s by admin=%s", action, admin_user_id)
        try:
            if isinstance(action, callbacks.AdminTransition):
                await self._orders.admin_transition(
                    action.order_id, action.status, admin_user_id=admin_user_id
                )
                return ActionResult(True, t(language, "status_updated"), action.order_id)
            await self._orders.set_delivery_type(
                action.order_id, action.delivery_type, admin_user_id=admin_user_id
            )
            return ActionResult(True, t(language, "delivery_type_saved"), action.order_id)
        except OrderError as exc:
            _log.info("admin action %s rejected: %s", action, exc.code)
            return self._failure(exc, language)

    async def handle_driver(
        self,
        data: Union[str, bytes, None],
        *,
        tg_user_id: int,
        language: str = "uz",
    ) -> Optional[ActionResult]:
        action = callbacks.parse(data)
        if not isinstance(action, (callbacks.DriverClaim, callbacks.DriverTransition)):
            return None
        _log.info("driver action: %s by tg_user=%s", action, tg_user_id)
        try:
            driver = await self._drivers.get_by_tg_user_id(tg_user_id)
            if driver is None:
                raise NotFound(f"driver with tg_user_id={tg_user_id} not registered")
            if isinstance(action, callbacks.DriverClaim):
                await self._admission.claim(action.order_id, driver.id, tg_user_id)
                return ActionResult(
                    True, t(language, "claim_ok", order_id=action.order_id), action.order_id
                )
            await self._orders.driver_transition(
                action.order_id, action.status, driver_id=driver.id, actor_id=tg_user_id
            )
            return ActionResult(True, t(language, "status_updated"), action.order_id)
        except OrderError as exc:
            _log.info("driver action %s rejected: %s", action, exc.code)
            return self._failure(exc, language)
