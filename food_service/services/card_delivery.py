"""
Доставка карточек заказа.

``CardDelivery`` keeps exactly one live message per ``(order, audience)``:
it edits the message behind the stored pointer and falls back to sending a
new one when the old message is gone. ``OrderCardRefresher`` subscribes to
``OrderChanged`` and redraws all three audiences under the order lock.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Optional

from food_service.db import models as m
from food_service.infra.transport import (
    MessageNotFound,
    MessageNotModified,
    MessageTransport,
    TransportError,
)
from food_service.services.cards import CardContent, build_card, track_url
from food_service.services.drivers import DriversService
from food_service.services.errors import (
    DeadlineExceeded,
    NotFound,
    OrderError,
    TransportTransient,
)
from food_service.services.event_hub import EventHub, OrderChanged
from food_service.services.message_pointers import MessagePointers
from food_service.services.orders_repo import OrdersRepository
from food_service.services.presence import DriverPresence

logger = logging.getLogger(__name__)

AUDIENCE_ORDER = (m.Audience.BRANCH_ADMIN, m.Audience.CUSTOMER, m.Audience.DRIVER)
DEFAULT_UPSERT_TIMEOUT = 10.0


class CardDelivery:
    def __init__(
        self,
        pointers: MessagePointers,
        transports: Mapping[m.Audience, MessageTransport],
        hub: EventHub,
    ) -> None:
        self._pointers = pointers
        self._transports = dict(transports)
        self._hub = hub

    def has_transport(self, audience: m.Audience) -> bool:
        return audience in self._transports

    async def upsert_card(
        self,
        order_id: int,
        audience: m.Audience,
        chat_id_fallback: Optional[int],
        content: CardContent,
        *,
        timeout: Optional[float] = None,
    ) -> int:
        """Edit or send the card under the order lock. Returns the message id."""
        try:
            async with asyncio.timeout(timeout):
                async with self._hub.lock_for(order_id):
                    return await self.upsert_locked(order_id, audience, chat_id_fallback, content)
        except TimeoutError as exc:
            raise DeadlineExceeded(
                f"card upsert for order {order_id}/{audience.value} timed out",
                order_id=order_id,
            ) from exc

    async def upsert_locked(
        self,
        order_id: int,
        audience: m.Audience,
        chat_id_fallback: Optional[int],
        content: CardContent,
    ) -> int:
        """Same as :meth:`upsert_card`; the caller already holds the order lock."""
        transport = self._transports.get(audience)
        if transport is None:
            raise NotFound(f"no transport for {audience.value}", order_id=order_id)

        pointer = await self._pointers.get(order_id, audience)
        if pointer is not None:
            try:
                await transport.edit(pointer.chat_id, pointer.message_id, content.text, content.buttons)
                return pointer.message_id
            except MessageNotModified:
                return pointer.message_id
            except MessageNotFound:
                logger.info(
                    "upsert_card: order=%s audience=%s message %s gone, sending new",
                    order_id, audience.value, pointer.message_id,
                )
            except TransportError as exc:
                logger.warning(
                    "upsert_card: edit failed order=%s audience=%s: %s", order_id, audience.value, exc
                )
                raise TransportTransient(str(exc), order_id=order_id) from exc

        chat_id = chat_id_fallback if chat_id_fallback is not None else (
            pointer.chat_id if pointer is not None else None
        )
        if chat_id is None:
            raise NotFound(
                f"no chat to send {audience.value} card for order {order_id}", order_id=order_id
            )
        try:
            message_id = await transport.send(chat_id, content.text, content.buttons)
        except TransportError as exc:
            logger.warning(
                "upsert_card: send failed order=%s audience=%s chat=%s: %s",
                order_id, audience.value, chat_id, exc,
            )
            raise TransportTransient(str(exc), order_id=order_id) from exc
        await self._pointers.put(order_id, audience, chat_id, message_id)
        return message_id


class OrderCardRefresher:
    """``OrderChanged`` subscriber that redraws every audience card."""

    def __init__(
        self,
        repo: OrdersRepository,
        drivers: DriversService,
        presence: DriverPresence,
        delivery: CardDelivery,
        pointers: MessagePointers,
        hub: EventHub,
        *,
        default_language: str = "uz",
        upsert_timeout: float = DEFAULT_UPSERT_TIMEOUT,
    ) -> None:
        self._repo = repo
        self._drivers = drivers
        self._presence = presence
        self._delivery = delivery
        self._pointers = pointers
        self._hub = hub
        self._default_language = default_language
        self._upsert_timeout = upsert_timeout

    async def __call__(self, event: OrderChanged) -> None:
        await self.refresh(event.order_id)

    async def refresh(self, order_id: int) -> None:
        # Lock first: waiters are served in publish order.
        async with self._hub.lock_for(order_id):
            try:
                await self._refresh_locked(order_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("refresh: order=%s failed", order_id)

    async def _refresh_locked(self, order_id: int) -> None:
        order = await self._repo.find_order(order_id)
        if order is None:
            logger.warning("refresh: order=%s not found", order_id)
            return
        driver = None
        if order.driver_id is not None:
            driver = await self._drivers.get_driver(order.driver_id)

        for audience in AUDIENCE_ORDER:
            if not self._delivery.has_transport(audience):
                continue
            target = await self._target(order, driver, audience)
            if target is None:
                continue
            chat_id, language, url = target
            content = build_card(audience, order, driver, language, track_url=url)
            try:
                async with asyncio.timeout(self._upsert_timeout):
                    await self._delivery.upsert_locked(order.id, audience, chat_id, content)
            except TimeoutError:
                logger.warning(
                    "refresh: order=%s audience=%s deadline exceeded", order.id, audience.value
                )
            except OrderError as exc:
                logger.warning(
                    "refresh: order=%s audience=%s %s: %s", order.id, audience.value, exc.code, exc
                )

    async def _target(
        self, order: m.orders, driver: Optional[m.drivers], audience: m.Audience
    ) -> Optional[tuple[int, str, Optional[str]]]:
        if audience == m.Audience.CUSTOMER:
            url = None
            if order.status == m.OrderStatus.DELIVERING and driver is not None:
                location = await self._presence.get_location_fresh(driver.id)
                if location is not None:
                    url = track_url(location.lat, location.lon)
            return order.customer_chat_id, order.customer_language, url

        if audience == m.Audience.DRIVER:
            if driver is None:
                return None
            return driver.chat_id, driver.language, None

        admins = await self._repo.branch_admins(order.branch_id)
        pointer = await self._pointers.get(order.id, m.Audience.BRANCH_ADMIN)
        language = self._default_language
        chat_id: Optional[int] = None
        if pointer is not None:
            chat_id = pointer.chat_id
            for admin in admins:
                if admin.chat_id == pointer.chat_id:
                    language = admin.language
                    break
        elif admins:
            chat_id = admins[0].chat_id
            language = admins[0].language
        if chat_id is None:
            logger.info("refresh: order=%s branch=%s has no admin chat", order.id, order.branch_id)
            return None
        return chat_id, language, None
