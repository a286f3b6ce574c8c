"""
Рассылка заказа ближайшим водителям.

Runs when an order is ``ready`` with ``delivery_type = delivery``. The push
slot (``orders.pushed_at``) is claimed once per order; the broadcast sends
claim offers nearest-first and stops as soon as the order is taken. The whole
run is bounded by a deadline.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from food_service.db import models as m
from food_service.infra.structured_logging import DispatchEvent, log_dispatch_event
from food_service.infra.transport import MessageTransport, TransportError
from food_service.services.candidates import MAX_CANDIDATES, CandidateFinder
from food_service.services.cards import build_offer
from food_service.services.event_hub import OrderChanged
from food_service.services.orders_repo import OrdersRepository

logger = logging.getLogger("dispatch")

DEFAULT_PUSH_RADIUS_KM = 5.0
DEFAULT_DEADLINE_SECONDS = 10.0
DEFAULT_DUPLICATE_WINDOW_SECONDS = 60


@dataclass
class DispatchOutcome:
    order_id: int
    result: str
    candidates: int = 0
    offered_driver_ids: list[int] = field(default_factory=list)


def wants_dispatch(order: m.orders) -> bool:
    return (
        order.status == m.OrderStatus.READY
        and order.delivery_type == m.DeliveryType.DELIVERY
        and order.driver_id is None
        and order.pushed_at is None
    )


class DispatchBroadcaster:
    def __init__(
        self,
        repo: OrdersRepository,
        finder: CandidateFinder,
        transport: Optional[MessageTransport],
        *,
        push_radius_km: float = DEFAULT_PUSH_RADIUS_KM,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        duplicate_window_seconds: int = DEFAULT_DUPLICATE_WINDOW_SECONDS,
        max_candidates: int = MAX_CANDIDATES,
    ) -> None:
        self._repo = repo
        self._finder = finder
        self._transport = transport
        self.push_radius_km = push_radius_km if push_radius_km > 0 else DEFAULT_PUSH_RADIUS_KM
        self.deadline_seconds = deadline_seconds
        self.duplicate_window_seconds = duplicate_window_seconds
        self.max_candidates = max_candidates

    async def __call__(self, event: OrderChanged) -> None:
        """``OrderChanged`` subscriber: start a broadcast for newly dispatchable orders."""
        try:
            order = await self._repo.find_order(event.order_id)
            if order is None or not wants_dispatch(order):
                return
            await self.broadcast(event.order_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("dispatch: order=%s failed", event.order_id)
            log_dispatch_event(DispatchEvent.ERROR, order_id=event.order_id, level=logging.ERROR)

    async def broadcast(self, order_id: int) -> DispatchOutcome:
        try:
            async with asyncio.timeout(self.deadline_seconds):
                return await self._broadcast(order_id)
        except TimeoutError:
            log_dispatch_event(
                DispatchEvent.DEADLINE_EXCEEDED,
                order_id=order_id,
                details={"deadline_seconds": self.deadline_seconds},
                level=logging.WARNING,
                now=self._repo.clock.now(),
            )
            return DispatchOutcome(order_id, "deadline_exceeded")

    async def _broadcast(self, order_id: int) -> DispatchOutcome:
        now = self._repo.clock.now

        # Шаг 1: one-shot push slot
        if not await self._repo.try_claim_push_slot(order_id):
            recent = await self._repo.pushed_within(order_id, self.duplicate_window_seconds)
            log_dispatch_event(
                DispatchEvent.PUSH_SUPPRESSED,
                order_id=order_id,
                reason="recent_duplicate" if recent else "already_pushed",
                now=now(),
            )
            return DispatchOutcome(order_id, "suppressed")
        log_dispatch_event(DispatchEvent.PUSH_CLAIMED, order_id=order_id, now=now())

        # Шаг 2: re-check the order after the claim
        order = await self._repo.find_order(order_id)
        if order is None or order.status != m.OrderStatus.READY or order.driver_id is not None:
            log_dispatch_event(
                DispatchEvent.ORDER_UNAVAILABLE,
                order_id=order_id,
                reason="not_ready" if order is not None else "not_found",
                now=now(),
            )
            return DispatchOutcome(order_id, "unavailable")
        if order.lat is None or order.lon is None or (order.lat == 0 and order.lon == 0):
            log_dispatch_event(
                DispatchEvent.ORDER_UNAVAILABLE, order_id=order_id, reason="no_coordinates", now=now()
            )
            return DispatchOutcome(order_id, "no_coordinates")
        if self._transport is None:
            logger.warning("dispatch: order=%s no driver transport configured", order_id)
            return DispatchOutcome(order_id, "no_transport")

        # Шаг 3: candidates
        candidates = await self._finder.nearby_online_drivers(
            order.lat, order.lon, self.push_radius_km, limit=self.max_candidates
        )
        if not candidates:
            log_dispatch_event(
                DispatchEvent.NO_CANDIDATES,
                order_id=order_id,
                radius_km=self.push_radius_km,
                now=now(),
            )
            return DispatchOutcome(order_id, "no_candidates")
        log_dispatch_event(
            DispatchEvent.CANDIDATES_FOUND,
            order_id=order_id,
            candidates_count=len(candidates),
            radius_km=self.push_radius_km,
            now=now(),
        )

        # Шаг 4: offers, nearest first, until someone claims
        outcome = DispatchOutcome(order_id, "completed", candidates=len(candidates))
        for candidate in candidates:
            if not await self._repo.is_available_for_push(order_id):
                log_dispatch_event(
                    DispatchEvent.ABORTED_CLAIMED,
                    order_id=order_id,
                    details={"offers_sent": len(outcome.offered_driver_ids)},
                    now=now(),
                )
                outcome.result = "aborted_claimed"
                break
            offer = build_offer(
                order, candidate.distance_km, candidate.language, base_fee=self._repo.base_fee
            )
            try:
                await self._transport.send(candidate.chat_id, offer.text, offer.buttons)
            except TransportError as exc:
                log_dispatch_event(
                    DispatchEvent.OFFER_FAILED,
                    order_id=order_id,
                    driver_id=candidate.driver_id,
                    reason=str(exc),
                    level=logging.WARNING,
                    now=now(),
                )
                continue
            outcome.offered_driver_ids.append(candidate.driver_id)
            log_dispatch_event(
                DispatchEvent.OFFER_SENT,
                order_id=order_id,
                driver_id=candidate.driver_id,
                distance_km=candidate.distance_km,
                now=now(),
            )
        return outcome
