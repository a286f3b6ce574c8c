"""Inline-button action tokens.

Grammar::

    admin_transition:<order_id>:<status>
    driver_claim:<order_id>
    driver_transition:<order_id>:<status>
    delivery_type:<order_id>:<pickup|delivery>

Anything else parses to ``None`` and is ignored by the bots.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from food_service.db.models import DeliveryType, OrderStatus

ADMIN_TRANSITION = "admin_transition"
DRIVER_CLAIM = "driver_claim"
DRIVER_TRANSITION = "driver_transition"
DELIVERY_TYPE = "delivery_type"

PREFIXES = (ADMIN_TRANSITION, DRIVER_CLAIM, DRIVER_TRANSITION, DELIVERY_TYPE)


@dataclass(frozen=True, slots=True)
class AdminTransition:
    order_id: int
    status: OrderStatus


@dataclass(frozen=True, slots=True)
class DriverClaim:
    order_id: int


@dataclass(frozen=True, slots=True)
class DriverTransition:
    order_id: int
    status: OrderStatus


@dataclass(frozen=True, slots=True)
class DeliveryTypeChoice:
    order_id: int
    delivery_type: DeliveryType


Action = Union[AdminTransition, DriverClaim, DriverTransition, DeliveryTypeChoice]


def admin_transition(order_id: int, status: OrderStatus) -> str:
    return f"{ADMIN_TRANSITION}:{order_id}:{status.value}"


def driver_claim(order_id: int) -> str:
    return f"{DRIVER_CLAIM}:{order_id}"


def driver_transition(order_id: int, status: OrderStatus) -> str:
    return f"{DRIVER_TRANSITION}:{order_id}:{status.value}"


def delivery_type(order_id: int, value: DeliveryType) -> str:
    return f"{DELIVERY_TYPE}:{order_id}:{value.value}"


def _order_id(raw: str) -> Optional[int]:
    if not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def _status(raw: str) -> Optional[OrderStatus]:
    try:
        return OrderStatus(raw)
    except ValueError:
        return None


def parse(data: Union[str, bytes, None]) -> Optional[Action]:
    if data is None:
        return None
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError:
            return None
    parts = data.strip().split(":")
    prefix = parts[0]
    if prefix not in PREFIXES:
        return None

    if prefix == DRIVER_CLAIM:
        if len(parts) != 2:
            return None
        order_id = _order_id(parts[1])
        return DriverClaim(order_id) if order_id else None

    if len(parts) != 3:
        return None
    order_id = _order_id(parts[1])
    if order_id is None:
        return None

    if prefix == DELIVERY_TYPE:
        if parts[2] not in (DeliveryType.PICKUP.value, DeliveryType.DELIVERY.value):
            return None
        return DeliveryTypeChoice(order_id, DeliveryType(parts[2]))

    status = _status(parts[2])
    if status is None:
        return None
    if prefix == ADMIN_TRANSITION:
        return AdminTransition(order_id, status)
    return DriverTransition(order_id, status)
