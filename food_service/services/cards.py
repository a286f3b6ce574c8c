"""
Карточки заказа для каждой аудитории.

Pure functions: the same order, driver, audience and language always give the
same ``CardContent``, so an unchanged card edit is a no-op on the transport.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from food_service.db.models import Audience, DeliveryType, OrderStatus
from food_service.services import callbacks, geo
from food_service.services.texts import status_label, t

TRACK_URL_TEMPLATE = "https://www.google.com/maps?q={lat:f},{lon:f}"


@dataclass(frozen=True, slots=True)
class CardButton:
    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


ButtonGrid = tuple[tuple[CardButton, ...], ...]


@dataclass(frozen=True, slots=True)
class CardContent:
    text: str
    buttons: ButtonGrid = ()


def track_url(lat: float, lon: float) -> str:
    return TRACK_URL_TEMPLATE.format(lat=lat, lon=lon)


def _driver_lines(language: str, driver: Any) -> list[str]:
    lines: list[str] = []
    phone = getattr(driver, "phone", None)
    if phone:
        lines.append(t(language, "driver_phone", phone=phone))
    car = " ".join(
        part
        for part in (
            getattr(driver, "car_plate", None),
            getattr(driver, "car_model", None),
            getattr(driver, "car_color", None),
        )
        if part
    )
    if car:
        lines.append(t(language, "driver_car", car=car))
    return lines


def _delivery_type_label(language: str, value: DeliveryType) -> str:
    return t(language, f"delivery_type_{value.value}")


def build_admin_card(order: Any, driver: Any = None, language: str = "uz") -> CardContent:
    status = OrderStatus(order.status)
    delivery = DeliveryType(order.delivery_type)
    lines = [
        t(language, "order_header", order_id=order.id),
        "",
        t(language, "items_total", amount=order.items_total),
        t(language, "delivery_fee", amount=order.delivery_fee),
        t(language, "grand_total", amount=order.grand_total),
        _delivery_type_label(language, delivery),
        t(language, "status_line", label=status_label(language, status)),
    ]
    if order.driver_id is not None:
        lines += ["", t(language, "driver_accepted")]
        if driver is not None:
            lines += _driver_lines(language, driver)
    elif status == OrderStatus.READY and delivery == DeliveryType.DELIVERY:
        lines += ["", t(language, "waiting_driver")]

    oid = order.id
    buttons: ButtonGrid = ()
    if order.driver_id is None:
        if status == OrderStatus.NEW:
            buttons = (
                (CardButton(t(language, "btn_start_preparing"), callbacks.admin_transition(oid, OrderStatus.PREPARING)),),
                (CardButton(t(language, "btn_reject"), callbacks.admin_transition(oid, OrderStatus.REJECTED)),),
            )
        elif status == OrderStatus.PREPARING:
            buttons = (
                (CardButton(t(language, "btn_mark_ready"), callbacks.admin_transition(oid, OrderStatus.READY)),),
            )
        elif status == OrderStatus.READY and delivery == DeliveryType.UNSET:
            buttons = (
                (
                    CardButton(t(language, "btn_send_delivery"), callbacks.delivery_type(oid, DeliveryType.DELIVERY)),
                    CardButton(t(language, "btn_customer_pickup"), callbacks.delivery_type(oid, DeliveryType.PICKUP)),
                ),
            )
        elif status == OrderStatus.READY and delivery == DeliveryType.PICKUP:
            buttons = (
                (CardButton(t(language, "btn_mark_completed"), callbacks.admin_transition(oid, OrderStatus.COMPLETED)),),
            )
    return CardContent(text="\n".join(lines), buttons=buttons)


def build_customer_card(
    order: Any,
    driver: Any = None,
    language: str = "uz",
    *,
    track_url: Optional[str] = None,
) -> CardContent:
    status = OrderStatus(order.status)
    lines = [
        t(language, "order_header", order_id=order.id),
        "",
        t(language, "items_total", amount=order.items_total),
    ]
    if order.delivery_fee:
        lines.append(t(language, "delivery_fee", amount=order.delivery_fee))
    lines += [
        t(language, "grand_total", amount=order.grand_total),
        "",
        t(language, "status_line", label=status_label(language, status)),
    ]
    if driver is not None:
        lines += ["", t(language, "driver_heading")] + _driver_lines(language, driver)

    buttons: ButtonGrid = ()
    if status == OrderStatus.DELIVERING and track_url:
        buttons = ((CardButton(t(language, "btn_track_driver"), url=track_url),),)
    return CardContent(text="\n".join(lines), buttons=buttons)


_DRIVER_NEXT = {
    OrderStatus.ASSIGNED: (OrderStatus.PICKED_UP, "btn_picked_up"),
    OrderStatus.PICKED_UP: (OrderStatus.DELIVERING, "btn_start_delivering"),
    OrderStatus.DELIVERING: (OrderStatus.COMPLETED, "btn_delivered"),
}


def build_driver_card(order: Any, language: str = "uz") -> CardContent:
    status = OrderStatus(order.status)
    lines = [
        t(language, "order_header", order_id=order.id),
        "",
        t(language, "items_total", amount=order.items_total),
        t(language, "delivery_fee", amount=order.delivery_fee),
        t(language, "grand_total", amount=order.grand_total),
        t(language, "status_line", label=status_label(language, status)),
    ]
    buttons: ButtonGrid = ()
    step = _DRIVER_NEXT.get(status)
    if step is not None:
        target, label_key = step
        buttons = ((CardButton(t(language, label_key), callbacks.driver_transition(order.id, target)),),)
    return CardContent(text="\n".join(lines), buttons=buttons)


def _fee_breakdown_lines(order: Any, language: str, base_fee: Optional[int]) -> list[str]:
    # Только для расчётной цены: после ручной правки разбивка не сходится.
    if base_fee is None or order.distance_km is None or order.fee_overridden_at is not None:
        return []
    if DeliveryType(order.delivery_type) != DeliveryType.DELIVERY:
        return []
    breakdown = geo.fee_breakdown(order.distance_km, base_fee, order.rate_per_km)
    if breakdown.total != order.delivery_fee:
        return []
    return [
        t(language, "offer_fee_base", amount=breakdown.base_fee),
        t(
            language,
            "offer_fee_distance",
            km=breakdown.snapped_km,
            rate=breakdown.rate_per_km,
            amount=breakdown.distance_part,
        ),
    ]


def build_offer(
    order: Any,
    distance_km: float,
    language: str = "uz",
    *,
    base_fee: Optional[int] = None,
) -> CardContent:
    """Claim offer pushed to a nearby driver.

    With ``base_fee`` the delivery fee line is followed by its breakdown:
    base fee, then snapped distance × rate.
    """
    lines = [
        t(language, "offer_heading"),
        "",
        t(language, "offer_distance", distance=distance_km),
        t(language, "offer_items", amount=order.items_total),
        t(language, "offer_delivery", amount=order.delivery_fee),
        *_fee_breakdown_lines(order, language, base_fee),
        t(language, "offer_total", amount=order.grand_total),
        "",
        t(language, "offer_question"),
    ]
    button = CardButton(
        t(language, "btn_accept_order", order_id=order.id),
        callbacks.driver_claim(order.id),
    )
    return CardContent(text="\n".join(lines), buttons=((button,),))


def build_card(
    audience: Audience,
    order: Any,
    driver: Any = None,
    language: str = "uz",
    *,
    track_url: Optional[str] = None,
) -> CardContent:
    if audience == Audience.BRANCH_ADMIN:
        return build_admin_card(order, driver, language)
    if audience == Audience.CUSTOMER:
        return build_customer_card(order, driver, language, track_url=track_url)
    return build_driver_card(order, language)
