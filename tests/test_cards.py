from datetime import datetime, timezone
from types import SimpleNamespace

from food_service.db.models import Audience, DeliveryType, OrderStatus
from food_service.services import callbacks
from food_service.services.cards import (
    build_admin_card,
    build_card,
    build_customer_card,
    build_driver_card,
    build_offer,
    track_url,
)


def _order(**overrides):
    data = dict(
        id=101,
        status=OrderStatus.NEW,
        delivery_type=DeliveryType.UNSET,
        driver_id=None,
        items_total=75000,
        delivery_fee=11000,
        grand_total=86000,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def _callbacks(card):
    return [button.callback_data for row in card.buttons for button in row]


def test_admin_card_for_new_order_offers_preparing_and_reject() -> None:
    card = build_admin_card(_order(), language="ru")
    assert "Заказ #101" in card.text
    assert _callbacks(card) == [
        callbacks.admin_transition(101, OrderStatus.PREPARING),
        callbacks.admin_transition(101, OrderStatus.REJECTED),
    ]


def test_admin_card_for_ready_order_asks_delivery_type() -> None:
    card = build_admin_card(_order(status=OrderStatus.READY))
    assert _callbacks(card) == [
        callbacks.delivery_type(101, DeliveryType.DELIVERY),
        callbacks.delivery_type(101, DeliveryType.PICKUP),
    ]


def test_admin_card_for_ready_pickup_order_offers_completion() -> None:
    card = build_admin_card(_order(status=OrderStatus.READY, delivery_type=DeliveryType.PICKUP))
    assert _callbacks(card) == [callbacks.admin_transition(101, OrderStatus.COMPLETED)]


def test_admin_card_waits_for_driver_on_delivery() -> None:
    card = build_admin_card(_order(status=OrderStatus.READY, delivery_type=DeliveryType.DELIVERY))
    assert card.buttons == ()
    assert "Haydovchi kutilmoqda" in card.text


def test_admin_card_has_no_buttons_once_driver_is_assigned() -> None:
    driver = SimpleNamespace(phone="+998900000001", car_plate="01A777AA", car_model="Cobalt", car_color=None)
    card = build_admin_card(
        _order(status=OrderStatus.ASSIGNED, delivery_type=DeliveryType.DELIVERY, driver_id=4), driver
    )
    assert card.buttons == ()
    assert "+998900000001" in card.text
    assert "01A777AA Cobalt" in card.text


def test_customer_card_shows_track_button_only_while_delivering() -> None:
    url = track_url(41.32, 69.25)
    assert url == "https://www.google.com/maps?q=41.320000,69.250000"

    delivering = build_customer_card(_order(status=OrderStatus.DELIVERING), track_url=url)
    assert delivering.buttons[0][0].url == url

    picked = build_customer_card(_order(status=OrderStatus.PICKED_UP), track_url=url)
    assert picked.buttons == ()


def test_customer_card_hides_zero_fee() -> None:
    card = build_customer_card(
        _order(delivery_type=DeliveryType.PICKUP, delivery_fee=0, grand_total=75000)
    )
    assert "Yetkazib berish" not in card.text
    assert "75000" in card.text


def test_driver_card_next_step_buttons() -> None:
    steps = {
        OrderStatus.ASSIGNED: OrderStatus.PICKED_UP,
        OrderStatus.PICKED_UP: OrderStatus.DELIVERING,
        OrderStatus.DELIVERING: OrderStatus.COMPLETED,
    }
    for current, target in steps.items():
        card = build_driver_card(_order(status=current, driver_id=2))
        assert _callbacks(card) == [callbacks.driver_transition(101, target)]

    assert build_driver_card(_order(status=OrderStatus.COMPLETED, driver_id=2)).buttons == ()


def test_offer_carries_claim_button() -> None:
    offer = build_offer(_order(status=OrderStatus.READY), 0.6, "ru")
    assert "0.60 км" in offer.text
    assert _callbacks(offer) == [callbacks.driver_claim(101)]


def _delivery_offer_order(**overrides):
    data = dict(
        status=OrderStatus.READY,
        delivery_type=DeliveryType.DELIVERY,
        distance_km=1.39,
        rate_per_km=4000,
        fee_overridden_at=None,
    )
    data.update(overrides)
    return _order(**data)


def test_offer_breaks_down_computed_delivery_fee() -> None:
    offer = build_offer(_delivery_offer_order(), 0.6, "uz", base_fee=5000)
    lines = offer.text.split("\n")

    assert lines[4:8] == [
        "Yetkazib berish: 11000 so'm",
        "  Boshlang'ich: 5000 so'm",
        "  1.4 km × 4000 = 5600 so'm",
        "Jami: 86000 so'm",
    ]


def test_offer_has_no_breakdown_for_overridden_fee() -> None:
    order = _delivery_offer_order(
        delivery_fee=15000,
        grand_total=90000,
        fee_overridden_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )
    offer = build_offer(order, 0.6, "ru", base_fee=5000)

    assert "Доставка: 15000 сум" in offer.text
    assert "Посадка" not in offer.text


def test_offer_has_no_breakdown_without_base_fee() -> None:
    offer = build_offer(_delivery_offer_order(), 0.6, "ru")
    assert "Посадка" not in offer.text
    assert "Доставка: 11000 сум" in offer.text


def test_build_card_dispatches_on_audience() -> None:
    order = _order(status=OrderStatus.PREPARING)
    assert build_card(Audience.BRANCH_ADMIN, order) == build_admin_card(order)
    assert build_card(Audience.CUSTOMER, order) == build_customer_card(order)
    assert build_card(Audience.DRIVER, order) == build_driver_card(order)


def test_cards_are_deterministic() -> None:
    order = _order(status=OrderStatus.READY)
    assert build_admin_card(order) == build_admin_card(order)
