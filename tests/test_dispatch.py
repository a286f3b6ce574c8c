import asyncio
import json
import logging

import pytest

from food_service.db import models as m
from food_service.infra.transport import TransportError
from food_service.services.candidates import CandidateFinder
from food_service.services.dispatch import DispatchBroadcaster, wants_dispatch
from food_service.services.event_hub import OrderChanged
from food_service.services.orders_repo import NewOrder, OrdersRepository
from food_service.services.presence import DriverPresence

CUSTOMER = (41.32, 69.25)


@pytest.fixture
def repo(session_factory, clock) -> OrdersRepository:
    # No hub: broadcasts are driven by the test directly.
    return OrdersRepository(session_factory, clock=clock)


@pytest.fixture
def presence(session_factory, clock) -> DriverPresence:
    return DriverPresence(session_factory, clock=clock)


@pytest.fixture
def driver_transport(transports):
    return transports[m.Audience.DRIVER]


@pytest.fixture
def broadcaster(repo, session_factory, presence, driver_transport) -> DispatchBroadcaster:
    return DispatchBroadcaster(repo, CandidateFinder(session_factory, presence), driver_transport)


async def _ready_order(repo, branch, **overrides) -> m.orders:
    data = dict(
        customer_user_id=501,
        customer_chat_id=501,
        branch_id=branch.id,
        items_total=75000,
        delivery_type=m.DeliveryType.DELIVERY,
        lat=CUSTOMER[0],
        lon=CUSTOMER[1],
        distance_km=1.39,
    )
    data.update(overrides)
    order = await repo.create_order(NewOrder(**data))
    for source, target in (
        (m.OrderStatus.NEW, m.OrderStatus.PREPARING),
        (m.OrderStatus.PREPARING, m.OrderStatus.READY),
    ):
        await repo.apply_transition(order.id, source, target, actor_type=m.ActorType.SYSTEM, actor_id=None)
    return await repo.get_order(order.id)


async def _online_driver(make_driver, presence, tg_user_id, lat, lon=CUSTOMER[1]) -> m.drivers:
    driver = await make_driver(tg_user_id=tg_user_id)
    await presence.update_location(driver.id, lat, lon)
    return driver


def _events(caplog) -> list[dict]:
    return [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "dispatch.structured"
    ]


async def test_wants_dispatch(repo, branch) -> None:
    order = await _ready_order(repo, branch)
    assert wants_dispatch(order)

    await repo.try_claim_push_slot(order.id)
    assert not wants_dispatch(await repo.get_order(order.id))

    pickup = await _ready_order(repo, branch, delivery_type=m.DeliveryType.PICKUP)
    assert not wants_dispatch(pickup)


async def test_offers_go_nearest_first(
    broadcaster, repo, branch, presence, make_driver, driver_transport, caplog
) -> None:
    caplog.set_level(logging.INFO, logger="dispatch.structured")
    far = await _online_driver(make_driver, presence, 9002, 41.3299)
    near = await _online_driver(make_driver, presence, 9001, 41.3254)
    order = await _ready_order(repo, branch)

    outcome = await broadcaster.broadcast(order.id)

    assert outcome.result == "completed"
    assert outcome.offered_driver_ids == [near.id, far.id]
    assert [chat for chat, *_ in driver_transport.sent] == [near.chat_id, far.chat_id]
    offer_buttons = driver_transport.sent[0][3]
    assert offer_buttons[0][0].callback_data == f"driver_claim:{order.id}"
    assert "  Boshlang'ich: 5000 so'm\n  1.4 km × 4000 = 5600 so'm" in driver_transport.sent[0][2]
    assert (await repo.get_order(order.id)).pushed_at is not None

    events = [e["event"] for e in _events(caplog)]
    assert events == ["push_claimed", "candidates_found", "offer_sent", "offer_sent"]


async def test_second_broadcast_is_suppressed(
    broadcaster, repo, branch, presence, make_driver, driver_transport, clock, caplog
) -> None:
    caplog.set_level(logging.INFO, logger="dispatch.structured")
    await _online_driver(make_driver, presence, 9001, 41.3254)
    order = await _ready_order(repo, branch)

    await broadcaster.broadcast(order.id)
    again = await broadcaster.broadcast(order.id)
    clock.advance(minutes=2)
    later = await broadcaster.broadcast(order.id)

    assert again.result == "suppressed"
    assert later.result == "suppressed"
    assert len(driver_transport.sent) == 1
    reasons = [e.get("reason") for e in _events(caplog) if e["event"] == "push_suppressed"]
    assert reasons == ["recent_duplicate", "already_pushed"]


async def test_no_candidates(broadcaster, repo, branch, presence, make_driver, clock) -> None:
    stale = await _online_driver(make_driver, presence, 9001, 41.3254)
    clock.advance(minutes=10)
    await _online_driver(make_driver, presence, 9002, 41.60)
    order = await _ready_order(repo, branch)

    outcome = await broadcaster.broadcast(order.id)

    assert outcome.result == "no_candidates"
    assert stale.id not in outcome.offered_driver_ids


async def test_broadcast_of_claimed_order_is_unavailable(broadcaster, repo, branch, make_driver) -> None:
    driver = await make_driver(tg_user_id=9001)
    order = await _ready_order(repo, branch)
    await repo.apply_transition(
        order.id,
        m.OrderStatus.READY,
        m.OrderStatus.ASSIGNED,
        actor_type=m.ActorType.DRIVER,
        actor_id=driver.tg_user_id,
        values={"driver_id": driver.id},
    )

    outcome = await broadcaster.broadcast(order.id)

    assert outcome.result == "unavailable"


async def test_order_without_coordinates(broadcaster, repo, branch) -> None:
    order = await _ready_order(repo, branch, lat=None, lon=None, distance_km=0.0)
    outcome = await broadcaster.broadcast(order.id)
    assert outcome.result == "no_coordinates"


async def test_missing_transport(repo, session_factory, presence, branch) -> None:
    broadcaster = DispatchBroadcaster(repo, CandidateFinder(session_factory, presence), None)
    order = await _ready_order(repo, branch)
    outcome = await broadcaster.broadcast(order.id)
    assert outcome.result == "no_transport"


async def test_failed_offer_does_not_stop_broadcast(
    broadcaster, repo, branch, presence, make_driver, driver_transport
) -> None:
    near = await _online_driver(make_driver, presence, 9001, 41.3254)
    far = await _online_driver(make_driver, presence, 9002, 41.3299)
    driver_transport.send_errors.append(TransportError("Forbidden: bot was blocked by the user"))
    order = await _ready_order(repo, branch)

    outcome = await broadcaster.broadcast(order.id)

    assert outcome.result == "completed"
    assert outcome.offered_driver_ids == [far.id]
    assert near.id not in outcome.offered_driver_ids


async def test_broadcast_stops_once_order_is_claimed(
    repo, session_factory, presence, branch, make_driver, driver_transport
) -> None:
    first = await _online_driver(make_driver, presence, 9001, 41.3254)
    await _online_driver(make_driver, presence, 9002, 41.3299)
    await _online_driver(make_driver, presence, 9003, 41.3350)
    order = await _ready_order(repo, branch)

    class ClaimingTransport:
        def __init__(self) -> None:
            self.sent: list[int] = []

        async def send(self, chat_id, text, buttons=()):
            self.sent.append(chat_id)
            if len(self.sent) == 1:
                await repo.apply_transition(
                    order.id,
                    m.OrderStatus.READY,
                    m.OrderStatus.ASSIGNED,
                    actor_type=m.ActorType.DRIVER,
                    actor_id=first.tg_user_id,
                    values={"driver_id": first.id},
                )
            return len(self.sent)

    transport = ClaimingTransport()
    broadcaster = DispatchBroadcaster(repo, CandidateFinder(session_factory, presence), transport)

    outcome = await broadcaster.broadcast(order.id)

    assert outcome.result == "aborted_claimed"
    assert transport.sent == [first.chat_id]


async def test_broadcast_deadline(repo, session_factory, presence, branch, make_driver, caplog) -> None:
    caplog.set_level(logging.INFO, logger="dispatch.structured")
    await _online_driver(make_driver, presence, 9001, 41.3254)
    order = await _ready_order(repo, branch)

    class SlowTransport:
        async def send(self, chat_id, text, buttons=()):
            await asyncio.sleep(5)
            return 1

    broadcaster = DispatchBroadcaster(
        repo, CandidateFinder(session_factory, presence), SlowTransport(), deadline_seconds=0.1
    )

    outcome = await broadcaster.broadcast(order.id)

    assert outcome.result == "deadline_exceeded"
    assert _events(caplog)[-1]["event"] == "deadline_exceeded"


async def test_subscriber_ignores_orders_that_need_no_dispatch(
    broadcaster, repo, branch, driver_transport
) -> None:
    order = await _ready_order(repo, branch, delivery_type=m.DeliveryType.PICKUP)
    await broadcaster(OrderChanged(order.id))
    await broadcaster(OrderChanged(999))

    assert driver_transport.sent == []
    assert (await repo.get_order(order.id)).pushed_at is None
