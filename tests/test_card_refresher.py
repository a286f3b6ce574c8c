from food_service.db import models as m
from food_service.services.cards import track_url
from food_service.services.orders_repo import NewOrder

ADMIN = 7001
CUSTOMER_CHAT = 501


async def _create(app, branch, **overrides) -> m.orders:
    data = dict(
        customer_user_id=CUSTOMER_CHAT,
        customer_chat_id=CUSTOMER_CHAT,
        branch_id=branch.id,
        items_total=60000,
        customer_language="ru",
    )
    data.update(overrides)
    return await app.repo.create_order(NewOrder(**data))


async def test_new_order_gets_admin_and_customer_cards(app, hub, transports, branch, admin) -> None:
    order = await _create(app, branch)
    await hub.drain()

    admin_sent = transports[m.Audience.BRANCH_ADMIN].sent
    customer_sent = transports[m.Audience.CUSTOMER].sent
    assert [chat for chat, *_ in admin_sent] == [ADMIN]
    assert [chat for chat, *_ in customer_sent] == [CUSTOMER_CHAT]
    assert "Заказ" in customer_sent[0][2]
    assert transports[m.Audience.DRIVER].sent == []

    pointer = await app.pointers.get(order.id, m.Audience.BRANCH_ADMIN)
    assert pointer.chat_id == ADMIN


async def test_status_change_edits_existing_cards(app, hub, transports, branch, admin) -> None:
    order = await _create(app, branch)
    await hub.drain()

    await app.orders_service.admin_transition(order.id, m.OrderStatus.PREPARING, admin_user_id=ADMIN)
    await hub.drain()

    admin_transport = transports[m.Audience.BRANCH_ADMIN]
    assert len(admin_transport.sent) == 1
    assert len(admin_transport.edits) == 1
    assert "Tayyorlanmoqda" in admin_transport.edits[0][2]
    assert len(transports[m.Audience.CUSTOMER].edits) == 1


async def test_branch_without_admin_gets_no_admin_card(app, hub, transports, branch) -> None:
    await _create(app, branch)
    await hub.drain()

    assert transports[m.Audience.BRANCH_ADMIN].sent == []
    assert len(transports[m.Audience.CUSTOMER].sent) == 1


async def test_customer_card_tracks_delivering_driver(
    app, hub, transports, branch, admin, make_driver
) -> None:
    driver = await make_driver(tg_user_id=9001)
    order = await _create(
        app,
        branch,
        delivery_type=m.DeliveryType.DELIVERY,
        lat=41.32,
        lon=69.25,
        distance_km=1.39,
    )
    for source, target, actor in (
        (m.OrderStatus.NEW, m.OrderStatus.PREPARING, m.ActorType.BRANCH_ADMIN),
        (m.OrderStatus.PREPARING, m.OrderStatus.READY, m.ActorType.BRANCH_ADMIN),
    ):
        await app.repo.apply_transition(order.id, source, target, actor_type=actor, actor_id=ADMIN)
    await app.presence.update_location(driver.id, 41.3254, 69.25)
    await app.admission.claim(order.id, driver.id, driver.tg_user_id)
    await app.orders_service.driver_transition(order.id, m.OrderStatus.PICKED_UP, driver_id=driver.id)
    await app.orders_service.driver_transition(order.id, m.OrderStatus.DELIVERING, driver_id=driver.id)
    await hub.drain()

    customer = transports[m.Audience.CUSTOMER]
    last_buttons = customer.edits[-1][3]
    assert last_buttons[0][0].url == track_url(41.3254, 69.25)
    assert len(transports[m.Audience.DRIVER].sent_to(driver.chat_id)) >= 1
