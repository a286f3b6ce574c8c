import asyncio

from food_service.services.event_hub import EventHub, OrderChanged


async def test_publish_runs_every_subscriber() -> None:
    hub = EventHub()
    seen: list[tuple[str, int]] = []

    async def cards(event: OrderChanged) -> None:
        seen.append(("cards", event.order_id))

    async def dispatch(event: OrderChanged) -> None:
        seen.append(("dispatch", event.order_id))

    hub.subscribe(cards)
    hub.subscribe(dispatch)
    hub.publish(5)
    assert hub.pending == 2

    await hub.drain()
    assert sorted(seen) == [("cards", 5), ("dispatch", 5)]
    assert hub.pending == 0


async def test_failing_subscriber_does_not_break_others(caplog) -> None:
    hub = EventHub()
    seen: list[int] = []

    async def broken(event: OrderChanged) -> None:
        raise RuntimeError("boom")

    async def ok(event: OrderChanged) -> None:
        seen.append(event.order_id)

    hub.subscribe(broken)
    hub.subscribe(ok)
    hub.publish(9)
    await hub.drain()

    assert seen == [9]
    assert "Background task" in caplog.text


async def test_lock_is_shared_per_order_and_serializes_in_publish_order() -> None:
    hub = EventHub()
    assert hub.lock_for(1) is hub.lock_for(1)
    assert hub.lock_for(1) is not hub.lock_for(2)

    order: list[int] = []

    async def refresh(event: OrderChanged, tag: int) -> None:
        async with hub.lock_for(event.order_id):
            await asyncio.sleep(0)
            order.append(tag)

    for tag in range(5):
        hub.spawn(refresh(OrderChanged(1), tag))
    await hub.drain()

    assert order == [0, 1, 2, 3, 4]


async def test_close_cancels_pending_tasks() -> None:
    hub = EventHub()
    started = asyncio.Event()

    async def slow(event: OrderChanged) -> None:
        started.set()
        await asyncio.sleep(60)

    hub.subscribe(slow)
    hub.publish(3)
    await started.wait()

    await hub.close()
    assert hub.pending == 0
