"""Process-wide ``OrderChanged`` bus and per-order locks."""
from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

__all__ = ["OrderChanged", "EventHub", "Subscriber"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OrderChanged:
    order_id: int


Subscriber = Callable[[OrderChanged], Awaitable[None]]


class EventHub:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._tasks: set[asyncio.Task] = set()
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def subscribe(self, handler: Subscriber) -> None:
        self._subscribers.append(handler)

    def publish(self, order_id: int) -> None:
        """Schedule every subscriber for ``OrderChanged(order_id)``.

        Subscribers run as background tasks in subscription order; each task is
        created before ``publish`` returns, so per-order lock waiters queue up in
        publish order.
        """
        event = OrderChanged(order_id)
        logger.debug("publish: order=%s subscribers=%s", order_id, len(self._subscribers))
        for handler in list(self._subscribers):
            name = getattr(handler, "__qualname__", type(handler).__name__)
            self.spawn(handler(event), name=f"order_changed:{order_id}:{name}")

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed",
                task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def lock_for(self, order_id: int) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        return lock

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
