from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError, TelegramRetryAfter
from aiogram.types import CallbackQuery

__all__ = ["BotCallQueue", "queue_call", "safe_answer_callback"]

_LOGGER = logging.getLogger(__name__)
_T = TypeVar("_T")

MAX_ATTEMPTS = 4
FIRST_BACKOFF = 1.0
MAX_BACKOFF = 30.0

_RETRYABLE = (TelegramRetryAfter, TelegramNetworkError, TelegramBadRequest)
_EXPIRED_QUERY_MARKERS = ("query is too old", "query id is invalid", "query id not found")


def _retry_delay(exc: Exception, backoff: float) -> Optional[float]:
    """Seconds before the next attempt, ``None`` when the error is final."""
    if isinstance(exc, TelegramRetryAfter):
        return max(float(exc.retry_after), backoff)
    if isinstance(exc, TelegramNetworkError):
        return backoff
    if isinstance(exc, TelegramBadRequest) and "too many requests" in (exc.message or "").lower():
        return backoff
    return None


class BotCallQueue:
    """Одна очередь на бота: вызовы API идут по одному, flood control переживаем."""

    def __init__(self, *, max_attempts: int = MAX_ATTEMPTS, first_backoff: float = FIRST_BACKOFF) -> None:
        self._lock = asyncio.Lock()
        self._max_attempts = max_attempts
        self._first_backoff = first_backoff

    async def call(self, factory: Callable[[], Awaitable[_T]]) -> _T:
        backoff = self._first_backoff
        attempt = 0
        while True:
            attempt += 1
            async with self._lock:
                try:
                    return await factory()
                except _RETRYABLE as exc:
                    wait = _retry_delay(exc, backoff)
                    if wait is None or attempt >= self._max_attempts:
                        raise
            _LOGGER.info("telegram call: attempt %s failed, retry in %.1fs", attempt, wait)
            await asyncio.sleep(wait)
            backoff = min(backoff * 2, MAX_BACKOFF)


_QUEUES: dict[int, BotCallQueue] = {}


async def queue_call(bot: Bot, factory: Callable[[], Awaitable[_T]]) -> _T:
    queue = _QUEUES.get(id(bot))
    if queue is None:
        queue = _QUEUES[id(bot)] = BotCallQueue()
    return await queue.call(factory)


async def safe_answer_callback(
    callback: CallbackQuery,
    text: Optional[str] = None,
    *,
    show_alert: bool = False,
) -> bool:
    """Answer a callback query.

    Telegram rejects answers to queries older than ~15 s. The action behind
    the button has already run by then, so its result text is sent to the
    user's chat instead and ``False`` is returned.
    """
    try:
        await queue_call(callback.bot, lambda: callback.answer(text, show_alert=show_alert))
        return True
    except TelegramBadRequest as exc:
        message = (exc.message or "").lower()
        if not any(marker in message for marker in _EXPIRED_QUERY_MARKERS):
            raise
    user = callback.from_user
    _LOGGER.info("callback answer expired: user=%s", getattr(user, "id", None))
    if text and user is not None:
        await queue_call(callback.bot, lambda: callback.bot.send_message(user.id, text))
    return False
