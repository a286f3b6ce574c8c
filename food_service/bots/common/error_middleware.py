"""Last-resort handler for exceptions escaping the routers."""
from __future__ import annotations

import logging
from typing import Any, Optional

from aiogram import Dispatcher
from aiogram.types import ErrorEvent

from food_service.infra.notify import ChannelNotifier
from food_service.services import callbacks

__all__ = ["describe_update", "setup_error_middleware"]

logger = logging.getLogger(__name__)

_EVENT_KINDS = ("callback_query", "message", "edited_message")
TEXT_PREVIEW = 64


def _event_of(update: Any) -> tuple[str, Optional[Any]]:
    for kind in _EVENT_KINDS:
        event = getattr(update, kind, None)
        if event is not None:
            return kind, event
    return ("unknown" if update is None else type(update).__name__), None


def describe_update(update: Any) -> str:
    """Короткое описание апдейта для канала алертов: тип, пользователь, заказ."""
    kind, event = _event_of(update)
    lines = [f"Update: {kind}"]
    user = getattr(event, "from_user", None)
    if user is not None:
        lines.append(f"User: {user.id}")
    action = callbacks.parse(getattr(event, "data", None))
    if action is not None:
        lines.append(f"Order: #{action.order_id} ({type(action).__name__})")
    elif isinstance(getattr(event, "text", None), str):
        lines.append(f"Text: {event.text[:TEXT_PREVIEW]}")
    return "\n".join(lines)


def setup_error_middleware(dp: Dispatcher, notifier: ChannelNotifier) -> None:
    """Log with traceback, mirror to both channels and mark the update handled."""

    async def on_error(event: ErrorEvent) -> bool:
        exc = event.exception
        logger.error(
            "%s: unhandled %s",
            notifier.label,
            type(exc).__name__,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        summary = describe_update(event.update)
        await notifier.log(f"❗ unhandled error\n{summary}")
        await notifier.alert(summary, exc)
        return True

    dp.errors.register(on_error)
