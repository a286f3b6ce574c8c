"""Operational messages mirrored to the Telegram logs / alerts channels."""
from __future__ import annotations

import html
import logging
import traceback
from dataclasses import dataclass
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from food_service.bots.common.telegram_safe import queue_call

__all__ = ["ChannelNotifier", "compose_alert"]

TELEGRAM_TEXT_LIMIT = 4096
TRACEBACK_TAIL = 3

_log = logging.getLogger(__name__)


def _clip(text: str, limit: int = TELEGRAM_TEXT_LIMIT) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def compose_alert(text: str, exc: Optional[BaseException] = None) -> str:
    """Текст алерта: сообщение, тип исключения и последние кадры трейсбека."""
    lines = [text.strip()] if text else []
    if exc is not None:
        lines.append(f"{type(exc).__name__}: {exc}")
        frames = [frame.strip() for frame in traceback.format_tb(exc.__traceback__)]
        if frames:
            lines.append("Traceback:")
            lines.extend(frames[-TRACEBACK_TAIL:])
    return _clip("\n".join(lines))


@dataclass(slots=True)
class ChannelNotifier:
    """One bot's view of the two service channels.

    Channel ids are optional; an unset channel swallows the message. Telegram
    failures are logged and reported as ``False``: alerting must never break
    the code path that triggered it.
    """

    bot: Optional[Bot]
    label: str
    logs_chat_id: Optional[int] = None
    alerts_chat_id: Optional[int] = None

    async def log(self, text: str) -> bool:
        return await self._deliver(self.logs_chat_id, f"[{self.label}] {text}")

    async def alert(self, text: str, exc: Optional[BaseException] = None) -> bool:
        return await self._deliver(self.alerts_chat_id, compose_alert(f"[{self.label}] {text}", exc))

    async def _deliver(self, chat_id: Optional[int], text: str) -> bool:
        if self.bot is None or chat_id is None:
            return False
        payload = html.escape(_clip(text), quote=False)
        if not payload:
            return False
        bot = self.bot
        try:
            await queue_call(bot, lambda: bot.send_message(chat_id, payload))
        except TelegramAPIError as exc:
            _log.warning("%s: channel %s unreachable: %s", self.label, chat_id, exc)
            return False
        return True
