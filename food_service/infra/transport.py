"""Message transport contract and its aiogram implementation."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional, Protocol

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from food_service.bots.common.telegram_safe import queue_call
from food_service.services.cards import ButtonGrid, CardButton

__all__ = [
    "MessageTransport",
    "AiogramTransport",
    "TransportError",
    "MessageNotFound",
    "MessageNotModified",
    "build_markup",
]

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Send/edit failed for a reason other than the two below."""


class MessageNotFound(TransportError):
    pass


class MessageNotModified(TransportError):
    pass


class MessageTransport(Protocol):
    async def send(self, chat_id: int, text: str, buttons: ButtonGrid = ()) -> int: ...

    async def edit(
        self, chat_id: int, message_id: int, text: str, buttons: ButtonGrid = ()
    ) -> None: ...


_NOT_FOUND_MARKERS = (
    "message to edit not found",
    "message can't be edited",
    "message to delete not found",
    "chat not found",
)


def _button(button: CardButton) -> InlineKeyboardButton:
    if button.url:
        return InlineKeyboardButton(text=button.text, url=button.url)
    return InlineKeyboardButton(text=button.text, callback_data=button.callback_data)


def build_markup(buttons: Sequence[Sequence[CardButton]]) -> Optional[InlineKeyboardMarkup]:
    rows = [[_button(b) for b in row] for row in buttons if row]
    if not rows:
        return None
    return InlineKeyboardMarkup(inline_keyboard=rows)


def _classify(exc: TelegramBadRequest) -> TransportError:
    message = (exc.message or "").lower()
    if "message is not modified" in message:
        return MessageNotModified(exc.message)
    if any(marker in message for marker in _NOT_FOUND_MARKERS):
        return MessageNotFound(exc.message)
    return TransportError(exc.message)


class AiogramTransport:
    """One instance per audience bot."""

    def __init__(self, bot: Bot, *, label: str) -> None:
        self.bot = bot
        self.label = label

    async def send(self, chat_id: int, text: str, buttons: ButtonGrid = ()) -> int:
        markup = build_markup(buttons)
        try:
            message = await queue_call(
                self.bot,
                lambda: self.bot.send_message(chat_id, text, reply_markup=markup),
            )
        except TelegramBadRequest as exc:
            raise _classify(exc) from exc
        except TelegramAPIError as exc:
            raise TransportError(str(exc)) from exc
        logger.debug("%s: sent message %s to chat %s", self.label, message.message_id, chat_id)
        return message.message_id

    async def edit(
        self, chat_id: int, message_id: int, text: str, buttons: ButtonGrid = ()
    ) -> None:
        # An empty keyboard clears buttons left over from the previous state.
        markup = build_markup(buttons) or InlineKeyboardMarkup(inline_keyboard=[])
        try:
            await queue_call(
                self.bot,
                lambda: self.bot.edit_message_text(
                    text=text,
                    chat_id=chat_id,
                    message_id=message_id,
                    reply_markup=markup,
                ),
            )
        except TelegramBadRequest as exc:
            raise _classify(exc) from exc
        except TelegramAPIError as exc:
            raise TransportError(str(exc)) from exc
