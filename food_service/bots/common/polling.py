from __future__ import annotations

import logging

from aiogram import Bot, Dispatcher
from aiogram.exceptions import TelegramConflictError
from aiohttp import ClientResponseError

from food_service.infra.notify import ChannelNotifier

__all__ = ["CONFLICT_STATUS", "run_polling"]

CONFLICT_STATUS = 409
CONFLICT_NOTICE = "409 Conflict: another instance is polling this token, stopping"

_log = logging.getLogger(__name__)


async def run_polling(dispatcher: Dispatcher, bot: Bot, notifier: ChannelNotifier, **kwargs) -> int:
    """Poll until stopped and return the process exit code.

    A getUpdates conflict means a second process owns the token; this one
    steps aside with code 0 so a supervisor does not restart it in a loop.
    """
    try:
        await dispatcher.start_polling(bot, handle_signals=False, **kwargs)
    except TelegramConflictError:
        pass
    except ClientResponseError as error:
        if error.status != CONFLICT_STATUS:
            raise
    else:
        return 0
    _log.warning("%s: %s", notifier.label, CONFLICT_NOTICE)
    await notifier.log(CONFLICT_NOTICE)
    return 0
