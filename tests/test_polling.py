import pytest
from aiogram.exceptions import TelegramConflictError
from aiohttp import ClientResponseError, RequestInfo
from multidict import CIMultiDict
from yarl import URL

from food_service.bots.common.polling import CONFLICT_NOTICE, run_polling
from food_service.infra.notify import ChannelNotifier


class DummyBot:
    def __init__(self) -> None:
        self.calls: list[tuple[int, str]] = []

    async def send_message(self, chat_id, text, **kwargs):
        self.calls.append((chat_id, text))
        return True


class DummyDispatcher:
    def __init__(self, exc: Exception | None = None) -> None:
        self._exc = exc
        self.kwargs: dict = {}

    async def start_polling(self, bot, **kwargs):
        self.kwargs = kwargs
        if self._exc is not None:
            raise self._exc


def _response_error(status: int) -> ClientResponseError:
    request_info = RequestInfo(URL("https://api.telegram.org"), "GET", CIMultiDict())
    return ClientResponseError(
        request_info,
        history=tuple(),
        status=status,
        message="Conflict" if status == 409 else "Error",
    )


def _notifier(bot) -> ChannelNotifier:
    return ChannelNotifier(bot, "driver_bot", logs_chat_id=555, alerts_chat_id=777)


@pytest.mark.parametrize(
    "error",
    [
        _response_error(409),
        TelegramConflictError(method=None, message="terminated by other getUpdates request"),
    ],
)
async def test_conflict_logs_and_exits_cleanly(error):
    dispatcher = DummyDispatcher(error)
    bot = DummyBot()

    code = await run_polling(dispatcher, bot, _notifier(bot))

    assert code == 0
    assert dispatcher.kwargs["handle_signals"] is False
    assert bot.calls == [(555, f"[driver_bot] {CONFLICT_NOTICE}")]


async def test_other_http_errors_propagate():
    dispatcher = DummyDispatcher(_response_error(502))
    bot = DummyBot()

    with pytest.raises(ClientResponseError):
        await run_polling(dispatcher, bot, _notifier(bot))

    assert bot.calls == []


async def test_clean_stop_returns_zero():
    bot = DummyBot()

    assert await run_polling(DummyDispatcher(), bot, _notifier(bot)) == 0
    assert bot.calls == []
