from types import SimpleNamespace

import pytest
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from food_service.infra.transport import (
    AiogramTransport,
    MessageNotFound,
    MessageNotModified,
    TransportError,
    build_markup,
)
from food_service.services.cards import CardButton


class DummyBot:
    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc
        self.sent: list[tuple] = []
        self.edited: list[dict] = []

    async def send_message(self, chat_id, text, **kwargs):
        if self.exc is not None:
            raise self.exc
        self.sent.append((chat_id, text, kwargs))
        return SimpleNamespace(message_id=42)

    async def edit_message_text(self, **kwargs):
        if self.exc is not None:
            raise self.exc
        self.edited.append(kwargs)
        return True


def _bad_request(text: str) -> TelegramBadRequest:
    return TelegramBadRequest(method=None, message=text)


def test_build_markup_keeps_rows_and_url_buttons() -> None:
    markup = build_markup(
        [
            [CardButton("Go", callback_data="driver_claim:1")],
            [],
            [CardButton("Map", url="https://www.google.com/maps?q=1.000000,2.000000")],
        ]
    )
    assert len(markup.inline_keyboard) == 2
    assert markup.inline_keyboard[0][0].callback_data == "driver_claim:1"
    assert markup.inline_keyboard[1][0].url.startswith("https://www.google.com/maps")
    assert build_markup(()) is None


async def test_send_returns_message_id() -> None:
    bot = DummyBot()
    transport = AiogramTransport(bot, label="customer")

    message_id = await transport.send(10, "hello", ((CardButton("x", callback_data="driver_claim:1"),),))

    assert message_id == 42
    assert bot.sent[0][0] == 10
    assert bot.sent[0][2]["reply_markup"] is not None


async def test_edit_without_buttons_clears_keyboard() -> None:
    bot = DummyBot()
    transport = AiogramTransport(bot, label="admin")

    await transport.edit(10, 5, "text")

    assert bot.edited[0]["reply_markup"].inline_keyboard == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Bad Request: message is not modified", MessageNotModified),
        ("Bad Request: message to edit not found", MessageNotFound),
        ("Bad Request: chat not found", MessageNotFound),
        ("Bad Request: can't parse entities", TransportError),
    ],
)
async def test_edit_errors_are_classified(text, expected) -> None:
    transport = AiogramTransport(DummyBot(_bad_request(text)), label="admin")

    with pytest.raises(expected) as excinfo:
        await transport.edit(10, 5, "text")

    if expected is TransportError:
        assert not isinstance(excinfo.value, (MessageNotFound, MessageNotModified))


async def test_other_api_errors_become_transport_errors() -> None:
    exc = TelegramForbiddenError(method=None, message="Forbidden: bot was blocked by the user")
    transport = AiogramTransport(DummyBot(exc), label="driver")

    with pytest.raises(TransportError):
        await transport.send(10, "hi")
