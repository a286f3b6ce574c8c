from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from food_service.bots.common import safe_answer_callback
from food_service.services import callbacks
from food_service.services.actions import ActionDispatcher
from food_service.services.errors import OrderError
from food_service.services.orders_service import OrdersService
from food_service.services.texts import DEFAULT_LANGUAGE, error_text, t

router = Router(name="admin_orders")
_log = logging.getLogger(__name__)


async def _admin_language(orders_service: OrdersService, user_id: int) -> str | None:
    binding = await orders_service.repo.admin_binding(user_id)
    return binding.language if binding is not None else None


@router.callback_query(
    F.data.startswith(f"{callbacks.ADMIN_TRANSITION}:")
    | F.data.startswith(f"{callbacks.DELIVERY_TYPE}:")
)
async def admin_order_action(
    callback: CallbackQuery,
    actions: ActionDispatcher,
    orders_service: OrdersService,
) -> None:
    language = await _admin_language(orders_service, callback.from_user.id) or DEFAULT_LANGUAGE
    result = await actions.handle_admin(
        callback.data, admin_user_id=callback.from_user.id, language=language
    )
    if result is None:
        await safe_answer_callback(callback, t(language, "unknown_action"))
        return
    await safe_answer_callback(callback, result.text, show_alert=not result.ok)


@router.message(Command("stats"))
async def admin_daily_stats(
    message: Message,
    command: CommandObject,
    orders_service: OrdersService,
) -> None:
    language = await _admin_language(orders_service, message.from_user.id)
    if language is None:
        await message.answer(t(DEFAULT_LANGUAGE, "not_admin"))
        return
    day = datetime.now(timezone.utc).date()
    if command.args:
        try:
            day = date.fromisoformat(command.args.strip())
        except ValueError:
            await message.answer("YYYY-MM-DD")
            return
    stats = await orders_service.daily_stats(day)
    await message.answer(
        t(
            language,
            "stats_text",
            day=stats.day.isoformat(),
            orders_count=stats.orders_count,
            items_revenue=stats.items_revenue,
            delivery_revenue=stats.delivery_revenue,
            grand_revenue=stats.grand_revenue,
            overrides_count=stats.overrides_count,
        )
    )


@router.message(Command("override"))
async def admin_override_fee(
    message: Message,
    command: CommandObject,
    orders_service: OrdersService,
) -> None:
    language = await _admin_language(orders_service, message.from_user.id)
    if language is None:
        await message.answer(t(DEFAULT_LANGUAGE, "not_admin"))
        return
    parts = (command.args or "").split(maxsplit=2)
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        await message.answer(t(language, "override_usage"))
        return
    order_id, fee = int(parts[0]), int(parts[1])
    note = parts[2] if len(parts) > 2 else None
    try:
        await orders_service.override_delivery_fee(
            order_id, fee, admin_user_id=message.from_user.id, note=note
        )
    except OrderError as exc:
        _log.info("override rejected: order=%s %s", order_id, exc.code)
        await message.answer(error_text(language, exc.code))
        return
    await message.answer(t(language, "override_done", order_id=order_id, fee=fee))
