from __future__ import annotations

import logging

from aiogram import F, Router
from aiogram.filters import CommandStart
from aiogram.types import (
    CallbackQuery,
    KeyboardButton,
    Message,
    ReplyKeyboardMarkup,
)

from food_service.bots.common import safe_answer_callback
from food_service.config import settings
from food_service.db import models as m
from food_service.infra.transport import build_markup
from food_service.services import callbacks
from food_service.services.actions import ActionDispatcher
from food_service.services.candidates import CandidateFinder
from food_service.services.card_delivery import CardDelivery
from food_service.services.cards import CardButton, build_driver_card
from food_service.services.drivers import DriverProfile, DriversService
from food_service.services.errors import OrderError
from food_service.services.orders_repo import OrdersRepository
from food_service.services.presence import DriverPresence
from food_service.services.texts import error_text, normalize_language, t

router = Router(name="driver_main")
_log = logging.getLogger(__name__)

JOBS_SHOWN = 5


def _menu_texts(key: str) -> set[str]:
    return {t("uz", key), t("ru", key)}


def driver_menu(language: str) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=t(language, "menu_online")), KeyboardButton(text=t(language, "menu_offline"))],
            [KeyboardButton(text=t(language, "menu_jobs")), KeyboardButton(text=t(language, "menu_active"))],
            [KeyboardButton(text=t(language, "menu_share_location"), request_location=True)],
        ],
        resize_keyboard=True,
    )


async def _registered(message: Message, drivers: DriversService) -> m.drivers | None:
    driver = await drivers.get_by_tg_user_id(message.from_user.id)
    if driver is None:
        await message.answer(error_text(None, "not-found"))
    return driver


@router.message(CommandStart())
async def driver_start(message: Message, drivers: DriversService) -> None:
    user = message.from_user
    language = normalize_language(user.language_code)
    driver = await drivers.register_driver(
        user.id,
        message.chat.id,
        DriverProfile(full_name=user.full_name, language=language),
    )
    language = normalize_language(driver.language)
    await message.answer(
        t(language, "driver_welcome", name=driver.full_name or user.id),
        reply_markup=driver_menu(language),
    )


@router.message(F.text.in_(_menu_texts("menu_online")))
async def driver_go_online(message: Message, drivers: DriversService, presence: DriverPresence) -> None:
    driver = await _registered(message, drivers)
    if driver is None:
        return
    await presence.set_online(driver.id, True)
    await message.answer(t(driver.language, "went_online"))


@router.message(F.text.in_(_menu_texts("menu_offline")))
async def driver_go_offline(message: Message, drivers: DriversService, presence: DriverPresence) -> None:
    driver = await _registered(message, drivers)
    if driver is None:
        return
    await presence.set_online(driver.id, False)
    await message.answer(t(driver.language, "went_offline"))


@router.message(F.location)
async def driver_location(message: Message, drivers: DriversService, presence: DriverPresence) -> None:
    driver = await _registered(message, drivers)
    if driver is None:
        return
    await presence.update_location(driver.id, message.location.latitude, message.location.longitude)
    await message.answer(t(driver.language, "location_saved"))


@router.message(F.text.in_(_menu_texts("menu_jobs")))
async def driver_jobs_near_me(
    message: Message,
    drivers: DriversService,
    finder: CandidateFinder,
) -> None:
    driver = await _registered(message, drivers)
    if driver is None:
        return
    language = driver.language
    try:
        jobs = await finder.jobs_near_me(driver.id, settings.driver_jobs_radius_km, limit=JOBS_SHOWN)
    except OrderError as exc:
        await message.answer(error_text(language, exc.code))
        return
    if not jobs:
        await message.answer(t(language, "jobs_empty"))
        return
    lines = [
        t(language, "job_line", order_id=job.order_id, distance=job.distance_km, grand_total=job.grand_total)
        for job in jobs
    ]
    buttons = [
        [CardButton(t(language, "btn_accept_order", order_id=job.order_id), callbacks.driver_claim(job.order_id))]
        for job in jobs
    ]
    await message.answer("\n".join(lines), reply_markup=build_markup(buttons))


@router.message(F.text.in_(_menu_texts("menu_active")))
async def driver_active_order(
    message: Message,
    drivers: DriversService,
    repo: OrdersRepository,
    card_delivery: CardDelivery,
) -> None:
    driver = await _registered(message, drivers)
    if driver is None:
        return
    order = await repo.driver_active_order(driver.id)
    if order is None:
        await message.answer(t(driver.language, "no_active_order"))
        return
    try:
        await card_delivery.upsert_card(
            order.id,
            m.Audience.DRIVER,
            driver.chat_id,
            build_driver_card(order, normalize_language(driver.language)),
            timeout=settings.dispatch_deadline_seconds,
        )
    except OrderError as exc:
        _log.warning("active order card: order=%s driver=%s %s", order.id, driver.id, exc.code)
        await message.answer(error_text(driver.language, exc.code))


@router.callback_query(
    F.data.startswith(f"{callbacks.DRIVER_CLAIM}:")
    | F.data.startswith(f"{callbacks.DRIVER_TRANSITION}:")
)
async def driver_order_action(
    callback: CallbackQuery,
    actions: ActionDispatcher,
    drivers: DriversService,
) -> None:
    driver = await drivers.get_by_tg_user_id(callback.from_user.id)
    language = normalize_language(driver.language if driver is not None else None)
    result = await actions.handle_driver(
        callback.data, tg_user_id=callback.from_user.id, language=language
    )
    if result is None:
        await safe_answer_callback(callback, t(language, "unknown_action"))
        return
    await safe_answer_callback(callback, result.text, show_alert=not result.ok)
