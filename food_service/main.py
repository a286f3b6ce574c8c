# food_service/main.py
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Mapping, Optional

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from food_service.bots.admin_bot.handlers import router as admin_router
from food_service.bots.common.error_middleware import setup_error_middleware
from food_service.bots.common.polling import run_polling
from food_service.bots.driver_bot.handlers import router as driver_router
from food_service.config import Settings, settings
from food_service.db import models as m
from food_service.infra.logging_utils import setup_logging
from food_service.infra.notify import ChannelNotifier
from food_service.infra.transport import AiogramTransport, MessageTransport
from food_service.services.actions import ActionDispatcher
from food_service.services.admission import AdmissionController
from food_service.services.candidates import CandidateFinder
from food_service.services.card_delivery import CardDelivery, OrderCardRefresher
from food_service.services.clock import Clock, SystemClock
from food_service.services.dispatch import DispatchBroadcaster
from food_service.services.drivers import DriversService
from food_service.services.event_hub import EventHub
from food_service.services.message_pointers import MessagePointers
from food_service.services.orders_repo import OrdersRepository
from food_service.services.orders_service import OrdersService
from food_service.services.presence import DriverPresence

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Все сервисы процесса, связанные общим EventHub."""

    hub: EventHub
    repo: OrdersRepository
    orders_service: OrdersService
    drivers: DriversService
    presence: DriverPresence
    finder: CandidateFinder
    admission: AdmissionController
    pointers: MessagePointers
    card_delivery: CardDelivery
    refresher: OrderCardRefresher
    dispatcher: DispatchBroadcaster
    actions: ActionDispatcher
    bots: dict[m.Audience, Bot] = field(default_factory=dict)

    def workflow_data(self) -> dict:
        """Objects injected into aiogram handlers by argument name."""
        return {
            "repo": self.repo,
            "orders_service": self.orders_service,
            "drivers": self.drivers,
            "presence": self.presence,
            "finder": self.finder,
            "card_delivery": self.card_delivery,
            "actions": self.actions,
        }


def build_application(
    session_factory: async_sessionmaker[AsyncSession],
    transports: Mapping[m.Audience, MessageTransport],
    *,
    config: Settings = settings,
    clock: Optional[Clock] = None,
    hub: Optional[EventHub] = None,
) -> Application:
    clock = clock or SystemClock()
    hub = hub or EventHub()
    repo = OrdersRepository(
        session_factory,
        hub=hub,
        clock=clock,
        base_fee=config.base_fee,
        rate_per_km=config.rate_per_km,
    )
    orders_service = OrdersService(repo)
    drivers = DriversService(session_factory)
    presence = DriverPresence(
        session_factory, clock=clock, freshness_seconds=config.location_freshness_seconds
    )
    finder = CandidateFinder(session_factory, presence)
    admission = AdmissionController(repo, presence)
    pointers = MessagePointers(session_factory, clock=clock)
    card_delivery = CardDelivery(pointers, transports, hub)
    refresher = OrderCardRefresher(
        repo,
        drivers,
        presence,
        card_delivery,
        pointers,
        hub,
        default_language=config.default_language,
        upsert_timeout=config.dispatch_deadline_seconds,
    )
    dispatcher = DispatchBroadcaster(
        repo,
        finder,
        transports.get(m.Audience.DRIVER),
        push_radius_km=config.driver_push_radius_km,
        deadline_seconds=config.dispatch_deadline_seconds,
        duplicate_window_seconds=config.dispatch_duplicate_window_seconds,
        max_candidates=config.dispatch_max_candidates,
    )
    # Порядок подписки: сначала карточки, потом рассылка водителям.
    hub.subscribe(refresher)
    hub.subscribe(dispatcher)
    actions = ActionDispatcher(orders_service, admission, drivers)
    return Application(
        hub=hub,
        repo=repo,
        orders_service=orders_service,
        drivers=drivers,
        presence=presence,
        finder=finder,
        admission=admission,
        pointers=pointers,
        card_delivery=card_delivery,
        refresher=refresher,
        dispatcher=dispatcher,
        actions=actions,
    )


def _make_bots(config: Settings) -> dict[m.Audience, Bot]:
    tokens = {
        m.Audience.CUSTOMER: config.customer_bot_token,
        m.Audience.BRANCH_ADMIN: config.admin_bot_token,
        m.Audience.DRIVER: config.driver_bot_token,
    }
    return {
        audience: Bot(token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
        for audience, token in tokens.items()
        if token
    }


async def _poll(dp: Dispatcher, bot: Bot, notifier: ChannelNotifier) -> int:
    try:
        return await run_polling(dp, bot, notifier)
    except Exception as exc:
        logger.exception("%s polling failed", notifier.label)
        await notifier.alert("polling failed", exc)
        await notifier.log(f"❗ polling failed: {type(exc).__name__}")
        return 1


async def main() -> int:
    setup_logging(settings.log_level)
    from food_service.db.session import SessionLocal, engine

    bots = _make_bots(settings)
    if not bots:
        logger.error("No bot tokens configured, nothing to run")
        return 1
    transports = {
        audience: AiogramTransport(bot, label=audience.value) for audience, bot in bots.items()
    }
    app = build_application(SessionLocal, transports)
    app.bots = bots

    routers = {
        m.Audience.BRANCH_ADMIN: admin_router,
        m.Audience.DRIVER: driver_router,
    }
    polling: list[asyncio.Task] = []
    for audience, router in routers.items():
        bot = bots.get(audience)
        if bot is None:
            logger.warning("%s bot token missing, its updates are not polled", audience.value)
            continue
        label = f"{audience.value}_bot"
        dp = Dispatcher(**app.workflow_data())
        dp.include_router(router)
        notifier = ChannelNotifier(
            bot,
            label,
            logs_chat_id=settings.logs_channel_id,
            alerts_chat_id=settings.alerts_channel_id,
        )
        setup_error_middleware(dp, notifier)
        polling.append(asyncio.create_task(_poll(dp, bot, notifier), name=f"{label}_polling"))

    logger.info("food_service started: bots=%s", ", ".join(a.value for a in bots))
    exit_code = 0
    try:
        if polling:
            codes = await asyncio.gather(*polling)
            exit_code = max(codes)
        else:
            # Only the customer card bot is configured: keep the hub alive.
            await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        for task in polling:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await app.hub.close()
        for bot in bots.values():
            await bot.session.close()
        await engine.dispose()
    return exit_code


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
