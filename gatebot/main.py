"""Application entrypoint."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from aiogram import Bot, Dispatcher
from aiogram.client.session.aiohttp import AiohttpSession

from gatebot.bot.middlewares import DbSessionMiddleware
from gatebot.bot.routers import setup_routers
from gatebot.config import get_settings
from gatebot.db.session import Database
from gatebot.logging import configure_logging, logger
from gatebot.services.container import BotServices
from gatebot.services.error_monitor import ErrorMonitor


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exception = context.get("exception")
    logger.error(
        "event_loop_exception",
        message=context.get("message"),
        exception_type=exception.__class__.__name__ if exception else None,
        exception=str(exception) if exception else None,
    )


async def main() -> None:
    configure_logging()
    settings = get_settings()
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    database = Database(settings=settings)
    if settings.database.create_schema:
        await database.create_schema()

    session = (
        AiohttpSession(proxy=settings.telegram_proxy) if settings.telegram_proxy else None
    )
    bot = Bot(token=settings.telegram_token.get_secret_value(), session=session)
    dp = Dispatcher()
    dp.include_router(setup_routers())
    error_monitor = ErrorMonitor(settings=settings)
    dp.errors.register(error_monitor.handle_error)
    dp.update.outer_middleware(DbSessionMiddleware(database))

    async with httpx.AsyncClient() as http_client:
        services = BotServices.build(settings, bot=bot, http_client=http_client)
        logger.info(
            "bot_starting",
            environment=settings.environment,
            public_mode=services.policy.public_mode,
            models=[config.id for config in services.router.available_models()],
        )
        try:
            await dp.start_polling(bot, services=services)
        finally:
            await database.dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
