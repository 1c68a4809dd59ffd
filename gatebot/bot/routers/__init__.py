from aiogram import Router

from gatebot.bot.routers import admin, chat


def setup_routers() -> Router:
    router = Router()
    router.include_router(admin.router)
    router.include_router(chat.router)
    return router


__all__ = ["setup_routers"]
