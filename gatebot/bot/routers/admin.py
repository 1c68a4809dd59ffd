"""Telegram handlers for the admin command surface."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.bot.events import event_from_message, run_pipeline
from gatebot.services.container import BotServices

router = Router(name="admin")

ADMIN_COMMANDS = ("approve", "remove", "users", "public", "private", "mode", "broadcast", "usage")


@router.message(Command(*ADMIN_COMMANDS))
async def handle_admin_command(
    message: Message,
    command: CommandObject,
    session: AsyncSession,
    services: BotServices,
) -> None:
    # Authorization happens in AdminService so non-admins get a reply.
    await run_pipeline(session, services, message.bot, event_from_message(message, command))


__all__ = ["ADMIN_COMMANDS", "router"]
