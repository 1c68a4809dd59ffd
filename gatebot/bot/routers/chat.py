"""Telegram handlers for regular users."""

from __future__ import annotations

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.bot.events import event_from_callback, event_from_message, run_pipeline
from gatebot.domain.models import InboundEvent
from gatebot.services.container import BotServices

router = Router(name="chat")

USER_COMMANDS = ("help", "about", "status", "account", "clearchat", "language", "setmodel", "search", "imagine")
CALLBACK_PREFIXES = ("setmodel:", "language:")


@router.message(CommandStart())
async def handle_start(message: Message, command: CommandObject, session: AsyncSession, services: BotServices) -> None:
    await run_pipeline(session, services, message.bot, event_from_message(message, command))


@router.message(Command(*USER_COMMANDS))
async def handle_command(
    message: Message,
    command: CommandObject,
    session: AsyncSession,
    services: BotServices,
) -> None:
    await run_pipeline(session, services, message.bot, event_from_message(message, command))


@router.callback_query(F.data.startswith(CALLBACK_PREFIXES))
async def handle_choice(callback: CallbackQuery, bot: Bot, session: AsyncSession, services: BotServices) -> None:
    await callback.answer()
    event = event_from_callback(callback)
    if event is None:
        return
    await run_pipeline(session, services, bot, event)


@router.message(F.document)
async def handle_document(message: Message, session: AsyncSession, services: BotServices) -> None:
    await run_pipeline(session, services, message.bot, event_from_message(message))


@router.message(F.photo)
async def handle_photo(message: Message, session: AsyncSession, services: BotServices) -> None:
    await run_pipeline(session, services, message.bot, event_from_message(message))


@router.message(F.text.startswith("/"))
async def handle_unknown_command(message: Message, session: AsyncSession, services: BotServices) -> None:
    name = message.text.split(maxsplit=1)[0].lstrip("/").split("@", 1)[0]
    event = InboundEvent(chat_id=str(message.chat.id), command=name or "unknown")
    await run_pipeline(session, services, message.bot, event)


@router.message(F.text)
async def handle_chat(message: Message, session: AsyncSession, services: BotServices) -> None:
    await run_pipeline(session, services, message.bot, event_from_message(message))


__all__ = ["router"]
