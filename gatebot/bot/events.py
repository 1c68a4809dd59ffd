"""Translate aiogram updates into transport-neutral events and run them."""

from __future__ import annotations

from aiogram import Bot
from aiogram.filters import CommandObject
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.bot.transport import AiogramTransport
from gatebot.domain.models import DocumentRef, InboundEvent, PhotoRef
from gatebot.services.container import BotServices
from gatebot.services.pipeline import RequestPipeline


def event_from_message(message: Message, command: CommandObject | None = None) -> InboundEvent:
    document = None
    if message.document is not None:
        document = DocumentRef(file_id=message.document.file_id, file_name=message.document.file_name or "")
    photo = None
    if message.photo:
        # Telegram lists sizes smallest first.
        photo = PhotoRef(file_id=message.photo[-1].file_id)
    return InboundEvent(
        chat_id=str(message.chat.id),
        text=message.text or message.caption,
        document=document,
        photo=photo,
        command=command.command.lower() if command else None,
        args=command.args if command else None,
        first_name=message.from_user.first_name if message.from_user else None,
    )


def event_from_callback(callback: CallbackQuery) -> InboundEvent | None:
    if not callback.data or ":" not in callback.data:
        return None
    command, _, args = callback.data.partition(":")
    chat = callback.message.chat if callback.message is not None else None
    chat_id = chat.id if chat is not None else callback.from_user.id
    return InboundEvent(
        chat_id=str(chat_id),
        command=command,
        args=args,
        first_name=callback.from_user.first_name,
    )


async def run_pipeline(session: AsyncSession, services: BotServices, bot: Bot, event: InboundEvent) -> None:
    pipeline = RequestPipeline(session, services, AiogramTransport(bot))
    await pipeline.handle(event)


__all__ = ["event_from_callback", "event_from_message", "run_pipeline"]
