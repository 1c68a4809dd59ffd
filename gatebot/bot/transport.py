"""aiogram-backed implementation of the outbound transport."""

from __future__ import annotations

from io import BytesIO
from typing import Any, Sequence

from aiogram import Bot
from aiogram.enums import ChatAction
from aiogram.exceptions import TelegramAPIError, TelegramNetworkError
from aiogram.utils.keyboard import InlineKeyboardBuilder, ReplyKeyboardBuilder

from gatebot.bot.utils.messages import TELEGRAM_CHUNK_LIMIT, chunk_text
from gatebot.bot.utils.telegram import bot_send_photo_with_retry, bot_send_with_retry
from gatebot.logging import logger
from gatebot.services.exceptions import DownloadFailed
from gatebot.services.transport import Choice


class AiogramTransport:
    __slots__ = ("bot", "chunk_limit")

    def __init__(self, bot: Bot, *, chunk_limit: int = TELEGRAM_CHUNK_LIMIT) -> None:
        self.bot = bot
        self.chunk_limit = chunk_limit

    async def send_text(self, chat_id: str, text: str, **options: Any) -> None:
        options.setdefault("parse_mode", None)
        for chunk in chunk_text(text, self.chunk_limit):
            await bot_send_with_retry(self.bot, chat_id=chat_id, text=chunk, **options)

    async def send_photo(self, chat_id: str, photo: str, caption: str | None = None) -> None:
        await bot_send_photo_with_retry(self.bot, chat_id=chat_id, photo=photo, caption=caption)

    async def send_choices(self, chat_id: str, text: str, choices: Sequence[Choice]) -> None:
        builder = InlineKeyboardBuilder()
        for label, payload in choices:
            builder.button(text=label, callback_data=payload)
        builder.adjust(2)
        await bot_send_with_retry(self.bot, chat_id=chat_id, text=text, reply_markup=builder.as_markup())

    async def send_menu(self, chat_id: str, text: str, buttons: Sequence[str]) -> None:
        builder = ReplyKeyboardBuilder()
        for label in buttons:
            builder.button(text=label)
        builder.adjust(2)
        await bot_send_with_retry(
            self.bot, chat_id=chat_id, text=text, reply_markup=builder.as_markup(resize_keyboard=True)
        )

    async def send_typing(self, chat_id: str) -> None:
        try:
            await self.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
        except TelegramAPIError as exc:
            logger.debug("typing_indicator_failed", chat_id=chat_id, error=str(exc))

    async def download(self, file_id: str) -> bytes:
        try:
            file = await self.bot.get_file(file_id)
            if not file.file_path:
                raise DownloadFailed("missing file path")
            buffer = BytesIO()
            await self.bot.download_file(file.file_path, buffer)
        except TelegramNetworkError as exc:
            logger.warning("media_download_failed", file_id=file_id, error=str(exc))
            raise DownloadFailed("network") from exc
        except TelegramAPIError as exc:
            logger.warning("media_download_failed", file_id=file_id, error=str(exc))
            raise DownloadFailed(exc.__class__.__name__) from exc
        return buffer.getvalue()


__all__ = ["AiogramTransport"]
