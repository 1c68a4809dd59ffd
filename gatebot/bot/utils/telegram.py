"""Telegram sending helpers with retry support."""

from __future__ import annotations

from typing import Any

from aiogram import Bot
from aiogram.exceptions import TelegramNetworkError

from gatebot.logging import logger
from gatebot.utils.retry import retry_async

TELEGRAM_SEND_MAX_ATTEMPTS = 3
TELEGRAM_SEND_BASE_DELAY = 0.3
TRANSIENT_ERRORS = (TelegramNetworkError,)


async def bot_send_with_retry(bot: Bot, *, chat_id: int | str, text: str, **kwargs: Any) -> Any:
    """Send a message via Bot with retry/backoff."""

    async def _send():
        return await bot.send_message(chat_id=chat_id, text=text, **kwargs)

    return await retry_async(
        _send,
        retry_on=TRANSIENT_ERRORS,
        max_attempts=TELEGRAM_SEND_MAX_ATTEMPTS,
        base_delay=TELEGRAM_SEND_BASE_DELAY,
        logger=logger,
        operation_name="telegram_send_message",
    )


async def bot_send_photo_with_retry(bot: Bot, *, chat_id: int | str, photo: str, **kwargs: Any) -> Any:
    async def _send():
        return await bot.send_photo(chat_id=chat_id, photo=photo, **kwargs)

    return await retry_async(
        _send,
        retry_on=TRANSIENT_ERRORS,
        max_attempts=TELEGRAM_SEND_MAX_ATTEMPTS,
        base_delay=TELEGRAM_SEND_BASE_DELAY,
        logger=logger,
        operation_name="telegram_send_photo",
    )


__all__ = ["bot_send_photo_with_retry", "bot_send_with_retry"]
