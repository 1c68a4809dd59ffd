"""Report exceptions that escape handlers to the admin chat."""

from __future__ import annotations

import json
import traceback
from typing import Any

from aiogram import Bot
from aiogram.dispatcher.event.bases import UNHANDLED
from aiogram.types import ErrorEvent, Update

from gatebot.bot.utils.telegram import bot_send_with_retry
from gatebot.config import BotSettings
from gatebot.logging import logger

REPORT_CHAR_LIMIT = 3900
TRACEBACK_CHAR_LIMIT = 1800
PAYLOAD_CHAR_LIMIT = 1000

# Update fields that carry the user and chat, in lookup order.
ACTOR_FIELDS = ("message", "edited_message", "callback_query", "my_chat_member", "chat_member")


class ErrorMonitor:
    """aiogram error observer.

    The pipeline already converts every known failure into a reply, so
    whatever reaches this observer is a bug in glue code (middleware,
    filters, transport). It is logged and, when an admin is configured,
    summarized to them.
    """

    def __init__(self, settings: BotSettings) -> None:
        self._settings = settings

    async def handle_error(self, event: ErrorEvent, bot: Bot):
        update_id = getattr(event.update, "update_id", None)
        logger.error(
            "bot_error_captured",
            exception_type=event.exception.__class__.__name__,
            exception=str(event.exception),
            update_id=update_id,
        )
        admin_id = self._settings.admin_telegram_id
        if admin_id is None:
            return UNHANDLED
        try:
            await bot_send_with_retry(bot, chat_id=admin_id, text=self.build_report(event), parse_mode=None)
        except Exception:
            logger.exception("error_monitor_notification_failed", update_id=update_id)
        return UNHANDLED

    def build_report(self, event: ErrorEvent) -> str:
        update = event.update
        exception = event.exception
        update_type, payload = self._describe_update(update)
        lines = [
            "BOT ERROR",
            f"Environment: {self._settings.environment}",
            f"Exception: {exception.__class__.__name__}: {exception}",
            f"Update ID: {getattr(update, 'update_id', 'unknown')}",
            f"Update Type: {update_type}",
            f"Chat: {self._actor_chat(update)}",
        ]
        trace = self._format_traceback(exception)
        if trace:
            lines.extend(["", "Traceback:", trace])
        if payload:
            lines.extend(["", "Payload:", payload])
        return _truncate("\n".join(lines), REPORT_CHAR_LIMIT)

    def _describe_update(self, update: Update | None) -> tuple[str, str]:
        if update is None:
            return "unknown", ""
        body = update.model_dump(exclude_unset=True, exclude_none=True)
        body.pop("update_id", None)
        for key, value in body.items():
            if value not in (None, {}, [], ()):
                return key, _truncate(_to_json(value), PAYLOAD_CHAR_LIMIT)
        return "unknown", ""

    def _actor_chat(self, update: Update | None) -> str:
        if update is None:
            return "unknown"
        for field in ACTOR_FIELDS:
            source = getattr(update, field, None)
            if source is None:
                continue
            chat = getattr(source, "chat", None)
            if chat is None and getattr(source, "message", None) is not None:
                chat = source.message.chat
            if chat is not None:
                return f"{chat.id} | {chat.type}"
            user = getattr(source, "from_user", None)
            if user is not None:
                return f"user {user.id}"
        return "unknown"

    @staticmethod
    def _format_traceback(exception: BaseException) -> str:
        trace = "".join(traceback.format_exception(exception.__class__, exception, exception.__traceback__))
        return _truncate(trace, TRACEBACK_CHAR_LIMIT) if trace.strip() else ""


def _to_json(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, indent=2, default=str)
    except TypeError:
        return str(payload)


def _truncate(value: str, limit: int) -> str:
    value = value.strip()
    if len(value) <= limit:
        return value
    return f"{value[: limit - 15].rstrip()}\n...[truncated]"


__all__ = ["ErrorMonitor"]
