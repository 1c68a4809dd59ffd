"""Middleware that opens one AsyncSession per update."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from gatebot.db.session import Database
from gatebot.logging import logger


class DbSessionMiddleware(BaseMiddleware):
    """Commits when the handler returns and rolls back when it raises.

    Every handler sees the account state committed by earlier updates; the
    ledger's row locks are held until this commit.
    """

    def __init__(self, database: Database) -> None:
        super().__init__()
        self.database = database

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        async with self.database.session() as session:
            data["session"] = session
            try:
                result = await handler(event, data)
            except Exception:
                await session.rollback()
                logger.warning("db_session_rolled_back", update_type=type(event).__name__)
                raise
            await session.commit()
            return result


__all__ = ["DbSessionMiddleware"]
