"""Account persistence helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.config import BotSettings, get_settings
from gatebot.db.models.core import UserAccount
from gatebot.utils.datetime import local_today


class AccountRepository:
    def __init__(self, session: AsyncSession, settings: BotSettings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    async def get(self, chat_id: str | int) -> UserAccount | None:
        stmt = select(UserAccount).where(UserAccount.chat_id == str(chat_id))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, chat_id: str | int) -> UserAccount:
        account = await self.get(chat_id)
        if account is not None:
            return account
        today = local_today(self.settings.timezone)
        account = UserAccount(
            chat_id=str(chat_id),
            messages=[],
            requests_today=0,
            last_reset_date=today,
            tokens_used_today=0,
            token_reset_date=today,
        )
        self.session.add(account)
        await self.session.flush()
        return account

    async def list_all(self) -> list[UserAccount]:
        stmt = select(UserAccount).order_by(UserAccount.id)
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_approved(self, now: datetime) -> list[UserAccount]:
        stmt = (
            select(UserAccount)
            .where(UserAccount.approved_until.is_not(None), UserAccount.approved_until > now)
            .order_by(UserAccount.approved_until)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())


__all__ = ["AccountRepository"]
