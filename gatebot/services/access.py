"""Access gates: public mode, admin bypass, approval windows and channel membership."""

from __future__ import annotations

from datetime import datetime, timedelta

from aiogram import Bot
from aiogram.enums import ChatMemberStatus
from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.config import BotSettings, get_settings
from gatebot.db.models.core import UserAccount
from gatebot.domain.models import AccessDecision
from gatebot.logging import logger
from gatebot.services.accounts import AccountRepository
from gatebot.services.exceptions import AccessDenied, DenialReason, Unauthorized
from gatebot.utils.datetime import ensure_utc, utc_now

MEMBER_STATUSES = frozenset(
    {ChatMemberStatus.CREATOR, ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.MEMBER}
)


class AccessPolicy:
    """Process-wide switches consulted before any per-user approval lookup."""

    def __init__(self, admin_id: int | str | None, *, public_mode: bool = False) -> None:
        self.admin_id = str(admin_id) if admin_id is not None else None
        self.public_mode = public_mode

    @classmethod
    def from_settings(cls, settings: BotSettings) -> "AccessPolicy":
        return cls(settings.admin_telegram_id, public_mode=settings.public_mode)

    def is_admin(self, chat_id: str | int) -> bool:
        return self.admin_id is not None and str(chat_id) == self.admin_id


class AccessController:
    def __init__(
        self,
        session: AsyncSession,
        policy: AccessPolicy,
        settings: BotSettings | None = None,
    ) -> None:
        self.session = session
        self.policy = policy
        self.settings = settings or get_settings()
        self.accounts = AccountRepository(session, self.settings)

    async def authorize(self, chat_id: str | int) -> AccessDecision:
        if self.policy.public_mode or self.policy.is_admin(chat_id):
            return AccessDecision(allowed=True)

        account = await self.accounts.get(chat_id)
        if account is None or account.approved_until is None:
            return AccessDecision(allowed=False, reason=DenialReason.NOT_APPROVED)
        if utc_now() > ensure_utc(account.approved_until):
            return AccessDecision(allowed=False, reason=DenialReason.EXPIRED)
        return AccessDecision(allowed=True)

    async def check(self, chat_id: str | int) -> None:
        decision = await self.authorize(chat_id)
        if not decision.allowed:
            raise AccessDenied(decision.reason or DenialReason.NOT_APPROVED)

    async def approve(self, chat_id: str | int, hours: float | None = None) -> UserAccount:
        duration = hours if hours is not None else self.settings.limits.approval_expiry_hours
        if duration <= 0:
            raise ValueError("Approval duration must be positive.")
        account = await self.accounts.get_or_create(chat_id)
        account.approved_until = utc_now() + timedelta(hours=duration)
        await self.session.flush()
        logger.info("access_approved", target=str(chat_id), approved_until=account.approved_until.isoformat())
        return account

    async def revoke(self, chat_id: str | int) -> bool:
        if self.policy.is_admin(chat_id):
            logger.warning("access_revoke_admin_rejected", target=str(chat_id))
            raise Unauthorized("The admin identity cannot be revoked.")
        account = await self.accounts.get(chat_id)
        if account is None:
            return False
        account.approved_until = None
        await self.session.flush()
        logger.info("access_revoked", target=str(chat_id))
        return True

    async def list_approved(self) -> list[UserAccount]:
        return await self.accounts.list_approved(utc_now())

    def approval_remaining(self, account: UserAccount, now: datetime | None = None) -> timedelta:
        if account.approved_until is None:
            return timedelta(0)
        current = now or utc_now()
        return max(timedelta(0), ensure_utc(account.approved_until) - current)


class MembershipChecker:
    """Channel membership gate; any lookup failure counts as "not a member"."""

    def __init__(self, bot: Bot | None, channel: str | None) -> None:
        self.bot = bot
        self.channel = channel

    @property
    def enabled(self) -> bool:
        return bool(self.channel)

    async def is_member(self, chat_id: str | int) -> bool:
        if not self.enabled:
            return True
        if self.bot is None:
            return False
        try:
            member = await self.bot.get_chat_member(self.channel, int(chat_id))
        except Exception as exc:
            logger.warning("membership_check_failed", channel=self.channel, error=str(exc))
            return False
        return member.status in MEMBER_STATUSES

    def join_url(self) -> str | None:
        if not self.channel or not self.channel.startswith("@"):
            return None
        return f"https://t.me/{self.channel.lstrip('@')}"


__all__ = ["AccessController", "AccessPolicy", "MembershipChecker"]
