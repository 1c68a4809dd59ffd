"""Daily request, token and feature budgets."""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.config import BotSettings, get_settings
from gatebot.db.models.core import DailyFeatureUsage, UserAccount
from gatebot.domain.models import Feature
from gatebot.logging import logger
from gatebot.utils.datetime import local_today


class UsageLedger:
    """Per-user daily counters.

    Request and token totals live on the account and roll lazily: every entry
    point calls :meth:`roll_over` first, which zeroes a counter whose stored
    reset date is not today. Feature counters are keyed by day, so a new day
    simply starts a new row.
    """

    def __init__(self, session: AsyncSession, settings: BotSettings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.retention_delta = timedelta(days=self.settings.limits.feature_retention_days)

    def today(self) -> date:
        return local_today(self.settings.timezone)

    def roll_over(self, account: UserAccount) -> bool:
        today = self.today()
        rolled = False
        if account.last_reset_date != today:
            account.requests_today = 0
            account.last_reset_date = today
            rolled = True
        if account.token_reset_date != today:
            account.tokens_used_today = 0
            account.token_reset_date = today
            rolled = True
        if rolled:
            logger.info("usage_rolled_over", chat_id=account.chat_id, day=today.isoformat())
        return rolled

    # Feature counters ---------------------------------------------------

    async def try_consume(self, account: UserAccount, feature: Feature | str, daily_limit: int) -> bool:
        row = await self._feature_row(account, str(feature), create=True)
        assert row is not None
        if row.count >= daily_limit:
            return False
        row.count += 1
        await self.session.flush()
        return True

    async def release(self, account: UserAccount, feature: Feature | str) -> None:
        row = await self._feature_row(account, str(feature), create=False)
        if row is None or row.count <= 0:
            return
        row.count -= 1
        await self.session.flush()

    async def feature_usage(self, account: UserAccount) -> dict[str, int]:
        stmt = select(DailyFeatureUsage).where(
            DailyFeatureUsage.account_id == account.id,
            DailyFeatureUsage.usage_date == self.today(),
        )
        result = await self.session.execute(stmt)
        usage = {feature.value: 0 for feature in Feature}
        for row in result.scalars():
            usage[row.feature] = row.count
        return usage

    # Request and token budget ------------------------------------------

    def has_request_budget(self, account: UserAccount, daily_limit: int) -> bool:
        self.roll_over(account)
        return account.requests_today < daily_limit

    def try_reserve_tokens(self, account: UserAccount, amount: int, daily_limit: int) -> bool:
        """Pre-flight check; strict so a request can never start at the limit."""

        self.roll_over(account)
        return account.tokens_used_today + amount < daily_limit

    def fits_after_response(self, account: UserAccount, amount: int, daily_limit: int) -> bool:
        self.roll_over(account)
        return account.tokens_used_today + amount <= daily_limit

    async def commit(self, account: UserAccount, amount: int) -> None:
        self.roll_over(account)
        account.tokens_used_today += amount
        account.requests_today += 1
        await self.session.flush()

    def remaining(self, account: UserAccount) -> tuple[int, int]:
        self.roll_over(account)
        limits = self.settings.limits
        return (
            max(0, limits.daily_request_limit - account.requests_today),
            max(0, limits.daily_token_limit - account.tokens_used_today),
        )

    # Internal helpers -------------------------------------------------

    async def _feature_row(
        self, account: UserAccount, feature: str, *, create: bool
    ) -> DailyFeatureUsage | None:
        today = self.today()
        stmt = (
            select(DailyFeatureUsage)
            .where(
                DailyFeatureUsage.account_id == account.id,
                DailyFeatureUsage.usage_date == today,
                DailyFeatureUsage.feature == feature,
            )
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None and create:
            await self._cleanup_old_rows(account.id, today)
            row = DailyFeatureUsage(account_id=account.id, usage_date=today, feature=feature, count=0)
            self.session.add(row)
            await self.session.flush()
        return row

    async def _cleanup_old_rows(self, account_id: int, today: date) -> None:
        cutoff = today - self.retention_delta
        stmt = delete(DailyFeatureUsage).where(
            DailyFeatureUsage.account_id == account_id,
            DailyFeatureUsage.usage_date < cutoff,
        )
        await self.session.execute(stmt)


__all__ = ["UsageLedger"]
