"""Administrative operations restricted to the configured admin identity."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.db.models.core import UserAccount
from gatebot.domain.models import BroadcastResult, UsageReport, UsageReportRow
from gatebot.logging import logger
from gatebot.services.access import AccessController
from gatebot.services.accounts import AccountRepository
from gatebot.services.container import BotServices
from gatebot.services.exceptions import Unauthorized
from gatebot.services.transport import Transport
from gatebot.services.usage import UsageLedger


class AdminService:
    """Every method takes the caller id first and raises :class:`Unauthorized` for anyone but the admin."""

    def __init__(self, session: AsyncSession, services: BotServices, transport: Transport) -> None:
        self.session = session
        self.services = services
        self.transport = transport
        self.policy = services.policy
        self.accounts = AccountRepository(session, services.settings)
        self.access = AccessController(session, services.policy, services.settings)
        self.ledger = UsageLedger(session, services.settings)

    def ensure_admin(self, caller_id: str | int) -> None:
        if not self.policy.is_admin(caller_id):
            logger.warning("admin_command_rejected", caller=str(caller_id))
            raise Unauthorized("Admin only command.")

    async def approve(self, caller_id: str | int, target: str | int, hours: float | None = None) -> UserAccount:
        self.ensure_admin(caller_id)
        return await self.access.approve(target, hours)

    async def revoke(self, caller_id: str | int, target: str | int) -> bool:
        self.ensure_admin(caller_id)
        return await self.access.revoke(target)

    async def list_approved(self, caller_id: str | int) -> list[UserAccount]:
        self.ensure_admin(caller_id)
        return await self.access.list_approved()

    def set_public_mode(self, caller_id: str | int, enabled: bool) -> bool:
        self.ensure_admin(caller_id)
        self.policy.public_mode = enabled
        logger.info("public_mode_changed", public_mode=enabled)
        return enabled

    def get_public_mode(self, caller_id: str | int) -> bool:
        self.ensure_admin(caller_id)
        return self.policy.public_mode

    async def broadcast(self, caller_id: str | int, text: str) -> BroadcastResult:
        self.ensure_admin(caller_id)
        result = BroadcastResult()
        for account in await self.accounts.list_all():
            try:
                await self.transport.send_text(account.chat_id, text)
            except Exception as exc:
                result.failed += 1
                logger.warning("broadcast_delivery_failed", target=account.chat_id, error=str(exc))
            else:
                result.sent += 1
        logger.info("broadcast_finished", sent=result.sent, failed=result.failed)
        return result

    async def usage_report(self, caller_id: str | int) -> UsageReport:
        self.ensure_admin(caller_id)
        rows: list[UsageReportRow] = []
        for account in await self.accounts.list_all():
            self.ledger.roll_over(account)
            rows.append(
                UsageReportRow(
                    chat_id=account.chat_id,
                    requests_today=account.requests_today,
                    tokens_used_today=account.tokens_used_today,
                    feature_usage=await self.ledger.feature_usage(account),
                )
            )
        return UsageReport(day=self.ledger.today(), rows=rows)


__all__ = ["AdminService"]
