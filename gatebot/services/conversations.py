"""Conversation persistence helpers."""

from __future__ import annotations

from typing import Literal, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.config import BotSettings, get_settings
from gatebot.db.models.core import UserAccount
from gatebot.services.accounts import AccountRepository
from gatebot.utils.datetime import utc_now

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
Role = Literal["user", "assistant"]


class ConversationStore:
    def __init__(self, session: AsyncSession, settings: BotSettings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.max_messages = self.settings.limits.db_msg_limit

    async def append_turn(self, account: UserAccount, role: Role, text: str) -> None:
        await self.append_turns(account, [(role, text)])

    async def append_turns(self, account: UserAccount, turns: Sequence[tuple[Role, str]]) -> None:
        timestamp = utc_now().isoformat()
        history = list(account.messages or [])
        for role, text in turns:
            if role not in (ROLE_USER, ROLE_ASSISTANT):
                raise ValueError(f"Unsupported role '{role}'.")
            history.append({"role": role, "text": text, "timestamp": timestamp})
        if len(history) > self.max_messages:
            history = history[-self.max_messages :]
        # JSON columns are not mutation-tracked; assign a new list.
        account.messages = history
        await self.session.flush()

    def recent_context(self, account: UserAccount, limit: int) -> list[str]:
        if limit <= 0:
            return []
        history = account.messages or []
        return [f"{item['role']}: {item['text']}" for item in history[-limit:]]

    async def clear(self, chat_id: str | int) -> bool:
        account = await AccountRepository(self.session, self.settings).get(chat_id)
        if account is None:
            return False
        account.messages = []
        await self.session.flush()
        return True


__all__ = ["ConversationStore", "ROLE_ASSISTANT", "ROLE_USER"]
