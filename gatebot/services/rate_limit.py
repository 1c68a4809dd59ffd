"""Per-user cooldown windows for messages, media uploads and commands."""

from __future__ import annotations

import math
import time
from enum import StrEnum
from typing import Callable, Dict, Hashable

from gatebot.config import CooldownSettings
from gatebot.services.exceptions import RateLimited


class CooldownDomain(StrEnum):
    MESSAGE = "message"
    MEDIA = "media"
    COMMAND = "command"


class RateLimiter:
    """In-memory cooldown gate.

    Each domain keeps its own ``key -> last allowed timestamp`` map, so a
    burst of chat messages never blocks a file upload or a command. The
    timestamp is recorded only when a call is allowed; rejected calls leave
    the window where it was.
    """

    def __init__(
        self,
        settings: CooldownSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.windows: Dict[CooldownDomain, float] = {
            CooldownDomain.MESSAGE: settings.message_seconds,
            CooldownDomain.MEDIA: settings.media_seconds,
            CooldownDomain.COMMAND: settings.command_seconds,
        }
        self._clock = clock
        self._last: Dict[CooldownDomain, Dict[Hashable, float]] = {
            domain: {} for domain in CooldownDomain
        }

    def check_message(self, chat_id: str | int) -> None:
        self._hit(CooldownDomain.MESSAGE, str(chat_id))

    def check_media(self, chat_id: str | int) -> None:
        self._hit(CooldownDomain.MEDIA, str(chat_id))

    def check_command(self, chat_id: str | int, command: str) -> None:
        self._hit(CooldownDomain.COMMAND, (str(chat_id), command), command=command)

    def remaining(self, domain: CooldownDomain, key: Hashable) -> float:
        last = self._last[domain].get(key)
        if last is None:
            return 0.0
        return max(0.0, self.windows[domain] - (self._clock() - last))

    def reset(self) -> None:
        for bucket in self._last.values():
            bucket.clear()

    def _hit(self, domain: CooldownDomain, key: Hashable, *, command: str | None = None) -> None:
        window = self.windows[domain]
        if window <= 0:
            return
        now = self._clock()
        bucket = self._last[domain]
        last = bucket.get(key)
        if last is not None:
            remaining = window - (now - last)
            if remaining > 0:
                raise RateLimited(math.ceil(remaining), domain.value, command)
        bucket[key] = now


__all__ = ["CooldownDomain", "RateLimiter"]
