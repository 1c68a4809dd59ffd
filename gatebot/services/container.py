"""Process-wide collaborators shared by every update."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from aiogram import Bot

from gatebot.agents.router import ModelRouter
from gatebot.config import BotSettings
from gatebot.i18n.service import I18nService
from gatebot.services.access import AccessPolicy, MembershipChecker
from gatebot.services.documents import DocumentExtractor
from gatebot.services.rate_limit import RateLimiter
from gatebot.services.search import SearchService


@dataclass(slots=True)
class BotServices:
    settings: BotSettings
    policy: AccessPolicy
    rate_limiter: RateLimiter
    router: ModelRouter
    membership: MembershipChecker
    extractor: DocumentExtractor
    search: SearchService
    i18n: I18nService

    @classmethod
    def build(cls, settings: BotSettings, *, bot: Bot | None, http_client: httpx.AsyncClient) -> "BotServices":
        return cls(
            settings=settings,
            policy=AccessPolicy.from_settings(settings),
            rate_limiter=RateLimiter(settings.cooldowns),
            router=ModelRouter(settings),
            membership=MembershipChecker(bot, settings.force_join_channel),
            extractor=DocumentExtractor(),
            search=SearchService(http_client, settings.search),
            i18n=I18nService(default_locale=settings.default_language),
        )


__all__ = ["BotServices"]
