"""Shared pytest fixtures for database-backed service tests."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gatebot.agents.router import ModelRouter
from gatebot.config import BotSettings, CooldownSettings, GeminiCredentials, LimitSettings, LLMSettings
from gatebot.db.base import Base
from gatebot.db.models import core as _models  # noqa: F401
from gatebot.i18n.service import I18nService
from gatebot.services.access import AccessPolicy, MembershipChecker
from gatebot.services.container import BotServices
from gatebot.services.documents import DocumentExtractor
from gatebot.services.exceptions import DownloadFailed
from gatebot.services.rate_limit import RateLimiter

ADMIN_ID = 1000


class _AsyncSessionWrapper:
    def __init__(self, sync_session) -> None:
        self._sync = sync_session

    async def execute(self, *args, **kwargs):
        return self._sync.execute(*args, **kwargs)

    async def get(self, *args, **kwargs):
        return self._sync.get(*args, **kwargs)

    def add(self, obj) -> None:
        self._sync.add(obj)

    def add_all(self, objs) -> None:
        self._sync.add_all(objs)

    async def flush(self) -> None:
        self._sync.flush()

    async def commit(self) -> None:
        self._sync.commit()

    async def rollback(self) -> None:
        self._sync.rollback()

    async def refresh(self, obj) -> None:
        self._sync.refresh(obj)

    async def close(self) -> None:
        self._sync.close()


@pytest_asyncio.fixture
async def session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sync_session = SessionLocal()
    try:
        yield _AsyncSessionWrapper(sync_session)
    finally:
        sync_session.close()
        engine.dispose()


def make_settings(**limits) -> BotSettings:
    cooldowns = limits.pop("cooldowns", None) or CooldownSettings(
        message_seconds=0, media_seconds=0, command_seconds=0
    )
    return BotSettings(
        _env_file=None,
        telegram_token="test-token",
        admin_telegram_id=ADMIN_ID,
        llm=LLMSettings(gemini=GeminiCredentials(api_key="gemini-key")),
        limits=LimitSettings(**limits),
        cooldowns=cooldowns,
    )


class FakeGenerator:
    def __init__(self, reply: str = "hi there", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[object, int]] = []

    async def generate(self, prompt, max_tokens: int) -> str:
        self.calls.append((prompt, max_tokens))
        if self.error is not None:
            raise self.error
        return self.reply


class FakeTransport:
    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = files or {}
        self.texts: list[tuple[str, str, dict]] = []
        self.photos: list[tuple[str, str, str | None]] = []
        self.choices: list[tuple[str, str, list]] = []
        self.menus: list[tuple[str, str, list]] = []
        self.typing: list[str] = []
        self.unreachable: set[str] = set()
        self.photo_error: Exception | None = None

    async def send_text(self, chat_id, text, **options):
        if str(chat_id) in self.unreachable:
            raise RuntimeError("bot was blocked by the user")
        self.texts.append((str(chat_id), text, options))

    async def send_photo(self, chat_id, photo, caption=None):
        if self.photo_error is not None:
            raise self.photo_error
        self.photos.append((str(chat_id), photo, caption))

    async def send_choices(self, chat_id, text, choices):
        self.choices.append((str(chat_id), text, list(choices)))

    async def send_menu(self, chat_id, text, buttons):
        self.menus.append((str(chat_id), text, list(buttons)))

    async def send_typing(self, chat_id):
        self.typing.append(str(chat_id))

    async def download(self, file_id):
        if file_id not in self.files:
            raise DownloadFailed("missing")
        return self.files[file_id]

    def last_text(self) -> str:
        return self.texts[-1][1]


class FakeSearch:
    def __init__(self, hits=None, error: Exception | None = None) -> None:
        self.hits = hits or []
        self.error = error
        self.queries: list[tuple[str, int | None]] = []

    async def search(self, query, limit=None):
        self.queries.append((query, limit))
        if self.error is not None:
            raise self.error
        return list(self.hits)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def make_services(generator):
    def factory(settings: BotSettings | None = None, **overrides) -> BotServices:
        settings = settings or make_settings()
        generators = overrides.pop("generators", None) or {}
        router = ModelRouter(settings, generator_factory=lambda config: generators.get(config.id, generator))
        values = dict(
            settings=settings,
            policy=AccessPolicy.from_settings(settings),
            rate_limiter=RateLimiter(settings.cooldowns),
            router=router,
            membership=MembershipChecker(None, None),
            extractor=DocumentExtractor(),
            search=FakeSearch(),
            i18n=I18nService(default_locale="en"),
        )
        values.update(overrides)
        return BotServices(**values)

    return factory
