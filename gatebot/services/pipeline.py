"""Single entry point that takes one inbound event from gate to reply."""

from __future__ import annotations

import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from gatebot.agents.router import GenerationRequest
from gatebot.db.models.core import UserAccount
from gatebot.domain.models import (
    AccessDecision,
    AccountSummary,
    DocumentRef,
    Feature,
    InboundEvent,
    ModelConfig,
    PhotoRef,
)
from gatebot.i18n.languages import LANGUAGES, language_name
from gatebot.logging import bind_chat, logger
from gatebot.services.access import AccessController
from gatebot.services.accounts import AccountRepository
from gatebot.services.admin import AdminService
from gatebot.services.container import BotServices
from gatebot.services.conversations import ROLE_ASSISTANT, ROLE_USER, ConversationStore
from gatebot.services.exceptions import (
    AccessDenied,
    DenialReason,
    DownloadFailed,
    ExtractionEmpty,
    ExtractionError,
    ExtractionUnsupported,
    InvalidInput,
    ProviderError,
    ProviderUnavailable,
    QuotaExceeded,
    RateLimited,
    RequestLimitExceeded,
    SearchError,
    ServiceError,
    TokenLimitExceeded,
    Unauthorized,
)
from gatebot.services.media import jpeg_attachment
from gatebot.services.search import imagine_url
from gatebot.services.transport import Transport
from gatebot.services.usage import UsageLedger
from gatebot.utils.datetime import ensure_utc, next_midnight
from gatebot.utils.tokens import estimate_tokens

LINK_ONLY_RE = re.compile(r"^https?://", re.IGNORECASE)
DOCUMENT_PROMPT = "Summarize this document:\n\n{text}"
PHOTO_PROMPT = "Describe this image clearly."

FEATURE_LIMIT_FIELDS: Dict[Feature, str] = {
    Feature.SEARCH: "search_limit",
    Feature.IMAGINE: "imagine_limit",
    Feature.DOC_ANALYSIS: "doc_analysis_limit",
    Feature.IMAGE_ANALYSIS: "image_analysis_limit",
    Feature.PREMIUM: "pro_model_limit",
}

# Reply keyboard label -> hint shown instead of a model call.
MENU_HINTS: Dict[str, str] = {
    "start.keyboard.search": "hint.search",
    "start.keyboard.imagine": "hint.imagine",
    "start.keyboard.setmodel": "hint.setmodel",
    "start.keyboard.documents": "hint.documents",
}

CommandHandler = Callable[[InboundEvent], Awaitable[None]]


class RequestPipeline:
    """Processes one :class:`InboundEvent` and always answers the user.

    Session-scoped services are built per update on the session the
    middleware opened; process-wide ones come from :class:`BotServices`.
    Known failures (:class:`ServiceError`) become a localized reply. Anything
    else rolls the session back, is logged, and the user gets a generic reply.
    """

    def __init__(self, session: AsyncSession, services: BotServices, transport: Transport) -> None:
        self.session = session
        self.services = services
        self.settings = services.settings
        self.transport = transport
        self.accounts = AccountRepository(session, self.settings)
        self.access = AccessController(session, services.policy, self.settings)
        self.ledger = UsageLedger(session, self.settings)
        self.conversations = ConversationStore(session, self.settings)
        self.admin = AdminService(session, services, transport)
        self._locale: str | None = None
        self._commands: Dict[str, CommandHandler] = {
            "start": self._cmd_start,
            "help": self._cmd_help,
            "about": self._cmd_about,
            "status": self._cmd_status,
            "account": self._cmd_account,
            "clearchat": self._cmd_clearchat,
            "language": self._cmd_language,
            "setmodel": self._cmd_setmodel,
            "search": self._cmd_search,
            "imagine": self._cmd_imagine,
            "approve": self._cmd_approve,
            "remove": self._cmd_remove,
            "users": self._cmd_users,
            "public": self._cmd_public,
            "private": self._cmd_private,
            "mode": self._cmd_mode,
            "broadcast": self._cmd_broadcast,
            "usage": self._cmd_usage,
        }

    # Entry point --------------------------------------------------------

    async def handle(self, event: InboundEvent) -> None:
        bind_chat(event.chat_id)
        try:
            await self._route(event)
        except ServiceError as exc:
            logger.info("request_rejected", error=exc.__class__.__name__, detail=str(exc))
            await self._notify(event.chat_id, self.describe_error(exc))
        except Exception:
            logger.exception("request_failed", command=event.command)
            await self.session.rollback()
            await self._notify(event.chat_id, self.t("errors.generic"))

    async def _route(self, event: InboundEvent) -> None:
        if event.document is not None:
            await self.handle_document(event.chat_id, event.document)
        elif event.photo is not None:
            await self.handle_photo(event.chat_id, event.photo, caption=event.text)
        elif event.command:
            handler = self._commands.get(event.command.lower())
            if handler is None:
                raise InvalidInput("errors.unknown_command")
            await handler(event)
        elif event.text:
            await self.handle_text(event.chat_id, event.text)

    # Chat -------------------------------------------------------------

    async def handle_text(self, chat_id: str, text: str) -> str:
        """Run one chat turn and return the stored assistant reply."""

        await self.ensure_access(chat_id)
        if LINK_ONLY_RE.match(text.strip()):
            raise InvalidInput("errors.links_blocked")
        self.services.rate_limiter.check_message(chat_id)

        hint = self._menu_hint(text)
        if hint is not None:
            await self.transport.send_text(chat_id, hint)
            return hint

        account = await self._account(chat_id)
        limits = self.settings.limits
        if not self.ledger.has_request_budget(account, limits.daily_request_limit):
            raise RequestLimitExceeded(limits.daily_request_limit)

        input_tokens = estimate_tokens(text)
        if not self.ledger.try_reserve_tokens(account, input_tokens, limits.daily_token_limit):
            raise TokenLimitExceeded(limits.daily_token_limit)

        history = self.conversations.recent_context(account, limits.history_messages)
        await self.transport.send_typing(chat_id)
        result = await self.services.router.dispatch(
            GenerationRequest(
                account=account,
                user_text=text,
                max_tokens=limits.max_reply_tokens,
                history=history,
                language=self._language(account),
                model_id=account.selected_model,
            ),
            self.ledger,
        )

        total_tokens = input_tokens + estimate_tokens(result.text)
        if not self.ledger.fits_after_response(account, total_tokens, limits.daily_token_limit):
            if result.model.premium:
                await self.ledger.release(account, Feature.PREMIUM)
            raise TokenLimitExceeded(limits.daily_token_limit, after_response=True)

        await self.conversations.append_turns(account, [(ROLE_USER, text), (ROLE_ASSISTANT, result.text)])
        await self.ledger.commit(account, total_tokens)
        logger.info(
            "chat_reply_sent",
            model=result.model.id,
            tokens=total_tokens,
            requests_today=account.requests_today,
        )

        requests_left, tokens_left = self.ledger.remaining(account)
        footer = self.t("chat.footer", model=result.model.name, requests=requests_left, tokens=tokens_left)
        await self.transport.send_text(chat_id, result.text + footer)
        return result.text

    # Media --------------------------------------------------------------

    async def handle_document(self, chat_id: str, document: DocumentRef) -> str:
        await self.ensure_access(chat_id)
        self.services.rate_limiter.check_media(chat_id)
        extension = document.extension
        if not self.services.extractor.supports(extension):
            raise ExtractionUnsupported(extension or "unknown")

        account = await self._account(chat_id)
        limits = self.settings.limits
        async with self._feature_unit(account, Feature.DOC_ANALYSIS):
            await self.transport.send_typing(chat_id)
            data = await self.transport.download(document.file_id)
            text = await self.services.extractor.extract(data, extension, max_chars=limits.doc_char_limit)
            summary = await self.services.router.analyze(
                DOCUMENT_PROMPT.format(text=text), max_tokens=limits.max_reply_tokens
            )
        logger.info("document_summarized", extension=extension, chars=len(text))
        await self.transport.send_text(
            chat_id, self.t("document.summary", file_name=document.file_name or "document", summary=summary)
        )
        return summary

    async def handle_photo(self, chat_id: str, photo: PhotoRef, *, caption: str | None = None) -> str:
        await self.ensure_access(chat_id)
        self.services.rate_limiter.check_media(chat_id)

        account = await self._account(chat_id)
        async with self._feature_unit(account, Feature.IMAGE_ANALYSIS):
            await self.transport.send_typing(chat_id)
            raw = await self.transport.download(photo.file_id)
            attachment = jpeg_attachment(raw, source=photo.file_id)
            description = await self.services.router.analyze(
                (caption or "").strip() or PHOTO_PROMPT,
                max_tokens=self.settings.limits.max_reply_tokens,
                attachments=[attachment],
            )
        logger.info("photo_described", bytes=len(raw))
        await self.transport.send_text(chat_id, self.t("photo.description", description=description))
        return description

    # Search and image generation ---------------------------------------

    async def search(self, chat_id: str, query: str) -> None:
        await self.ensure_access(chat_id)
        query = query.strip()
        if not query:
            raise InvalidInput("errors.empty_query")
        self.services.rate_limiter.check_command(chat_id, "search")

        account = await self._account(chat_id)
        async with self._feature_unit(account, Feature.SEARCH):
            await self.transport.send_typing(chat_id)
            hits = await self.services.search.search(query, self.settings.search.results)

        if not hits:
            await self.transport.send_text(chat_id, self.t("search.empty"))
            return
        lines = [self.t("search.header", query=query), ""]
        for index, hit in enumerate(hits, start=1):
            lines.append(f"{index}. {hit.title}\n{hit.link}")
            if hit.snippet:
                lines.append(hit.snippet)
            lines.append("")
        await self.transport.send_text(chat_id, "\n".join(lines).strip(), disable_web_page_preview=True)

    async def imagine(self, chat_id: str, prompt: str) -> str:
        await self.ensure_access(chat_id)
        prompt = prompt.strip()
        if not prompt:
            raise InvalidInput("errors.empty_query")
        self.services.rate_limiter.check_command(chat_id, "imagine")

        account = await self._account(chat_id)
        url = imagine_url(prompt, self.settings.search)
        async with self._feature_unit(account, Feature.IMAGINE):
            try:
                await self.transport.send_photo(chat_id, url, caption=self.t("imagine.caption", prompt=prompt))
            except ServiceError:
                raise
            except Exception as exc:
                logger.warning("imagine_delivery_failed", error=str(exc))
                raise ProviderError("imagine", str(exc)) from exc
        return url

    # Account surfaces ---------------------------------------------------

    async def account_summary(self, chat_id: str) -> AccountSummary:
        await self.ensure_access(chat_id)
        account = await self._account(chat_id)
        self.ledger.roll_over(account)
        limits = self.settings.limits
        return AccountSummary(
            chat_id=account.chat_id,
            requests_used=account.requests_today,
            request_limit=limits.daily_request_limit,
            tokens_used=account.tokens_used_today,
            token_limit=limits.daily_token_limit,
            max_reply_tokens=limits.max_reply_tokens,
            language=self._language(account),
            model_name=self.services.router.resolve(account.selected_model).name,
            resets_at=next_midnight(self.settings.timezone),
            feature_usage=await self.ledger.feature_usage(account),
            feature_limits={feature.value: self.feature_limit(feature) for feature in Feature},
            approved_until=ensure_utc(account.approved_until) if account.approved_until else None,
        )

    async def access_status(self, chat_id: str) -> tuple[AccessDecision, datetime | None]:
        decision = await self.access.authorize(chat_id)
        account = await self.accounts.get(chat_id)
        until = ensure_utc(account.approved_until) if account and account.approved_until else None
        return decision, until

    async def clear_history(self, chat_id: str) -> bool:
        await self.ensure_access(chat_id)
        cleared = await self.conversations.clear(chat_id)
        if cleared:
            logger.info("history_cleared")
        return cleared

    async def select_model(self, chat_id: str, model_id: str) -> ModelConfig:
        await self.ensure_access(chat_id)
        router = self.services.router
        if not router.is_known(model_id):
            raise InvalidInput("errors.unknown_model")
        config = router.resolve(model_id)
        if not config.available:
            raise ProviderUnavailable(config.id)
        account = await self._account(chat_id)
        account.selected_model = config.id
        await self.session.flush()
        logger.info("model_selected", model=config.id)
        return config

    async def select_language(self, chat_id: str, code: str) -> str:
        await self.ensure_access(chat_id)
        code = code.strip().lower()
        if code not in LANGUAGES:
            raise InvalidInput("errors.unknown_language")
        account = await self._account(chat_id)
        account.language_code = code
        await self.session.flush()
        logger.info("language_selected", language=code)
        return code

    def available_models(self) -> list[ModelConfig]:
        return self.services.router.available_models()

    # Gates and helpers --------------------------------------------------

    async def ensure_access(self, chat_id: str) -> None:
        if not await self.services.membership.is_member(chat_id):
            raise AccessDenied(DenialReason.NOT_MEMBER)
        await self.access.check(chat_id)

    def feature_limit(self, feature: Feature) -> int:
        return getattr(self.settings.limits, FEATURE_LIMIT_FIELDS[feature])

    @asynccontextmanager
    async def _feature_unit(self, account: UserAccount, feature: Feature) -> AsyncIterator[None]:
        limit = self.feature_limit(feature)
        if not await self.ledger.try_consume(account, feature, limit):
            raise QuotaExceeded(feature.value, limit)
        try:
            yield
        except Exception:
            await self.ledger.release(account, feature)
            raise

    async def _account(self, chat_id: str) -> UserAccount:
        account = await self.accounts.get_or_create(chat_id)
        self._locale = account.language_code
        return account

    def _language(self, account: UserAccount) -> str:
        return account.language_code or self.settings.default_language

    def _menu_hint(self, text: str) -> str | None:
        label = text.strip()
        for label_key, hint_key in MENU_HINTS.items():
            if label == self.t(label_key):
                return self.t(hint_key)
        return None

    def t(self, key: str, **kwargs) -> str:
        return self.services.i18n.gettext(key, locale=self._locale, **kwargs)

    def describe_error(self, exc: ServiceError) -> str:
        if isinstance(exc, AccessDenied):
            if exc.reason is DenialReason.NOT_MEMBER:
                url = self.services.membership.join_url()
                if url:
                    return self.t("errors.not_member_link", url=url)
            return self.t(f"errors.{exc.reason.value}")
        if isinstance(exc, Unauthorized):
            return self.t("errors.unauthorized")
        if isinstance(exc, RateLimited):
            if exc.domain == "media":
                return self.t("errors.cooldown_media", seconds=exc.retry_after)
            if exc.domain == "command":
                return self.t("errors.cooldown_command", seconds=exc.retry_after, command=exc.command)
            return self.t("errors.cooldown", seconds=exc.retry_after)
        if isinstance(exc, QuotaExceeded):
            return self.t(f"errors.quota.{exc.feature}", limit=exc.limit)
        if isinstance(exc, RequestLimitExceeded):
            return self.t("errors.request_limit", limit=exc.limit)
        if isinstance(exc, TokenLimitExceeded):
            key = "errors.token_limit_after" if exc.after_response else "errors.token_limit"
            return self.t(key, limit=exc.limit)
        if isinstance(exc, ProviderUnavailable):
            return self.t("errors.provider_unavailable")
        if isinstance(exc, ProviderError):
            return self.t("errors.provider")
        if isinstance(exc, ExtractionUnsupported):
            return self.t("errors.extraction_unsupported")
        if isinstance(exc, ExtractionEmpty):
            return self.t("errors.extraction_empty")
        if isinstance(exc, ExtractionError):
            return self.t("errors.extraction")
        if isinstance(exc, DownloadFailed):
            return self.t("errors.download")
        if isinstance(exc, SearchError):
            return self.t("errors.search")
        if isinstance(exc, InvalidInput):
            return self.t(exc.key)
        return self.t("errors.generic")

    async def _notify(self, chat_id: str, text: str) -> None:
        try:
            await self.transport.send_text(chat_id, text)
        except Exception:
            logger.exception("reply_delivery_failed")

    # User commands ------------------------------------------------------

    async def _cmd_start(self, event: InboundEvent) -> None:
        buttons = [self.t(key) for key in MENU_HINTS]
        greeting = self.t("start.greeting", name=event.first_name or "there")
        await self.transport.send_menu(event.chat_id, greeting, buttons)

    async def _cmd_help(self, event: InboundEvent) -> None:
        text = self.t("help.text")
        if self.services.policy.is_admin(event.chat_id):
            text = f"{text}\n\n{self.t('help.admin')}"
        await self.transport.send_text(event.chat_id, text)

    async def _cmd_about(self, event: InboundEvent) -> None:
        await self.transport.send_text(event.chat_id, self.t("about.text"))

    async def _cmd_status(self, event: InboundEvent) -> None:
        decision, until = await self.access_status(event.chat_id)
        lines = []
        if self.services.policy.public_mode:
            lines.append(self.t("status.public"))
        if decision.allowed and until is not None:
            lines.append(self.t("status.allowed_until", until=until.strftime("%Y-%m-%d %H:%M")))
        elif decision.allowed:
            lines.append(self.t("status.allowed"))
        else:
            lines.append(self.t("status.denied"))
        if self.settings.support_contact:
            lines.append(self.t("status.contact", contact=self.settings.support_contact))
        await self.transport.send_text(event.chat_id, "\n".join(lines))

    async def _cmd_account(self, event: InboundEvent) -> None:
        summary = await self.account_summary(event.chat_id)
        lines = [
            self.t("account.header", chat_id=summary.chat_id),
            self.t("account.requests", used=summary.requests_used, limit=summary.request_limit),
            self.t("account.tokens", used=summary.tokens_used, limit=summary.token_limit),
            self.t("account.reply_tokens", value=summary.max_reply_tokens),
            self.t("account.model", model=summary.model_name),
            self.t("account.language", language=language_name(summary.language)),
            "",
            self.t("account.features"),
        ]
        for feature, used in summary.feature_usage.items():
            limit = summary.feature_limits[feature]
            lines.append(self.t("account.feature_line", feature=feature, used=used, limit=limit))
        lines.append("")
        lines.append(self.t("account.resets_at", resets_at=summary.resets_at.strftime("%Y-%m-%d %H:%M %Z")))
        if summary.approved_until is not None:
            lines.append(self.t("account.approved_until", until=summary.approved_until.strftime("%Y-%m-%d %H:%M")))
        await self.transport.send_text(event.chat_id, "\n".join(lines))

    async def _cmd_clearchat(self, event: InboundEvent) -> None:
        cleared = await self.clear_history(event.chat_id)
        key = "chat.history_cleared" if cleared else "chat.history_missing"
        await self.transport.send_text(event.chat_id, self.t(key))

    async def _cmd_language(self, event: InboundEvent) -> None:
        if event.args and event.args.strip():
            code = await self.select_language(event.chat_id, event.args)
            await self.transport.send_text(event.chat_id, self.t("language.updated", language=language_name(code)))
            return
        await self.ensure_access(event.chat_id)
        choices = [(name, f"language:{code}") for code, name in LANGUAGES.items()]
        await self.transport.send_choices(event.chat_id, self.t("language.prompt"), choices)

    async def _cmd_setmodel(self, event: InboundEvent) -> None:
        if event.args and event.args.strip():
            config = await self.select_model(event.chat_id, event.args.strip())
            await self.transport.send_text(event.chat_id, self.t("model.updated", model=config.name))
            return
        await self.ensure_access(event.chat_id)
        models = self.available_models()
        if not models:
            await self.transport.send_text(event.chat_id, self.t("model.none_available"))
            return
        choices = [(config.name, f"setmodel:{config.id}") for config in models]
        await self.transport.send_choices(event.chat_id, self.t("model.prompt"), choices)

    async def _cmd_search(self, event: InboundEvent) -> None:
        await self.search(event.chat_id, event.args or "")

    async def _cmd_imagine(self, event: InboundEvent) -> None:
        await self.imagine(event.chat_id, event.args or "")

    # Admin commands -----------------------------------------------------

    async def _cmd_approve(self, event: InboundEvent) -> None:
        self.admin.ensure_admin(event.chat_id)
        parts = (event.args or "").split()
        target = _parse_chat_id(parts[0] if parts else "")
        hours: float | None = None
        if len(parts) > 1:
            try:
                hours = float(parts[1])
            except ValueError as exc:
                raise InvalidInput("admin.invalid_hours") from exc
            if hours <= 0:
                raise InvalidInput("admin.invalid_hours")
        account = await self.admin.approve(event.chat_id, target, hours)
        assert account.approved_until is not None
        until = ensure_utc(account.approved_until).strftime("%Y-%m-%d %H:%M")
        await self.transport.send_text(event.chat_id, self.t("admin.approved", chat_id=target, until=until))
        granted = hours if hours is not None else self.settings.limits.approval_expiry_hours
        await self._notify(target, self.t("admin.approved_notice", hours=f"{granted:g}"))

    async def _cmd_remove(self, event: InboundEvent) -> None:
        self.admin.ensure_admin(event.chat_id)
        target = _parse_chat_id(event.args or "")
        removed = await self.admin.revoke(event.chat_id, target)
        key = "admin.revoked" if removed else "admin.revoke_missing"
        await self.transport.send_text(event.chat_id, self.t(key, chat_id=target))

    async def _cmd_users(self, event: InboundEvent) -> None:
        accounts = await self.admin.list_approved(event.chat_id)
        if not accounts:
            await self.transport.send_text(event.chat_id, self.t("admin.users_empty"))
            return
        lines = [self.t("admin.users_header")]
        for account in accounts:
            assert account.approved_until is not None
            until = ensure_utc(account.approved_until).strftime("%Y-%m-%d %H:%M")
            lines.append(self.t("admin.users_line", chat_id=account.chat_id, until=until))
        await self.transport.send_text(event.chat_id, "\n".join(lines))

    async def _cmd_public(self, event: InboundEvent) -> None:
        self.admin.set_public_mode(event.chat_id, True)
        await self.transport.send_text(event.chat_id, self.t("admin.set_public"))

    async def _cmd_private(self, event: InboundEvent) -> None:
        self.admin.set_public_mode(event.chat_id, False)
        await self.transport.send_text(event.chat_id, self.t("admin.set_private"))

    async def _cmd_mode(self, event: InboundEvent) -> None:
        public = self.admin.get_public_mode(event.chat_id)
        await self.transport.send_text(event.chat_id, self.t("admin.mode_public" if public else "admin.mode_private"))

    async def _cmd_broadcast(self, event: InboundEvent) -> None:
        self.admin.ensure_admin(event.chat_id)
        text = (event.args or "").strip()
        if not text:
            raise InvalidInput("admin.empty_broadcast")
        result = await self.admin.broadcast(event.chat_id, text)
        await self.transport.send_text(
            event.chat_id, self.t("admin.broadcast_done", sent=result.sent, failed=result.failed)
        )

    async def _cmd_usage(self, event: InboundEvent) -> None:
        report = await self.admin.usage_report(event.chat_id)
        active = [row for row in report.rows if row.requests_today or any(row.feature_usage.values())]
        if not active:
            await self.transport.send_text(event.chat_id, self.t("admin.usage_empty"))
            return
        lines = [self.t("admin.usage_header", day=report.day.isoformat())]
        for row in active:
            used = ", ".join(f"{name}={count}" for name, count in row.feature_usage.items() if count)
            lines.append(
                self.t(
                    "admin.usage_line",
                    chat_id=row.chat_id,
                    requests=row.requests_today,
                    tokens=row.tokens_used_today,
                    features=f" ({used})" if used else "",
                )
            )
        await self.transport.send_text(event.chat_id, "\n".join(lines))


def _parse_chat_id(raw: str) -> str:
    value = raw.strip()
    if not value.lstrip("-").isdigit():
        raise InvalidInput("admin.invalid_id")
    return value


__all__ = ["RequestPipeline"]
