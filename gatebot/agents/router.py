"""Model catalog and dispatch to provider generators."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, Sequence

from pydantic_ai.messages import UserContent

from gatebot.agents.providers import Prompt, TextGenerator, default_generator_factory
from gatebot.config import BotSettings, get_settings
from gatebot.db.models.core import UserAccount
from gatebot.domain.models import Feature, ModelConfig
from gatebot.i18n.languages import language_name
from gatebot.logging import logger
from gatebot.services.exceptions import PremiumLimitReached, ProviderError, ProviderUnavailable
from gatebot.services.usage import UsageLedger

GeneratorFactory = Callable[[ModelConfig], TextGenerator]


@dataclass(slots=True)
class GenerationRequest:
    account: UserAccount
    user_text: str
    max_tokens: int
    history: Sequence[str] = ()
    language: str = "en"
    model_id: str | None = None

    def prompt(self) -> str:
        return build_prompt(self.language, self.history, self.user_text)


@dataclass(slots=True)
class GenerationResult:
    text: str
    model: ModelConfig


def build_prompt(language: str, history: Sequence[str], user_text: str) -> str:
    lines = [f"Answer in {language_name(language)} ({language})", ""]
    if history:
        lines.append("Conversation so far:")
        lines.extend(history)
        lines.append("")
    lines.append(f"User: {user_text}")
    return "\n".join(lines)


class ModelRouter:
    """Resolves catalog ids and forwards prompts to the matching provider.

    Entries whose provider has no credentials stay in the catalog flagged
    unavailable; selecting or dispatching to them raises ProviderUnavailable.
    """

    def __init__(
        self,
        settings: BotSettings | None = None,
        generator_factory: GeneratorFactory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._factory = generator_factory or default_generator_factory(self.settings.llm)
        self._generators: Dict[str, TextGenerator] = {}
        self.catalog: Dict[str, ModelConfig] = self._build_catalog()
        self.default_model_id = self.settings.llm.default_model
        if self.default_model_id not in self.catalog:
            raise ValueError(f"Default model '{self.default_model_id}' is not in the catalog.")

    def _build_catalog(self) -> Dict[str, ModelConfig]:
        llm = self.settings.llm
        catalog: Dict[str, ModelConfig] = {}
        for entry in llm.models:
            catalog[entry.id] = ModelConfig(
                id=entry.id,
                name=entry.name or entry.id,
                provider=entry.provider,
                upstream=entry.model,
                available=llm.credentials_for(entry.provider).configured,
                premium=entry.premium,
            )
        return catalog

    def resolve(self, model_id: str | None) -> ModelConfig:
        """Return the entry for ``model_id``, falling back to the default for unknown ids."""

        if model_id and model_id in self.catalog:
            return self.catalog[model_id]
        return self.catalog[self.default_model_id]

    def is_known(self, model_id: str) -> bool:
        return model_id in self.catalog

    def available_models(self) -> list[ModelConfig]:
        return [config for config in self.catalog.values() if config.available]

    def generator_for(self, config: ModelConfig) -> TextGenerator:
        generator = self._generators.get(config.id)
        if generator is None:
            generator = self._factory(config)
            self._generators[config.id] = generator
        return generator

    async def dispatch(self, request: GenerationRequest, ledger: UsageLedger) -> GenerationResult:
        config = self.resolve(request.model_id)
        if not config.available:
            raise ProviderUnavailable(config.id)

        premium_limit = self.settings.limits.pro_model_limit
        if config.premium and not await ledger.try_consume(request.account, Feature.PREMIUM, premium_limit):
            raise PremiumLimitReached(Feature.PREMIUM.value, premium_limit)

        try:
            text = await self._call(config, request.prompt(), request.max_tokens)
        except ProviderError:
            if config.premium:
                await ledger.release(request.account, Feature.PREMIUM)
            raise
        return GenerationResult(text=text, model=config)

    async def analyze(
        self, prompt: str, *, max_tokens: int, attachments: Sequence[UserContent] = ()
    ) -> str:
        """Run a one-off prompt (document summary, image description) on the analysis model."""

        config = self.resolve(self.settings.llm.analysis_model)
        if not config.available:
            config = self.resolve(None)
        if not config.available:
            raise ProviderUnavailable(config.id)
        payload: Prompt = [prompt, *attachments] if attachments else prompt
        return await self._call(config, payload, max_tokens)

    async def _call(self, config: ModelConfig, prompt: Prompt, max_tokens: int) -> str:
        generator = self.generator_for(config)
        timeout = self.settings.llm.request_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                text = await generator.generate(prompt, max_tokens)
        except TimeoutError as exc:
            logger.warning("provider_timeout", model=config.id, timeout=timeout)
            raise ProviderError(config.id, "timeout") from exc
        except ProviderError:
            raise
        except Exception as exc:
            logger.warning("provider_call_failed", model=config.id, error=str(exc))
            raise ProviderError(config.id, str(exc)) from exc

        text = (text or "").strip()
        if not text:
            raise ProviderError(config.id, "empty response")
        return text


__all__ = ["GenerationRequest", "GenerationResult", "ModelRouter", "build_prompt"]
