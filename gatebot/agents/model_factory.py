"""Helpers for building provider-specific pydantic-ai models."""

from __future__ import annotations

from typing import Callable, Dict

from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.providers.openai import OpenAIProvider

from gatebot.config import LLMSettings
from gatebot.domain.models import ModelConfig

ModelBuilder = Callable[[ModelConfig, LLMSettings], Model]


def _secret(llm_settings: LLMSettings, provider: str) -> str:
    credentials = llm_settings.credentials_for(provider)
    if not credentials.configured:
        raise ValueError(
            f"Provider '{provider}' requires an API key. Configure BOT_LLM__{provider.upper()}__API_KEY."
        )
    assert credentials.api_key is not None
    return credentials.api_key.get_secret_value()


def _build_gemini(config: ModelConfig, llm_settings: LLMSettings) -> Model:
    # Gemini is reached through its OpenAI-compatible endpoint.
    provider = OpenAIProvider(
        api_key=_secret(llm_settings, "gemini"),
        base_url=str(llm_settings.gemini.base_url) if llm_settings.gemini.base_url else None,
    )
    return OpenAIChatModel(config.upstream, provider=provider)


def _build_openai(config: ModelConfig, llm_settings: LLMSettings) -> Model:
    base_url = llm_settings.openai.base_url
    provider = OpenAIProvider(
        api_key=_secret(llm_settings, "openai"),
        base_url=str(base_url) if base_url else None,
    )
    return OpenAIChatModel(config.upstream, provider=provider)


def _build_anthropic(config: ModelConfig, llm_settings: LLMSettings) -> Model:
    provider = AnthropicProvider(api_key=_secret(llm_settings, "anthropic"))
    return AnthropicModel(config.upstream, provider=provider)


MODEL_BUILDERS: Dict[str, ModelBuilder] = {
    "gemini": _build_gemini,
    "openai": _build_openai,
    "anthropic": _build_anthropic,
}


def register_model_builder(provider: str, builder: ModelBuilder) -> None:
    MODEL_BUILDERS[provider.lower()] = builder


def build_model(config: ModelConfig, llm_settings: LLMSettings) -> Model:
    try:
        builder = MODEL_BUILDERS[config.provider]
    except KeyError as exc:
        raise ValueError(f"No model builder registered for provider '{config.provider}'.") from exc
    return builder(config, llm_settings)


__all__ = ["MODEL_BUILDERS", "ModelBuilder", "build_model", "register_model_builder"]
