"""Catalog resolution, premium caps and provider dispatch."""

from __future__ import annotations

import asyncio

import pytest
from pydantic_ai import BinaryContent
from pydantic_ai.models.openai import OpenAIChatModel

from conftest import FakeGenerator, make_settings
from gatebot.agents.model_factory import MODEL_BUILDERS, build_model, register_model_builder
from gatebot.agents.router import GenerationRequest, ModelRouter, build_prompt
from gatebot.config import LLMSettings, ModelEntrySettings
from gatebot.domain.models import Feature
from gatebot.services.accounts import AccountRepository
from gatebot.services.exceptions import PremiumLimitReached, ProviderError, ProviderUnavailable
from gatebot.services.usage import UsageLedger


class SlowGenerator:
    async def generate(self, prompt, max_tokens):
        await asyncio.sleep(1)
        return "late"


def _router(settings, generators):
    return ModelRouter(settings, generator_factory=lambda config: generators.setdefault(config.id, FakeGenerator()))


async def _request(session, settings, model_id=None, **kwargs):
    account = await AccountRepository(session, settings).get_or_create("9")
    return GenerationRequest(account=account, user_text="hello", max_tokens=50, model_id=model_id, **kwargs)


def test_catalog_marks_unconfigured_providers_unavailable():
    router = _router(make_settings(), {})

    assert router.resolve("gemini").available is True
    assert router.resolve("gemini_pro").premium is True
    assert router.resolve("openai").available is False
    assert router.resolve("claude").provider == "anthropic"
    assert {config.id for config in router.available_models()} == {
        "gemini",
        "gemini_flash1",
        "gemini_flash2",
        "gemini_flash3",
        "gemini_pro",
    }


def test_resolve_unknown_id_falls_back_to_default():
    router = _router(make_settings(), {})
    assert router.resolve("does-not-exist").id == "gemini"
    assert router.resolve(None).id == "gemini"
    assert router.is_known("does-not-exist") is False


def test_router_rejects_default_outside_catalog():
    settings = make_settings()
    settings.llm.default_model = "missing"
    with pytest.raises(ValueError):
        ModelRouter(settings, generator_factory=lambda config: FakeGenerator())


def test_duplicate_catalog_ids_rejected():
    with pytest.raises(ValueError):
        LLMSettings(
            models=[
                ModelEntrySettings(id="a", provider="gemini", model="m1"),
                ModelEntrySettings(id="a", provider="openai", model="m2"),
            ]
        )


def test_build_prompt_includes_language_history_and_turn():
    prompt = build_prompt("es", ["user: hola", "assistant: hola!"], "que tal?")
    assert prompt == (
        "Answer in Spanish (es)\n\n"
        "Conversation so far:\n"
        "user: hola\n"
        "assistant: hola!\n\n"
        "User: que tal?"
    )
    assert build_prompt("xx", [], "hi") == "Answer in English (xx)\n\nUser: hi"


@pytest.mark.asyncio
async def test_dispatch_forwards_prompt_and_output_limit(session):
    settings = make_settings()
    generators = {}
    router = _router(settings, generators)
    request = await _request(session, settings, history=["user: earlier"], language="fr")

    result = await router.dispatch(request, UsageLedger(session, settings))

    assert result.text == "hi there"
    assert result.model.id == "gemini"
    prompt, max_tokens = generators["gemini"].calls[0]
    assert max_tokens == 50
    assert prompt.startswith("Answer in French (fr)")
    assert "user: earlier" in prompt


@pytest.mark.asyncio
async def test_dispatch_fails_fast_for_unavailable_model(session):
    settings = make_settings()
    generators = {}
    router = _router(settings, generators)

    with pytest.raises(ProviderUnavailable):
        await router.dispatch(await _request(session, settings, "openai"), UsageLedger(session, settings))
    assert generators == {}


@pytest.mark.asyncio
async def test_premium_model_cap(session):
    settings = make_settings(pro_model_limit=1)
    router = _router(settings, {})
    ledger = UsageLedger(session, settings)
    request = await _request(session, settings, "gemini_pro")

    await router.dispatch(request, ledger)
    with pytest.raises(PremiumLimitReached) as excinfo:
        await router.dispatch(request, ledger)
    assert excinfo.value.feature == Feature.PREMIUM.value
    assert excinfo.value.limit == 1


@pytest.mark.asyncio
async def test_provider_failure_releases_premium_unit(session):
    settings = make_settings(pro_model_limit=1)
    generators = {"gemini_pro": FakeGenerator(error=RuntimeError("503 overloaded"))}
    router = _router(settings, generators)
    ledger = UsageLedger(session, settings)
    request = await _request(session, settings, "gemini_pro")

    with pytest.raises(ProviderError) as excinfo:
        await router.dispatch(request, ledger)

    assert "503" in excinfo.value.cause
    assert (await ledger.feature_usage(request.account))[Feature.PREMIUM.value] == 0


@pytest.mark.asyncio
async def test_empty_output_is_provider_error(session):
    settings = make_settings()
    router = _router(settings, {"gemini": FakeGenerator(reply="   ")})

    with pytest.raises(ProviderError):
        await router.dispatch(await _request(session, settings), UsageLedger(session, settings))


@pytest.mark.asyncio
async def test_provider_call_is_bounded_by_timeout(session):
    settings = make_settings()
    settings.llm = settings.llm.model_copy(update={"request_timeout_seconds": 0.05})
    router = ModelRouter(settings, generator_factory=lambda config: SlowGenerator())

    with pytest.raises(ProviderError) as excinfo:
        await router.dispatch(await _request(session, settings), UsageLedger(session, settings))
    assert excinfo.value.cause == "timeout"


@pytest.mark.asyncio
async def test_analyze_uses_analysis_model_with_attachments():
    settings = make_settings()
    generators = {}
    router = _router(settings, generators)
    image = BinaryContent(data=b"\xff\xd8\xff", media_type="image/jpeg")

    text = await router.analyze("Describe this image clearly.", max_tokens=64, attachments=[image])

    assert text == "hi there"
    prompt, max_tokens = generators["gemini_flash3"].calls[0]
    assert prompt == ["Describe this image clearly.", image]
    assert max_tokens == 64


def test_build_model_uses_openai_compatible_endpoint_for_gemini():
    settings = make_settings()
    router = _router(settings, {})

    model = build_model(router.resolve("gemini"), settings.llm)

    assert isinstance(model, OpenAIChatModel)
    assert model.model_name == "gemini-2.5-flash"


def test_build_model_requires_credentials():
    settings = make_settings()
    router = _router(settings, {})
    with pytest.raises(ValueError):
        build_model(router.resolve("openai"), settings.llm)


def test_register_model_builder(monkeypatch):
    settings = make_settings()
    router = _router(settings, {})
    sentinel = object()
    monkeypatch.setitem(MODEL_BUILDERS, "gemini", MODEL_BUILDERS["gemini"])
    register_model_builder("Gemini", lambda config, llm: sentinel)

    assert build_model(router.resolve("gemini"), settings.llm) is sentinel
