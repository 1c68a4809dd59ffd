"""Uniform text-generation capability over pydantic-ai agents."""

from __future__ import annotations

from typing import Protocol, Sequence

from pydantic_ai import Agent
from pydantic_ai.messages import UserContent
from pydantic_ai.settings import ModelSettings

from gatebot.agents.model_factory import build_model
from gatebot.config import LLMSettings
from gatebot.domain.models import ModelConfig

Prompt = str | Sequence[UserContent]


class TextGenerator(Protocol):
    async def generate(self, prompt: Prompt, max_tokens: int) -> str: ...


class AgentGenerator:
    """One pydantic-ai agent bound to one catalog entry."""

    __slots__ = ("config", "agent")

    def __init__(self, config: ModelConfig, agent: Agent[None, str]) -> None:
        self.config = config
        self.agent = agent

    @classmethod
    def build(cls, config: ModelConfig, llm_settings: LLMSettings) -> "AgentGenerator":
        agent = Agent(
            model=build_model(config, llm_settings),
            instructions=llm_settings.system_prompt,
            name=config.id,
        )
        return cls(config, agent)

    async def generate(self, prompt: Prompt, max_tokens: int) -> str:
        result = await self.agent.run(prompt, model_settings=ModelSettings(max_tokens=max_tokens))
        return result.output


def default_generator_factory(llm_settings: LLMSettings):
    def factory(config: ModelConfig) -> TextGenerator:
        return AgentGenerator.build(config, llm_settings)

    return factory


__all__ = ["AgentGenerator", "Prompt", "TextGenerator", "default_generator_factory"]
