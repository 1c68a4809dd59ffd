"""Pydantic models shared across logic/application layers."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from gatebot.services.exceptions import DenialReason


class Feature(StrEnum):
    SEARCH = "search"
    IMAGINE = "imagine"
    DOC_ANALYSIS = "doc_analysis"
    IMAGE_ANALYSIS = "image_analysis"
    PREMIUM = "premium"


class DocumentRef(BaseModel):
    file_id: str
    file_name: str = ""

    @property
    def extension(self) -> str:
        _, dot, ext = self.file_name.rpartition(".")
        return ext.lower() if dot else ""


class PhotoRef(BaseModel):
    file_id: str


class InboundEvent(BaseModel):
    """Transport-neutral view of one inbound update."""

    chat_id: str
    text: str | None = None
    document: DocumentRef | None = None
    photo: PhotoRef | None = None
    command: str | None = None
    args: str | None = None
    first_name: str | None = None


class AccessDecision(BaseModel):
    allowed: bool
    reason: DenialReason | None = None


class ModelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    provider: Literal["gemini", "openai", "anthropic"]
    upstream: str
    available: bool
    premium: bool = False


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    text: str
    timestamp: datetime


class SearchHit(BaseModel):
    title: str
    link: str
    snippet: str = ""


class AccountSummary(BaseModel):
    chat_id: str
    requests_used: int
    request_limit: int
    tokens_used: int
    token_limit: int
    max_reply_tokens: int
    language: str
    model_name: str
    resets_at: datetime
    feature_usage: dict[str, int] = Field(default_factory=dict)
    feature_limits: dict[str, int] = Field(default_factory=dict)
    approved_until: datetime | None = None


class UsageReportRow(BaseModel):
    chat_id: str
    requests_today: int
    tokens_used_today: int
    feature_usage: dict[str, int] = Field(default_factory=dict)


class UsageReport(BaseModel):
    day: date
    rows: list[UsageReportRow]


class BroadcastResult(BaseModel):
    sent: int = 0
    failed: int = 0


__all__ = [
    "AccessDecision",
    "AccountSummary",
    "BroadcastResult",
    "ConversationTurn",
    "DocumentRef",
    "Feature",
    "InboundEvent",
    "ModelConfig",
    "PhotoRef",
    "SearchHit",
    "UsageReport",
    "UsageReportRow",
]
