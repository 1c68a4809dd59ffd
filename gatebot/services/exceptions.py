"""Domain-specific exceptions.

Every failure the request pipeline knows how to explain to a user derives
from :class:`ServiceError`; anything else is treated as unexpected.
"""

from __future__ import annotations

from enum import StrEnum


class DenialReason(StrEnum):
    NOT_MEMBER = "not_member"
    NOT_APPROVED = "not_approved"
    EXPIRED = "expired"


class ServiceError(Exception):
    pass


class AccessDenied(ServiceError):
    def __init__(self, reason: DenialReason) -> None:
        super().__init__(f"Access denied: {reason}")
        self.reason = reason


class Unauthorized(ServiceError):
    pass


class RateLimited(ServiceError):
    def __init__(self, retry_after: int, domain: str, command: str | None = None) -> None:
        super().__init__(f"Cooldown active for {domain}: retry in {retry_after}s")
        self.retry_after = retry_after
        self.domain = domain
        self.command = command


class QuotaExceeded(ServiceError):
    def __init__(self, feature: str, limit: int) -> None:
        super().__init__(f"Daily {feature} limit reached ({limit})")
        self.feature = feature
        self.limit = limit


class PremiumLimitReached(QuotaExceeded):
    pass


class RequestLimitExceeded(ServiceError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Daily request limit reached ({limit})")
        self.limit = limit


class TokenLimitExceeded(ServiceError):
    def __init__(self, limit: int, *, after_response: bool = False) -> None:
        super().__init__(f"Daily token limit reached ({limit})")
        self.limit = limit
        self.after_response = after_response


class ProviderUnavailable(ServiceError):
    def __init__(self, model_id: str) -> None:
        super().__init__(f"Model '{model_id}' is not available")
        self.model_id = model_id


class ProviderError(ServiceError):
    def __init__(self, model_id: str, cause: str) -> None:
        super().__init__(f"Provider call for '{model_id}' failed: {cause}")
        self.model_id = model_id
        self.cause = cause


class ExtractionError(ServiceError):
    pass


class ExtractionUnsupported(ExtractionError):
    pass


class ExtractionEmpty(ExtractionError):
    pass


class DownloadFailed(ServiceError):
    def __init__(self, status: int | str | None = None) -> None:
        super().__init__(f"Download failed: {status}")
        self.status = status


class SearchError(ServiceError):
    pass


class InvalidInput(ServiceError):
    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key
