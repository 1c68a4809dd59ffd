"""Reply languages users can pick with /language."""

from __future__ import annotations

LANGUAGES: dict[str, str] = {
    "en": "English",
    "hi": "Hindi",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ru": "Russian",
    "ar": "Arabic",
}


def language_name(code: str) -> str:
    return LANGUAGES.get(code, LANGUAGES["en"])


__all__ = ["LANGUAGES", "language_name"]
