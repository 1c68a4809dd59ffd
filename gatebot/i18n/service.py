"""JSON message catalogues for user-facing replies."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any


class I18nService:
    """Looks up ``key`` in ``locales/<locale>.json`` and falls back to the default locale.

    Region suffixes are ignored (``pt-BR`` reads ``pt.json``). A key missing
    everywhere is returned verbatim so a typo shows up in chat instead of
    raising mid-update.
    """

    def __init__(self, *, locales_path: str | Path | None = None, default_locale: str = "en") -> None:
        self.locales_path = Path(locales_path or Path(__file__).with_name("locales"))
        self.default_locale = default_locale

    def gettext(self, key: str, *, locale: str | None = None, **kwargs: Any) -> str:
        loc = self.normalize(locale)
        text = self._catalogue(loc).get(key)
        if text is None and loc != self.default_locale:
            text = self._catalogue(self.default_locale).get(key)
        if text is None:
            return key
        return text.format(**kwargs) if kwargs else text

    def has(self, key: str) -> bool:
        return key in self._catalogue(self.default_locale)

    def normalize(self, locale: str | None) -> str:
        if not locale:
            return self.default_locale
        return locale.replace("_", "-").split("-", 1)[0].lower()

    @lru_cache(maxsize=16)
    def _catalogue(self, locale: str) -> dict[str, str]:
        file_path = self.locales_path / f"{locale}.json"
        if not file_path.exists():
            return {}
        with file_path.open("r", encoding="utf-8") as fp:
            return json.load(fp)


__all__ = ["I18nService"]
