"""Web search (Serper) and image generation links (Pollinations)."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from gatebot.config import SearchSettings
from gatebot.domain.models import SearchHit
from gatebot.logging import logger
from gatebot.services.exceptions import SearchError
from gatebot.utils.retry import retry_async


class SearchService:
    def __init__(self, http_client: httpx.AsyncClient, settings: SearchSettings | None = None) -> None:
        self._client = http_client
        self._settings = settings or SearchSettings()

    @property
    def configured(self) -> bool:
        key = self._settings.serper_api_key
        return key is not None and bool(key.get_secret_value().strip())

    async def search(self, query: str, limit: int | None = None) -> list[SearchHit]:
        query = query.strip()
        if not query:
            raise SearchError("Search query must not be empty.")
        if not self.configured:
            raise SearchError("Serper API key is not configured.")

        assert self._settings.serper_api_key is not None
        headers = {
            "X-API-KEY": self._settings.serper_api_key.get_secret_value(),
            "Content-Type": "application/json",
        }

        async def _request():
            response = await self._client.post(
                str(self._settings.serper_url),
                json={"q": query},
                headers=headers,
                timeout=self._settings.request_timeout_seconds,
            )
            response.raise_for_status()
            return response

        try:
            response = await retry_async(
                _request,
                retry_on=(httpx.TransportError,),
                max_attempts=3,
                base_delay=0.5,
                logger=logger,
                operation_name="serper_request",
            )
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code if exc.response is not None else "unknown"
            raise SearchError(f"Serper request failed ({status_code})") from exc
        except httpx.RequestError as exc:
            raise SearchError(f"Serper request failed: {exc}") from exc

        data = response.json()
        return self._parse_hits(data, limit or self._settings.results)

    @staticmethod
    def _parse_hits(data: dict[str, Any], limit: int) -> list[SearchHit]:
        hits: list[SearchHit] = []
        for item in data.get("organic", []) or []:
            link = item.get("link")
            if not link:
                continue
            hits.append(
                SearchHit(
                    title=item.get("title") or link,
                    link=link,
                    snippet=item.get("snippet") or "",
                )
            )
            if len(hits) >= limit:
                break
        return hits


def imagine_url(prompt: str, settings: SearchSettings | None = None) -> str:
    base = str((settings or SearchSettings()).image_base_url)
    if not base.endswith("/"):
        base += "/"
    return f"{base}{quote(prompt.strip(), safe='')}"


__all__ = ["SearchService", "imagine_url"]
