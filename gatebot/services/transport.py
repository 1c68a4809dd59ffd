"""Outbound messaging capability the services depend on."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

# (button label, callback payload)
Choice = tuple[str, str]


class Transport(Protocol):
    async def send_text(self, chat_id: str, text: str, **options: Any) -> None: ...

    async def send_photo(self, chat_id: str, photo: str, caption: str | None = None) -> None: ...

    async def send_choices(self, chat_id: str, text: str, choices: Sequence[Choice]) -> None: ...

    async def send_menu(self, chat_id: str, text: str, buttons: Sequence[str]) -> None: ...

    async def send_typing(self, chat_id: str) -> None: ...

    async def download(self, file_id: str) -> bytes: ...


__all__ = ["Choice", "Transport"]
