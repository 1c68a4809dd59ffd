"""Formatting helpers for outbound Telegram text."""

from __future__ import annotations

TELEGRAM_CHUNK_LIMIT = 4000


def chunk_text(text: str, limit: int = TELEGRAM_CHUNK_LIMIT) -> list[str]:
    """Split ``text`` into ordered pieces of at most ``limit`` characters.

    Breaks on the last newline inside the window when there is one, then on
    the last space, and hard-cuts otherwise.
    """

    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(text) <= limit:
        return [text] if text else []

    chunks: list[str] = []
    rest = text
    while len(rest) > limit:
        window = rest[:limit]
        cut = window.rfind("\n")
        if cut <= 0:
            cut = window.rfind(" ")
        if cut <= 0:
            cut = limit
        chunks.append(rest[:cut])
        rest = rest[cut:].lstrip("\n ")
    if rest:
        chunks.append(rest)
    return chunks


__all__ = ["TELEGRAM_CHUNK_LIMIT", "chunk_text"]
