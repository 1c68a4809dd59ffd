"""Utility helpers for estimating token counts."""

from __future__ import annotations

import math

TOKENS_PER_WORD = 1.3


def estimate_tokens(text: str) -> int:
    """Approximate tokens as 1.3 per whitespace-delimited word.

    This is a budgeting heuristic, not a tokenizer; providers will report
    different numbers and nothing relies on the two agreeing.
    """

    if not text:
        return 0
    words = len(text.split())
    return math.ceil(words * TOKENS_PER_WORD)


__all__ = ["TOKENS_PER_WORD", "estimate_tokens"]
