from __future__ import annotations

from gatebot.utils.tokens import estimate_tokens


def test_estimate_tokens_counts_words():
    assert estimate_tokens("hello") == 2
    assert estimate_tokens("hi there") == 3
    assert estimate_tokens("one two three four five six seven eight nine ten") == 13


def test_estimate_tokens_empty_and_whitespace():
    assert estimate_tokens("") == 0
    assert estimate_tokens("   \n\t ") == 0
