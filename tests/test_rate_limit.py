"""Cooldown behaviour of the in-memory rate limiter."""

from __future__ import annotations

import pytest

from gatebot.config import CooldownSettings
from gatebot.services.exceptions import RateLimited
from gatebot.services.rate_limit import CooldownDomain, RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _limiter(clock: FakeClock, **overrides) -> RateLimiter:
    settings = CooldownSettings(**{"message_seconds": 3, "media_seconds": 20, "command_seconds": 10, **overrides})
    return RateLimiter(settings, clock=clock)


def test_message_cooldown_rejects_inside_window_and_allows_after():
    clock = FakeClock()
    limiter = _limiter(clock)

    limiter.check_message("1")
    clock.advance(1.2)
    with pytest.raises(RateLimited) as excinfo:
        limiter.check_message("1")
    assert excinfo.value.retry_after == 2
    assert excinfo.value.domain == "message"

    clock.advance(1.8)
    limiter.check_message("1")


def test_rejected_calls_do_not_extend_the_window():
    clock = FakeClock()
    limiter = _limiter(clock)

    limiter.check_media("1")
    for _ in range(5):
        clock.advance(3)
        with pytest.raises(RateLimited):
            limiter.check_media("1")
    clock.advance(5)
    limiter.check_media("1")


def test_domains_and_users_are_independent():
    clock = FakeClock()
    limiter = _limiter(clock)

    limiter.check_message("1")
    limiter.check_media("1")
    limiter.check_command("1", "search")
    limiter.check_command("1", "imagine")
    limiter.check_message("2")

    with pytest.raises(RateLimited) as excinfo:
        limiter.check_command("1", "search")
    assert excinfo.value.command == "search"
    assert excinfo.value.retry_after == 10


def test_zero_window_disables_domain():
    clock = FakeClock()
    limiter = _limiter(clock, message_seconds=0)

    limiter.check_message("1")
    limiter.check_message("1")
    assert limiter.remaining(CooldownDomain.MESSAGE, "1") == 0.0


def test_remaining_and_reset():
    clock = FakeClock()
    limiter = _limiter(clock)

    limiter.check_media("7")
    clock.advance(5)
    assert limiter.remaining(CooldownDomain.MEDIA, "7") == pytest.approx(15)

    limiter.reset()
    limiter.check_media("7")
