from __future__ import annotations

import pytest

from gatebot.utils.retry import retry_async


@pytest.mark.asyncio
async def test_retry_async_retries_listed_errors():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    result = await retry_async(flaky, retry_on=(ConnectionError,), max_attempts=3, base_delay=0)
    assert result == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_other_errors():
    attempts = []

    async def broken():
        attempts.append(1)
        raise ValueError("bad request")

    with pytest.raises(ValueError):
        await retry_async(broken, retry_on=(ConnectionError,), max_attempts=3, base_delay=0)
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_retry_async_gives_up_after_max_attempts():
    async def always_down():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await retry_async(always_down, retry_on=(ConnectionError,), max_attempts=2, base_delay=0)
