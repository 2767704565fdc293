from __future__ import annotations

import asyncio

import pytest

from semanami_client.utils.retry import backoff_delay, retry_async


def test_retry_async_retries_until_success() -> None:
    calls = {"n": 0}
    seen: list[int] = []

    async def fn():
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("fail")
        return "ok"

    result = asyncio.run(
        retry_async(fn, retries=5, base=0.001, cap=0.01, jitter=False, on_retry=lambda a, d, e: seen.append(a))
    )
    assert result == "ok"
    assert calls["n"] == 3
    assert seen == [1, 2]


def test_retry_async_gives_up() -> None:
    calls = {"n": 0}

    async def fn():
        calls["n"] += 1
        raise RuntimeError("always")

    with pytest.raises(RuntimeError):
        asyncio.run(retry_async(fn, retries=2, base=0, jitter=False))
    assert calls["n"] == 3


def test_non_matching_errors_are_not_retried() -> None:
    calls = {"n": 0}

    async def fn():
        calls["n"] += 1
        raise KeyError("nope")

    with pytest.raises(KeyError):
        asyncio.run(retry_async(fn, retries=5, base=0, retry_on=(RuntimeError,)))
    assert calls["n"] == 1


def test_backoff_is_capped() -> None:
    assert backoff_delay(0, base=1.0, cap=8.0, jitter=False) == 1.0
    assert backoff_delay(2, base=1.0, cap=8.0, jitter=False) == 4.0
    assert backoff_delay(10, base=1.0, cap=8.0, jitter=False) == 8.0
