from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any, TypeVar

T = TypeVar("T")


def backoff_delay(attempt: int, *, base: float, cap: float, jitter: bool) -> float:
    delay = min(float(cap), float(base) * (2 ** int(attempt)))
    if jitter:
        delay = delay * (0.5 + random.random())
    return max(0.0, float(delay))


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    base: float = 1.0,
    cap: float = 8.0,
    jitter: bool = True,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, float, BaseException], Any] | None = None,
) -> T:
    """
    Await fn() with capped exponential backoff (+ optional jitter).

    retries: number of retry attempts (so total calls = 1 + retries).
    Only exceptions matching `retry_on` are retried; anything else propagates at once.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as ex:
            if attempt >= int(retries):
                raise
            delay = backoff_delay(attempt, base=base, cap=cap, jitter=jitter)
            attempt += 1
            if on_retry is not None:
                with suppress(Exception):
                    on_retry(attempt, delay, ex)
            await asyncio.sleep(delay)
