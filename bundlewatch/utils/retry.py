"""Single-shot retry on rate-limit responses."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable

import httpx

RATE_LIMIT_STATUS = 429
RATE_LIMIT_BACKOFF = 2.0


def retry_on_rate_limit(
    func: Callable[..., Awaitable[httpx.Response]],
    *,
    backoff: float = RATE_LIMIT_BACKOFF,
    on_retry: Callable[[], None] | None = None,
):
    """Retry ``func`` exactly once after ``backoff`` seconds if it answers 429.

    The second response is returned whatever its status; callers decide how to
    surface it.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> httpx.Response:
        response = await func(*args, **kwargs)
        if response.status_code != RATE_LIMIT_STATUS:
            return response
        await asyncio.sleep(backoff)
        if on_retry is not None:
            on_retry()
        return await func(*args, **kwargs)

    return wrapper
