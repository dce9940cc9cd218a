"""Redis connection helpers."""

from __future__ import annotations

import os

from redis.asyncio import Redis

from bundlewatch.config import DEFAULT_REDIS_URL


def create_redis_from_env(url: str | None = None) -> Redis:
    """Create a client using ``url`` or the REDIS_URL environment variable."""
    return Redis.from_url(url or os.environ.get("REDIS_URL", DEFAULT_REDIS_URL), decode_responses=True)
