"""Exclusive run lock for catalog sweeps."""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.asyncio import Redis
from redis.exceptions import RedisError

from bundlewatch.errors import LockContention

logger = logging.getLogger(__name__)

LOCK_KEY = "locks:audit-bundles"
LOCK_TTL_SECONDS = 15 * 60

# Deletes the key only while it still holds this holder's token.
RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RunLock:
    def __init__(self, redis: Redis, *, key: str = LOCK_KEY, ttl: int = LOCK_TTL_SECONDS) -> None:
        self.redis = redis
        self.key = key
        self.ttl = ttl
        self.token = secrets.token_hex(16)
        self._release = redis.register_script(RELEASE_SCRIPT)

    async def acquire(self) -> bool:
        try:
            acquired = await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        except RedisError as exc:
            logger.warning("Lock acquisition failed for %s: %s", self.key, exc)
            return False
        return bool(acquired)

    async def release(self) -> None:
        try:
            released = await self._release(keys=[self.key], args=[self.token])
        except RedisError as exc:
            logger.warning("Lock release failed for %s; expires in %ss: %s", self.key, self.ttl, exc)
            return
        if not released:
            logger.warning("Lock %s expired or is held by another sweep; left in place", self.key)


@asynccontextmanager
async def run_exclusive(lock: RunLock) -> AsyncIterator[None]:
    if not await lock.acquire():
        raise LockContention("audit already running")
    try:
        yield
    finally:
        await lock.release()
