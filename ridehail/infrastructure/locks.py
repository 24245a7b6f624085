"""
Redis lease for background jobs.

The maintenance worker takes ``DistributedLock("maintenance")`` before each
cycle, so with several API processes only one of them sweeps and resets
at a time; the rest skip that round.

The lease is a key holding a random owner token with a TTL.  Giving it up
is a server-side compare-and-delete: a holder whose lease already lapsed
(cycle ran past the TTL) finds someone else's token and leaves the key
alone.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

KEY_PREFIX = "ridehail:lock:"

# KEYS[1] = lease key, ARGV[1] = owner token
_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(self, client: aioredis.Redis, name: str, ttl_seconds: int = 30):
        self.redis = client
        self.name = name
        self.key = KEY_PREFIX + name
        self.ttl = ttl_seconds
        self.token = secrets.token_hex(16)
        self.owned = False

    async def acquire(self) -> bool:
        """Single attempt; never waits for the current holder."""
        self.owned = bool(await self.redis.set(self.key, self.token, nx=True, ex=self.ttl))
        return self.owned

    async def release(self) -> bool:
        """Give the lease up.  False if it was not ours (any more)."""
        if not self.owned:
            return False
        self.owned = False
        deleted = await self.redis.eval(_COMPARE_AND_DELETE, 1, self.key, self.token)
        if not deleted:
            logger.warning("Lease %s lapsed before release (ttl=%ss)", self.name, self.ttl)
        return bool(deleted)

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockNotAcquired(f"{self.name} is held elsewhere")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        await self.release()
        return None
