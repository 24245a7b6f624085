"""Redis async client factory (one pool per application instance)."""

import redis.asyncio as aioredis


def create_redis(url: str) -> aioredis.Redis:
    """Build a Redis client with its own connection pool; close with ``aclose()``."""
    pool = aioredis.ConnectionPool.from_url(url, decode_responses=True)
    return aioredis.Redis(connection_pool=pool)
