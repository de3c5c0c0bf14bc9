"""Redis client construction."""

import redis.asyncio as redis


async def connect_redis(url: str) -> redis.Redis:
    """Open a Redis client and verify connectivity.

    The caller owns the client and closes it with ``aclose()``.
    """
    client = redis.from_url(url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    return client
