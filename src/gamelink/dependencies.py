"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

import redis.asyncio as redis

from gamelink.redis_client import get_optional_redis


async def get_redis_dep() -> AsyncGenerator[redis.Redis | None, None]:
    """Yield the Redis client (or None) as a FastAPI dependency."""
    yield get_optional_redis()
