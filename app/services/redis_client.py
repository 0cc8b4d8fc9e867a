# app/services/redis_client.py
"""
Pooled async Redis access for the shared engagement cache.

Reads and writes are fail-soft: a Redis outage turns into cache misses and
skipped writes, never into a failed engagement lookup.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MAX_CONNECTIONS = 20
SOCKET_TIMEOUT_SECONDS = 10


class RedisClient:
    def __init__(self, url: str | None = None):
        self.url = url
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None

    @property
    def connected(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Open the pool and verify it with a PING. Called from app startup."""
        if self.connected:
            return

        redis_url = self.url or settings.REDIS_URL
        if not redis_url:
            raise RuntimeError("REDIS_URL not configured")

        pool = ConnectionPool.from_url(
            redis_url,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)
        try:
            await client.ping()
        except redis.RedisError as e:
            await pool.disconnect()
            logger.error("Redis connection failed", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self.pool, self.client = pool, client
        logger.info("Redis connected", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        if self.pool is not None:
            await self.pool.disconnect()
        self.pool = self.client = None
        logger.info("Redis connection closed")

    async def _run(self, operation: str, key: str, call: Callable[[], Awaitable[T]], default: T) -> T:
        try:
            if not self.connected:
                await self.initialize()
            return await call()
        except (redis.RedisError, RuntimeError) as e:
            logger.error(f"Redis {operation} failed", key=key[:40], error=str(e))
            return default

    async def ping(self) -> bool:
        async def call():
            return bool(await self.client.ping())

        return await self._run("PING", "-", call, False)

    async def get(self, key: str) -> str | None:
        async def call():
            return await self.client.get(key) or None

        return await self._run("GET", key, call, None)

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """SET with an expiry in seconds; no expiry when ttl_s is falsy."""

        async def call():
            if ttl_s:
                return bool(await self.client.setex(key, ttl_s, value))
            return bool(await self.client.set(key, value))

        return await self._run("SET", key, call, False)

    async def delete(self, key: str) -> bool:
        async def call():
            return await self.client.delete(key) > 0

        return await self._run("DELETE", key, call, False)


redis_client = RedisClient()
