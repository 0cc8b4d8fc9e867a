"""
Engagement cache.

TTL-bounded store of the last computed payload per entity, keyed
"{contact|company}:{id}". Expired entries are dropped lazily when read; there
is no background eviction. Concurrent cold lookups for one key share a single
in-flight load.

All bookkeeping runs on the event loop and never awaits between checking and
claiming the in-flight slot, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from app.config import settings
from app.features.engagements.domain.models import CacheEntry, EngagementPayload
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REDIS_KEY_PREFIX = "engagements:"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CacheBackend(Protocol):
    async def load(self, key: str) -> CacheEntry | None: ...

    async def store(self, entry: CacheEntry, ttl_seconds: int) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryCacheBackend:
    """Process-local dict. Grows with the number of distinct entities looked up."""

    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}

    async def load(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def store(self, entry: CacheEntry, ttl_seconds: int) -> None:
        self._entries[entry.key] = entry

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """Entries serialized as JSON; Redis TTL mirrors the cache TTL."""

    def __init__(self, client):
        self.redis = client

    async def load(self, key: str) -> CacheEntry | None:
        raw = await self.redis.get(REDIS_KEY_PREFIX + key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cached engagements", key=key, error=str(e))
            await self.remove(key)
            return None

    async def store(self, entry: CacheEntry, ttl_seconds: int) -> None:
        await self.redis.set_with_ttl(
            REDIS_KEY_PREFIX + entry.key, json.dumps(entry.to_dict()), ttl_seconds
        )

    async def remove(self, key: str) -> None:
        await self.redis.delete(REDIS_KEY_PREFIX + key)


class EngagementCache:
    def __init__(
        self,
        backend: CacheBackend | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.backend = backend or MemoryCacheBackend()
        self.ttl_seconds = ttl_seconds or settings.ENGAGEMENT_CACHE_TTL_SECONDS
        self.ttl = timedelta(seconds=self.ttl_seconds)
        self.clock = clock
        self._inflight: dict[str, asyncio.Task[tuple[CacheEntry, bool]]] = {}

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.fetched_at > self.ttl

    async def get(self, key: str) -> CacheEntry | None:
        """Cached entry for `key`, or None when missing or expired (expired ones are removed)."""
        entry = await self.backend.load(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            logger.debug("Cached engagements expired", key=key, fetched_at=entry.fetched_at.isoformat())
            await self.backend.remove(key)
            return None
        return entry

    async def set(self, key: str, payload: EngagementPayload) -> CacheEntry:
        """Store `payload` stamped with the current instant, replacing any prior entry."""
        entry = CacheEntry(key=key, payload=payload, fetched_at=self.clock())
        await self.backend.store(entry, self.ttl_seconds)
        return entry

    async def get_or_load(
        self, key: str, loader: Callable[[], Awaitable[EngagementPayload]]
    ) -> tuple[CacheEntry, bool]:
        """
        Return (entry, cache_hit). On a miss, run `loader` once and cache its
        payload unless it is marked partial.

        The load runs in its own task. Callers arriving while it is running
        wait for it instead of starting their own, and a caller that is
        cancelled stops waiting without cancelling the load for the others.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._finish_load(key, done))
        else:
            logger.debug("Joining in-flight engagement load", key=key)
        return await asyncio.shield(task)

    async def _load(
        self, key: str, loader: Callable[[], Awaitable[EngagementPayload]]
    ) -> tuple[CacheEntry, bool]:
        entry = await self.get(key)
        if entry is not None:
            return entry, True

        payload = await loader()
        if payload.partial:
            return CacheEntry(key=key, payload=payload, fetched_at=self.clock()), False
        return await self.set(key, payload), False

    def _finish_load(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Retrieve the outcome so a failure every caller stopped waiting for isn't reported as unretrieved.
        if not task.cancelled():
            task.exception()

    def inflight_count(self) -> int:
        return len(self._inflight)


def build_engagement_cache() -> EngagementCache:
    """Cache wired to the configured backend."""
    if settings.ENGAGEMENT_CACHE_BACKEND == "redis":
        from app.services.redis_client import redis_client

        return EngagementCache(backend=RedisCacheBackend(redis_client))
    return EngagementCache()
