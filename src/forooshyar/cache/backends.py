"""Backend stores for the cache layer.

- InMemoryBackend: process-local dict with lazy TTL expiry
- RedisBackend: redis-py async client, orjson envelopes, SCAN-based patterns

Backends know nothing about prefixes, enable flags or statistics; the
CacheService owns those. Redis failures surface as BackendUnavailableError.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from forooshyar.cache.errors import BackendUnavailableError
from forooshyar.config import Settings, settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Module-level connection pool
_redis_client: Redis | None = None

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A stored value with its write time and lifetime."""

    key: str
    value: Any
    stored_at: float
    ttl: int

    def expired(self, now: float) -> bool:
        return now >= self.stored_at + self.ttl


async def get_redis(url: str | None = None) -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            url or settings.redis_url,
            decode_responses=False,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class CacheBackend(ABC):
    """TTL-capable key-value store used by the CacheService."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` or None."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def scan(self, pattern: str) -> list[str]:
        """List keys matching a glob pattern."""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Purge expired entries the store does not expire by itself."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check connectivity."""

    async def count(self, pattern: str) -> int:
        return len(await self.scan(pattern))

    async def close(self) -> None:
        """Release connections held by the store."""


class InMemoryBackend(CacheBackend):
    """Dict-backed store for tests and single-process deployments.

    Expired entries are dropped lazily on access, or eagerly by
    cleanup_expired().
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def scan(self, pattern: str) -> list[str]:
        now = self._clock()
        return [
            key
            for key, entry in self._entries.items()
            if fnmatch.fnmatchcase(key, pattern) and not entry.expired(now)
        ]

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    async def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisBackend(CacheBackend):
    """Redis store; values are orjson envelopes written with SETEX.

    TTL expiry is left to Redis.
    """

    def __init__(self, client: Redis, scan_count: int = 500) -> None:
        self.client = client
        self.scan_count = scan_count

    @staticmethod
    def _encode(value: Any, stored_at: float, ttl: int) -> bytes:
        return orjson.dumps({"v": value, "s": stored_at, "t": ttl})

    async def get(self, key: str) -> CacheEntry | None:
        try:
            raw = cast(bytes | None, await self.client.get(key))
        except (RedisError, OSError) as exc:
            raise BackendUnavailableError(f"Redis GET failed: {exc}") from exc
        if raw is None:
            return None

        try:
            envelope = orjson.loads(raw)
            return CacheEntry(key=key, value=envelope["v"], stored_at=envelope["s"], ttl=envelope["t"])
        except (orjson.JSONDecodeError, KeyError, TypeError):
            logger.warning(f"Dropping undecodable cache entry {key}")
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        payload = self._encode(value, time.time(), ttl)
        try:
            return bool(await self.client.setex(key, ttl, payload))
        except (RedisError, OSError) as exc:
            raise BackendUnavailableError(f"Redis SETEX failed: {exc}") from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return cast(int, await self.client.delete(*keys))
        except (RedisError, OSError) as exc:
            raise BackendUnavailableError(f"Redis DEL failed: {exc}") from exc

    async def scan(self, pattern: str) -> list[str]:
        keys: list[str] = []
        try:
            # SCAN avoids blocking on large keyspaces
            async for key in self.client.scan_iter(match=pattern, count=self.scan_count):
                keys.append(key.decode() if isinstance(key, bytes) else key)
        except (RedisError, OSError) as exc:
            raise BackendUnavailableError(f"Redis SCAN failed: {exc}") from exc
        return keys

    async def delete_pattern(self, pattern: str) -> int:
        keys = await self.scan(pattern)
        deleted = 0
        # Batch deletes to bound command size
        for start in range(0, len(keys), self.scan_count):
            deleted += await self.delete(*keys[start : start + self.scan_count])
        return deleted

    async def cleanup_expired(self) -> int:
        return 0

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        # The shared pool client is reset so the next get_redis() reconnects
        if self.client is _redis_client:
            await close_redis()
        else:
            await self.client.aclose()


async def create_backend(config: Settings | None = None) -> CacheBackend:
    """Build the backend selected by configuration."""
    config = config or settings
    if config.cache_backend == "redis":
        client = await get_redis(config.redis_url)
        return RedisBackend(client)
    return InMemoryBackend()
