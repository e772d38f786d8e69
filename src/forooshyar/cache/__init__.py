"""Cache layer for the product catalog API.

Provides the cache-aside pattern over a pluggable backend:
- Deterministic cache keys over arbitrary request parameters
- TTL storage in memory or Redis, namespaced under a prefix
- Relationship-aware invalidation across products, variations,
  categories and list responses
- An invalidation coordinator driven by catalog mutation events
"""

from forooshyar.cache.errors import (
    BackendUnavailableError,
    CacheError,
    CacheKeyError,
    CatalogLookupError,
)
from forooshyar.cache.keys import CacheKeys
from forooshyar.cache.backends import (
    CacheBackend,
    CacheEntry,
    InMemoryBackend,
    RedisBackend,
    close_redis,
    create_backend,
    get_redis,
)
from forooshyar.cache.service import CacheResult, CacheService, CacheStats
from forooshyar.cache.invalidation import (
    InvalidationAction,
    InvalidationCoordinator,
    InvalidationRecord,
)

__all__ = [
    # Errors
    "BackendUnavailableError",
    "CacheError",
    "CacheKeyError",
    "CatalogLookupError",
    # Keys and backends
    "CacheKeys",
    "CacheBackend",
    "CacheEntry",
    "InMemoryBackend",
    "RedisBackend",
    "create_backend",
    "get_redis",
    "close_redis",
    # Service
    "CacheResult",
    "CacheService",
    "CacheStats",
    # Invalidation
    "InvalidationAction",
    "InvalidationCoordinator",
    "InvalidationRecord",
]
