"""Cache service for the product catalog API.

Owns the get/set/delete/flush contract on top of a CacheBackend, namespacing
every key under the configured prefix, and the relationship-aware
invalidation operations:

- product: the product's keys, its parent (for variations), its variations'
  keys (for variable products) and every list entry
- category: the category's keys, its member products and every list entry
- bulk: the same for many ids while clearing list entries exactly once

The cache is an optimization only. A missing or failing backend degrades to
"always miss, writes are no-ops"; nothing here raises for expected
conditions.
"""

from __future__ import annotations

import contextvars
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple, TypeVar

from forooshyar.cache.errors import BackendUnavailableError, CatalogLookupError
from forooshyar.cache.keys import CacheKeys
from forooshyar.config import Settings, settings

if TYPE_CHECKING:
    from forooshyar.cache.backends import CacheBackend
    from forooshyar.catalog.base import ProductCatalog, ProductRef

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Per-request flags; each asyncio task sees its own values
_last_lookup_hit: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "forooshyar_cache_hit", default=False
)
_last_invalidated: contextvars.ContextVar[int] = contextvars.ContextVar(
    "forooshyar_last_invalidated", default=0
)


class CacheResult(NamedTuple):
    """Outcome of a cache lookup. A cached None or False is still a hit."""

    value: Any
    found: bool


@dataclass
class BulkOperationStats:
    total_operations: int = 0
    total_products_processed: int = 0
    total_categories_processed: int = 0
    total_time: float = 0.0

    @property
    def average_time(self) -> float:
        if not self.total_operations:
            return 0.0
        return self.total_time / self.total_operations

    def record(self, products: int = 0, categories: int = 0, elapsed: float = 0.0) -> None:
        self.total_operations += 1
        self.total_products_processed += products
        self.total_categories_processed += categories
        self.total_time += elapsed

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_operations": self.total_operations,
            "total_products_processed": self.total_products_processed,
            "total_categories_processed": self.total_categories_processed,
            "total_time": round(self.total_time, 6),
            "average_time": round(self.average_time, 6),
        }


@dataclass
class CacheStats:
    """Process-local counters. Observability only."""

    hits: int = 0
    misses: int = 0
    invalidated_keys: int = 0
    bulk: BulkOperationStats = field(default_factory=BulkOperationStats)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if not total:
            return 0.0
        return round(self.hits / total * 100, 2)


class CacheService:
    """Namespaced cache with relationship-aware invalidation.

    Args:
        backend: Backend store, or None when the platform cache is not
            initialized (the service then behaves as an always-miss cache).
        catalog: Product relationship lookups. Without it only the keys of
            the given ids are invalidated.
        enabled, ttl, prefix, list_patterns, fallback_ttl: Override the
            corresponding settings. Read once at construction.
    """

    def __init__(
        self,
        backend: CacheBackend | None,
        catalog: ProductCatalog | None = None,
        *,
        enabled: bool | None = None,
        ttl: int | None = None,
        prefix: str | None = None,
        list_patterns: Iterable[str] | None = None,
        fallback_ttl: int | None = None,
        config: Settings | None = None,
    ):
        config = config or settings
        self.backend = backend
        self.catalog = catalog
        self.enabled = config.cache_enabled if enabled is None else enabled
        self.ttl = config.cache_ttl if ttl is None else ttl
        self.prefix = config.cache_prefix if prefix is None else prefix
        self.list_patterns = tuple(
            config.cache_list_patterns if list_patterns is None else list_patterns
        )
        self.fallback_ttl = config.cache_fallback_ttl if fallback_ttl is None else fallback_ttl
        self.stats = CacheStats()

        if self.ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {self.ttl}")

    @property
    def available(self) -> bool:
        return self.backend is not None

    @property
    def last_invalidated_count(self) -> int:
        """Keys touched by the latest invalidation in the current context."""
        return _last_invalidated.get()

    def was_last_request_cache_hit(self) -> bool:
        """Whether the latest lookup in the current context was a hit."""
        return _last_lookup_hit.get()

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _degraded(self, operation: str, exc: BackendUnavailableError) -> None:
        logger.warning(f"Cache backend unavailable during {operation}, degrading: {exc}")

    # -------------------------------------------------------------------------
    # Basic operations
    # -------------------------------------------------------------------------

    def generate_key(self, prefix: str, params: Mapping[str, Any]) -> str:
        """Build a deterministic key from a prefix and request parameters."""
        return CacheKeys.generate(prefix, params)

    async def get(self, key: str) -> CacheResult:
        """Look up a key. A disabled or unavailable cache always misses."""
        if not self.enabled or self.backend is None:
            _last_lookup_hit.set(False)
            return CacheResult(None, False)

        try:
            entry = await self.backend.get(self._full_key(key))
        except BackendUnavailableError as exc:
            self._degraded("get", exc)
            entry = None

        if entry is None:
            self.stats.misses += 1
            _last_lookup_hit.set(False)
            return CacheResult(None, False)

        self.stats.hits += 1
        _last_lookup_hit.set(True)
        return CacheResult(entry.value, True)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value. A disabled or unavailable cache accepts and drops it."""
        if ttl is not None and ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl}")
        if not self.enabled or self.backend is None:
            return True

        try:
            return await self.backend.set(self._full_key(key), value, ttl or self.ttl)
        except BackendUnavailableError as exc:
            self._degraded("set", exc)
            return True

    async def delete(self, key: str) -> bool:
        """Delete a key. Deleting an absent key succeeds."""
        ok, _ = await self._delete_keys([key])
        return ok

    async def flush(self) -> bool:
        """Delete every key under this service's prefix and reset statistics.

        Only prefixed keys are touched, so a shared backend keeps other
        applications' data.
        """
        ok, deleted = True, 0
        if self.backend is not None:
            try:
                deleted = await self.backend.delete_pattern(f"{self.prefix}*")
                logger.info(f"Flushed {deleted} cache entries under {self.prefix!r}")
            except BackendUnavailableError as exc:
                self._degraded("flush", exc)
                ok = False

        self.stats = CacheStats()
        self._finish(deleted)
        return ok

    async def cleanup_expired(self) -> int:
        """Purge expired entries the backend does not expire on its own."""
        if self.backend is None:
            return 0
        try:
            return await self.backend.cleanup_expired()
        except BackendUnavailableError as exc:
            self._degraded("cleanup", exc)
            return 0

    # -------------------------------------------------------------------------
    # Read-through helpers
    # -------------------------------------------------------------------------

    async def remember(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """Return the cached value for ``key`` or load, store and return it."""
        cached = await self.get(key)
        if cached.found:
            return cached.value  # type: ignore[no-any-return]

        value = await loader()
        await self.set(key, value, ttl)
        return value

    async def remember_with_fallback(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """Like remember(), but keeps a long-lived copy for loader failures.

        When ``loader`` raises and a fallback copy exists it is served instead;
        otherwise the loader's exception propagates. Fallback copies live
        outside the list namespace so product changes do not clear them.
        """
        cached = await self.get(key)
        if cached.found:
            return cached.value  # type: ignore[no-any-return]

        fallback_key = f"fallback_{key}"
        try:
            value = await loader()
        except Exception:
            fallback = await self.get(fallback_key)
            if not fallback.found:
                raise
            logger.warning(f"Loader for {key} failed, serving fallback copy", exc_info=True)
            return fallback.value  # type: ignore[no-any-return]

        await self.set(key, value, ttl)
        await self.set(fallback_key, value, self.fallback_ttl)
        return value

    # -------------------------------------------------------------------------
    # Invalidation primitives
    # -------------------------------------------------------------------------

    async def _delete_keys(self, keys: Iterable[str]) -> tuple[bool, int]:
        unique = list(dict.fromkeys(keys))
        if not unique:
            return True, 0

        self.stats.invalidated_keys += len(unique)
        if self.backend is None:
            return True, len(unique)

        try:
            await self.backend.delete(*(self._full_key(key) for key in unique))
        except BackendUnavailableError as exc:
            self._degraded("delete", exc)
            return False, len(unique)
        return True, len(unique)

    async def _delete_pattern(self, pattern: str) -> tuple[bool, int]:
        if self.backend is None:
            return True, 0
        try:
            deleted = await self.backend.delete_pattern(self._full_key(CacheKeys.to_glob(pattern)))
        except BackendUnavailableError as exc:
            self._degraded("pattern delete", exc)
            return False, 0

        self.stats.invalidated_keys += deleted
        return True, deleted

    async def _invalidate_lists(self) -> tuple[bool, int]:
        ok, total = True, 0
        for pattern in self.list_patterns:
            pattern_ok, deleted = await self._delete_pattern(pattern)
            ok = ok and pattern_ok
            total += deleted
        return ok, total

    def _finish(self, touched: int) -> None:
        _last_invalidated.set(touched)

    async def _resolve(self, product_id: int) -> ProductRef | None:
        if self.catalog is None:
            return None
        try:
            return await self.catalog.get_product(product_id)
        except CatalogLookupError as exc:
            logger.warning(f"Cannot resolve product {product_id}, using known keys only: {exc}")
            return None
        except Exception:
            logger.exception(f"Catalog lookup for product {product_id} failed, using known keys only")
            return None

    async def _category_members(self, category_id: int) -> list[int]:
        if self.catalog is None:
            return []
        try:
            return await self.catalog.get_category_product_ids(category_id)
        except CatalogLookupError as exc:
            logger.warning(f"Cannot list products of category {category_id}: {exc}")
            return []
        except Exception:
            logger.exception(f"Catalog lookup for category {category_id} failed, using known keys only")
            return []

    async def _product_keys(
        self,
        product_id: int,
        parent_hint: int | None,
        seen: set[int],
    ) -> list[str]:
        """Keys of a product plus the keys its relationships require.

        A variation pulls in its parent (and, through it, its siblings); a
        variable product pulls in its variations' product keys. ``seen``
        guards against visiting a product twice.
        """
        if product_id in seen:
            return []
        seen.add(product_id)

        keys = CacheKeys.product_keys(product_id)
        parents = {parent_hint} if parent_hint else set()

        product = await self._resolve(product_id)
        if product is not None:
            if product.is_variation and product.parent_id:
                parents.add(product.parent_id)
            if product.is_variable:
                keys.extend(CacheKeys.product(child) for child in product.children)

        for parent_id in sorted(parents):
            keys.extend(await self._product_keys(parent_id, None, seen))
        return keys

    # -------------------------------------------------------------------------
    # Invalidation operations
    # -------------------------------------------------------------------------

    async def invalidate_lists(self) -> bool:
        """Clear every list/query entry."""
        ok, deleted = await self._invalidate_lists()
        self._finish(deleted)
        return ok

    async def invalidate_product(self, product_id: int, parent_id: int | None = None) -> bool:
        """Invalidate a product, its relatives and all list entries.

        Args:
            product_id: Product or variation ID.
            parent_id: Parent known to the caller. Used in addition to the
                catalog, e.g. when the variation is already deleted.
        """
        lists_ok, list_count = await self._invalidate_lists()
        keys = await self._product_keys(product_id, parent_id, set())
        ok, key_count = await self._delete_keys(keys)

        self._finish(key_count + list_count)
        logger.debug(f"Invalidated product {product_id}: {key_count} keys, {list_count} list entries")
        return ok and lists_ok

    async def invalidate_category(self, category_id: int) -> bool:
        """Invalidate a category, its member products and all list entries."""
        lists_ok, list_count = await self._invalidate_lists()
        keys = CacheKeys.category_keys(category_id)
        for product_id in await self._category_members(category_id):
            keys.extend(CacheKeys.product_keys(product_id))
        ok, key_count = await self._delete_keys(keys)

        self._finish(key_count + list_count)
        logger.debug(f"Invalidated category {category_id}: {key_count} keys")
        return ok and lists_ok

    async def invalidate_bulk_products(self, product_ids: Iterable[int]) -> bool:
        """Invalidate many products, clearing list entries exactly once.

        Duplicate ids are processed once; bulk statistics count unique ids.
        """
        unique = list(dict.fromkeys(product_ids))
        if not unique:
            self._finish(0)
            return True

        started = time.perf_counter()
        lists_ok, list_count = await self._invalidate_lists()

        seen: set[int] = set()
        keys: list[str] = []
        for product_id in unique:
            keys.extend(await self._product_keys(product_id, None, seen))
        ok, key_count = await self._delete_keys(keys)

        self.stats.bulk.record(products=len(unique), elapsed=time.perf_counter() - started)
        self._finish(key_count + list_count)
        logger.info(f"Bulk invalidated {len(unique)} products ({key_count} keys)")
        return ok and lists_ok

    async def invalidate_bulk_categories(self, category_ids: Iterable[int]) -> bool:
        """Invalidate many categories, clearing list entries exactly once."""
        unique = list(dict.fromkeys(category_ids))
        if not unique:
            self._finish(0)
            return True

        started = time.perf_counter()
        lists_ok, list_count = await self._invalidate_lists()

        keys: list[str] = []
        members: set[int] = set()
        for category_id in unique:
            keys.extend(CacheKeys.category_keys(category_id))
            members.update(await self._category_members(category_id))
        for product_id in sorted(members):
            keys.extend(CacheKeys.product_keys(product_id))
        ok, key_count = await self._delete_keys(keys)

        self.stats.bulk.record(
            products=len(members),
            categories=len(unique),
            elapsed=time.perf_counter() - started,
        )
        self._finish(key_count + list_count)
        logger.info(f"Bulk invalidated {len(unique)} categories ({key_count} keys)")
        return ok and lists_ok

    async def invalidate_by_pattern(self, pattern: str) -> bool:
        """Delete keys matching a glob, or a prefix when no glob chars are given.

        Matching nothing is a success.
        """
        ok, deleted = await self._delete_pattern(pattern)
        self._finish(deleted)
        logger.debug(f"Pattern {pattern!r} invalidated {deleted} keys")
        return ok

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    async def get_stats(self) -> dict[str, Any]:
        """JSON-serializable snapshot of cache state and counters."""
        total_entries = 0
        if self.backend is not None:
            try:
                total_entries = await self.backend.count(f"{self.prefix}*")
            except BackendUnavailableError as exc:
                self._degraded("stats", exc)

        return {
            "enabled": self.enabled,
            "available": self.available,
            "total_entries": total_entries,
            "invalidated_keys": self.stats.invalidated_keys,
            "ttl": self.ttl,
            "prefix": self.prefix,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "hit_rate": self.stats.hit_rate,
            "bulk_operations": self.stats.bulk.to_dict(),
        }
