"""Invalidation coordinator for catalog mutations.

Translates domain mutation events (product saved, variation deleted, category
changed, bulk edits, ...) into CacheService invalidations and keeps:

- a bounded log of successful invalidations for observability
- a bounded retry queue of failed invalidations

Every event method returns a bool and never raises: the host calls these
inline from its own request and a cache problem must not break it. Partial
invalidation is always preferred to none; over-invalidation is safe.

Example:
    coordinator = InvalidationCoordinator(cache)

    await coordinator.on_product_saved(42)
    await coordinator.on_bulk_products_saved([1, 2, 3])

    coordinator.get_invalidation_stats()
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from forooshyar.cache.errors import CatalogLookupError
from forooshyar.catalog.base import ProductRef
from forooshyar.config import Settings, settings

if TYPE_CHECKING:
    from forooshyar.cache.service import CacheService
    from forooshyar.catalog.base import ProductCatalog

logger = logging.getLogger(__name__)


class InvalidationAction(str, Enum):
    """What triggered an invalidation."""

    PRODUCT_SAVED = "product_saved"
    PRODUCT_DELETED = "product_deleted"
    VARIATION_SAVED = "variation_saved"
    VARIATION_DELETED = "variation_deleted"
    STOCK_CHANGED = "stock_changed"
    CATEGORY_CHANGED = "category_changed"
    CATEGORY_DELETED = "category_deleted"
    BULK_PRODUCTS = "bulk_products"
    BULK_CATEGORIES = "bulk_categories"
    BULK_VARIATIONS = "bulk_variations"
    PATTERN = "pattern"
    FLUSH = "flush"


_PRODUCT_ACTIONS = frozenset(
    {
        InvalidationAction.PRODUCT_SAVED,
        InvalidationAction.PRODUCT_DELETED,
        InvalidationAction.VARIATION_SAVED,
        InvalidationAction.VARIATION_DELETED,
        InvalidationAction.STOCK_CHANGED,
    }
)
_CATEGORY_ACTIONS = frozenset(
    {InvalidationAction.CATEGORY_CHANGED, InvalidationAction.CATEGORY_DELETED}
)


@dataclass(frozen=True, slots=True)
class InvalidationRequest:
    """A resolved unit of invalidation work; replayable."""

    action: InvalidationAction
    entity_ids: tuple[int, ...] = ()
    parent_id: int | None = None
    pattern: str | None = None


@dataclass(frozen=True, slots=True)
class InvalidationRecord:
    """Log entry for a completed invalidation."""

    action: InvalidationAction
    affected_keys: int
    entity_ids: tuple[int, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "affected_keys": self.affected_keys,
            "entity_ids": list(self.entity_ids),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(slots=True)
class FailedInvalidation:
    """An invalidation that did not complete and is waiting for a retry."""

    request: InvalidationRequest
    attempts: int = 1
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class InvalidationCoordinator:
    """Resolves mutation events to cache invalidations.

    Args:
        cache: The CacheService to invalidate.
        catalog: Relationship lookups for bulk variation edits. Defaults to
            the cache's catalog.
        log_size: Capacity of the invalidation log ring buffer.
        retry_limit: Capacity of the failed-invalidation queue.
    """

    def __init__(
        self,
        cache: CacheService,
        catalog: ProductCatalog | None = None,
        log_size: int | None = None,
        retry_limit: int | None = None,
        config: Settings | None = None,
    ):
        config = config or settings
        self.cache = cache
        self.catalog = catalog if catalog is not None else cache.catalog
        self._log: deque[InvalidationRecord] = deque(
            maxlen=log_size or config.invalidation_log_size
        )
        self._failed: deque[FailedInvalidation] = deque(
            maxlen=retry_limit or config.failed_invalidation_limit
        )
        self._actions: Counter[str] = Counter()
        self._total = 0

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _perform(self, request: InvalidationRequest) -> bool:
        action = request.action
        ids = request.entity_ids

        if action in _PRODUCT_ACTIONS:
            return await self.cache.invalidate_product(ids[0], request.parent_id)
        if action in _CATEGORY_ACTIONS:
            return await self.cache.invalidate_category(ids[0])
        if action in (InvalidationAction.BULK_PRODUCTS, InvalidationAction.BULK_VARIATIONS):
            return await self.cache.invalidate_bulk_products(ids)
        if action == InvalidationAction.BULK_CATEGORIES:
            return await self.cache.invalidate_bulk_categories(ids)
        if action == InvalidationAction.PATTERN:
            return await self.cache.invalidate_by_pattern(request.pattern or "")
        if action == InvalidationAction.FLUSH:
            return await self.cache.flush()

        raise ValueError(f"Unknown invalidation action: {action}")

    async def _attempt(self, request: InvalidationRequest) -> bool:
        try:
            success = await self._perform(request)
        except Exception:
            logger.exception(f"Cache invalidation {request.action.value} failed for {request.entity_ids}")
            return False

        if success:
            self._record(request, self.cache.last_invalidated_count)
        return success

    async def _execute(self, request: InvalidationRequest) -> bool:
        success = await self._attempt(request)
        if not success:
            self._failed.append(FailedInvalidation(request))
            logger.warning(
                f"Queued {request.action.value} invalidation for retry "
                f"({len(self._failed)} pending)"
            )
        return success

    def _record(self, request: InvalidationRequest, affected_keys: int) -> None:
        self._log.append(
            InvalidationRecord(
                action=request.action,
                affected_keys=affected_keys,
                entity_ids=request.entity_ids,
            )
        )
        self._actions[request.action.value] += 1
        self._total += 1

    async def _children_of(self, parent_id: int) -> tuple[int, ...]:
        if self.catalog is None:
            return ()
        try:
            parent = await self.catalog.get_product(parent_id)
        except CatalogLookupError as exc:
            logger.warning(f"Cannot enumerate variations of {parent_id}: {exc}")
            return ()
        except Exception:
            logger.exception(f"Catalog lookup for product {parent_id} failed, using known ids only")
            return ()
        return parent.children if parent is not None else ()

    # -------------------------------------------------------------------------
    # Mutation events
    # -------------------------------------------------------------------------

    async def on_product_saved(self, product_id: int, parent_id: int | None = None) -> bool:
        """Product created or updated; variations cascade to their parent."""
        return await self._execute(
            InvalidationRequest(InvalidationAction.PRODUCT_SAVED, (product_id,), parent_id)
        )

    async def on_product_deleted(self, product_id: int, parent_id: int | None = None) -> bool:
        """Product deleted or trashed.

        The product may already be gone from the catalog; ``parent_id`` keeps
        the parent cascade working in that case.
        """
        return await self._execute(
            InvalidationRequest(InvalidationAction.PRODUCT_DELETED, (product_id,), parent_id)
        )

    async def on_variation_saved(self, variation_id: int, parent_id: int | None = None) -> bool:
        """Variation saved; invalidates the variation and its parent."""
        return await self._execute(
            InvalidationRequest(InvalidationAction.VARIATION_SAVED, (variation_id,), parent_id)
        )

    async def on_variation_deleted(self, variation_id: int, parent_id: int | None = None) -> bool:
        return await self._execute(
            InvalidationRequest(InvalidationAction.VARIATION_DELETED, (variation_id,), parent_id)
        )

    async def on_stock_changed(self, product_id: int, parent_id: int | None = None) -> bool:
        return await self._execute(
            InvalidationRequest(InvalidationAction.STOCK_CHANGED, (product_id,), parent_id)
        )

    async def on_category_changed(self, category_id: int) -> bool:
        """Category edited; invalidates the category and its product lists."""
        return await self._execute(
            InvalidationRequest(InvalidationAction.CATEGORY_CHANGED, (category_id,))
        )

    async def on_category_deleted(self, category_id: int) -> bool:
        return await self._execute(
            InvalidationRequest(InvalidationAction.CATEGORY_DELETED, (category_id,))
        )

    async def on_bulk_variations_saved(
        self,
        parent: int | ProductRef,
        variation_ids: Iterable[int] = (),
    ) -> bool:
        """Bulk variation edit on a variable product.

        Invalidates the parent and all of its variations in one bulk call.
        Children come from ``parent`` when it is a ProductRef, otherwise from
        the catalog; explicit ``variation_ids`` are always included.
        """
        if isinstance(parent, ProductRef):
            parent_id, children = parent.id, parent.children
        else:
            parent_id = int(parent)
            children = await self._children_of(parent_id)

        ids = tuple(dict.fromkeys((parent_id, *children, *variation_ids)))
        return await self._execute(InvalidationRequest(InvalidationAction.BULK_VARIATIONS, ids))

    async def on_bulk_products_saved(self, product_ids: Iterable[int]) -> bool:
        return await self._execute(
            InvalidationRequest(InvalidationAction.BULK_PRODUCTS, tuple(product_ids))
        )

    async def on_bulk_categories_changed(self, category_ids: Iterable[int]) -> bool:
        return await self._execute(
            InvalidationRequest(InvalidationAction.BULK_CATEGORIES, tuple(category_ids))
        )

    async def invalidate_pattern(self, pattern: str) -> bool:
        """Coarse invalidation, e.g. every "products_" key."""
        return await self._execute(
            InvalidationRequest(InvalidationAction.PATTERN, pattern=pattern)
        )

    async def flush_all(self) -> bool:
        """Flush every entry under the cache prefix."""
        return await self._execute(InvalidationRequest(InvalidationAction.FLUSH))

    # -------------------------------------------------------------------------
    # Recovery and statistics
    # -------------------------------------------------------------------------

    async def process_failed_invalidations(self) -> dict[str, int]:
        """Retry queued invalidations once each.

        Invalidation is idempotent, so replaying is always safe. Requests
        that fail again go back to the queue.
        """
        pending = list(self._failed)
        self._failed.clear()

        processed = failed = 0
        for item in pending:
            if await self._attempt(item.request):
                processed += 1
            else:
                failed += 1
                item.attempts += 1
                self._failed.append(item)

        if pending:
            logger.info(f"Retried {len(pending)} invalidations: {processed} ok, {failed} failed")
        return {"processed": processed, "failed": failed, "total": len(pending)}

    @property
    def pending_retries(self) -> int:
        return len(self._failed)

    def get_invalidation_stats(self, recent: int = 50) -> dict[str, Any]:
        """Totals per action and the most recent records, newest first."""
        records = list(self._log)[-recent:] if recent > 0 else []
        return {
            "total_invalidations": self._total,
            "actions": dict(self._actions),
            "recent_activity": [record.to_dict() for record in reversed(records)],
            "pending_retries": len(self._failed),
        }

    def clear_invalidation_logs(self) -> bool:
        """Clear the log and per-action totals. The retry queue is kept."""
        self._log.clear()
        self._actions.clear()
        self._total = 0
        return True
