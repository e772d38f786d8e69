"""Invalidation worker.

Consumes catalog mutation events from the bus and hands them to the
InvalidationCoordinator one at a time, so invalidations for a given entity
happen in the order the host published them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from forooshyar.events.schemas import (
    AnyEvent,
    BulkCategoriesEvent,
    BulkProductsEvent,
    BulkVariationsEvent,
    CatalogEventType,
    CategoryEvent,
    ProductEvent,
    VariationEvent,
)
from forooshyar.observability.logging import LogContext

if TYPE_CHECKING:
    from forooshyar.cache.invalidation import InvalidationCoordinator
    from forooshyar.events.bus import EventBus


logger = logging.getLogger(__name__)


class InvalidationWorker:
    """Sequential consumer that turns events into cache invalidations."""

    def __init__(self, bus: EventBus, coordinator: InvalidationCoordinator):
        self.bus = bus
        self.coordinator = coordinator
        self._running = False

    async def start(self) -> None:
        """Subscribe to the bus and start it."""
        if self._running:
            return

        self._running = True
        await self.bus.subscribe(self.handle_event)
        await self.bus.start()

        logger.info("InvalidationWorker started")

    async def stop(self) -> None:
        self._running = False
        await self.bus.stop()
        logger.info("InvalidationWorker stopped")

    async def handle_event(self, event: AnyEvent) -> bool:
        """Dispatch one event to the coordinator.

        Returns the coordinator's result; failed invalidations are already
        queued for retry by the coordinator.
        """
        with LogContext(event_id=getattr(event, "event_id", "")):
            return await self._dispatch(event)

    async def _dispatch(self, event: AnyEvent) -> bool:
        if isinstance(event, ProductEvent):
            success = await self._handle_product_event(event)
        elif isinstance(event, VariationEvent):
            success = await self._handle_variation_event(event)
        elif isinstance(event, CategoryEvent):
            if event.event_type == CatalogEventType.DELETED:
                success = await self.coordinator.on_category_deleted(event.category_id)
            else:
                success = await self.coordinator.on_category_changed(event.category_id)
        elif isinstance(event, BulkProductsEvent):
            success = await self.coordinator.on_bulk_products_saved(event.product_ids)
        elif isinstance(event, BulkVariationsEvent):
            success = await self.coordinator.on_bulk_variations_saved(
                event.parent_id, event.variation_ids
            )
        elif isinstance(event, BulkCategoriesEvent):
            success = await self.coordinator.on_bulk_categories_changed(event.category_ids)
        else:
            logger.warning(f"Unknown event type: {type(event)}")
            return False

        if not success:
            logger.warning(f"Invalidation for {event.entity} event {event.event_id} failed")
        return success

    async def _handle_product_event(self, event: ProductEvent) -> bool:
        if event.event_type == CatalogEventType.DELETED:
            return await self.coordinator.on_product_deleted(event.product_id, event.parent_id)
        if event.event_type == CatalogEventType.STOCK_CHANGED:
            return await self.coordinator.on_stock_changed(event.product_id, event.parent_id)
        return await self.coordinator.on_product_saved(event.product_id, event.parent_id)

    async def _handle_variation_event(self, event: VariationEvent) -> bool:
        if event.event_type == CatalogEventType.DELETED:
            return await self.coordinator.on_variation_deleted(event.variation_id, event.parent_id)
        if event.event_type == CatalogEventType.STOCK_CHANGED:
            return await self.coordinator.on_stock_changed(event.variation_id, event.parent_id)
        return await self.coordinator.on_variation_saved(event.variation_id, event.parent_id)
