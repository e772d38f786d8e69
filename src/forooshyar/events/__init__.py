"""Catalog mutation events.

The host publishes one event per store hook (product saved, variation
deleted, category edited, bulk edits, ...) to an event bus. A single
InvalidationWorker consumes them in order and drives the
InvalidationCoordinator, so cache invalidation stays off the host's
request path.
"""

from forooshyar.events.bus import EventBus, InMemoryEventBus
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
from forooshyar.events.worker import InvalidationWorker

__all__ = [
    # Event types
    "CatalogEventType",
    "ProductEvent",
    "VariationEvent",
    "CategoryEvent",
    "BulkProductsEvent",
    "BulkVariationsEvent",
    "BulkCategoriesEvent",
    "AnyEvent",
    # Bus
    "EventBus",
    "InMemoryEventBus",
    # Workers
    "InvalidationWorker",
]
