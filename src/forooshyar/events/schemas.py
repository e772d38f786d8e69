"""Catalog mutation events.

These mirror the store's hooks (product saved/deleted, variation saved,
category edited, stock changed, bulk edits). Events carry ids only; the
invalidation side resolves relationships itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import uuid4


class CatalogEventType(str, Enum):
    """Type of catalog change."""

    SAVED = "saved"
    DELETED = "deleted"
    STOCK_CHANGED = "stock_changed"


@dataclass(frozen=True, slots=True)
class ProductEvent:
    """Event for product changes.

    ``parent_id`` is set when the host knows the product is a variation,
    which matters for deletes where the catalog can no longer answer.
    """

    event_type: CatalogEventType
    product_id: int
    parent_id: int | None = None
    entity: Literal["product"] = "product"
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class VariationEvent:
    """Event for single variation changes."""

    event_type: CatalogEventType
    variation_id: int
    parent_id: int | None = None
    entity: Literal["variation"] = "variation"
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class CategoryEvent:
    """Event for product category changes."""

    event_type: CatalogEventType
    category_id: int
    entity: Literal["category"] = "category"
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class BulkProductsEvent:
    """Event for bulk product edits."""

    product_ids: tuple[int, ...]
    entity: Literal["bulk_products"] = "bulk_products"
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class BulkVariationsEvent:
    """Event for bulk variation edits on one variable product."""

    parent_id: int
    variation_ids: tuple[int, ...] = ()
    entity: Literal["bulk_variations"] = "bulk_variations"
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class BulkCategoriesEvent:
    """Event for bulk category edits."""

    category_ids: tuple[int, ...]
    entity: Literal["bulk_categories"] = "bulk_categories"
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


AnyEvent = (
    ProductEvent
    | VariationEvent
    | CategoryEvent
    | BulkProductsEvent
    | BulkVariationsEvent
    | BulkCategoriesEvent
)
