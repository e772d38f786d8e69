"""Product relationship lookups consumed by the cache layer.

The cache only needs to know how products relate to each other: whether a
product is a variation (and of which parent), which variations a variable
product has, and which products belong to a category.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class ProductKind(str, Enum):
    """WooCommerce product type as far as caching is concerned."""

    SIMPLE = "simple"
    VARIABLE = "variable"
    VARIATION = "variation"


@dataclass(frozen=True, slots=True)
class ProductRef:
    """Relationship view of a product."""

    id: int
    kind: ProductKind = ProductKind.SIMPLE
    parent_id: int = 0
    children: tuple[int, ...] = ()

    @property
    def is_variation(self) -> bool:
        return self.kind == ProductKind.VARIATION

    @property
    def is_variable(self) -> bool:
        return self.kind == ProductKind.VARIABLE


class ProductCatalog(ABC):
    """Abstract product store.

    Implementations raise CatalogLookupError when the store cannot answer;
    an unknown product is not an error and yields None.
    """

    @abstractmethod
    async def get_product(self, product_id: int) -> ProductRef | None:
        """Look up a product by ID."""
        pass

    @abstractmethod
    async def get_category_product_ids(self, category_id: int) -> list[int]:
        """IDs of all products assigned to a category."""
        pass


class InMemoryProductCatalog(ProductCatalog):
    """Dict-backed catalog for tests and fixtures."""

    def __init__(self) -> None:
        self._products: dict[int, ProductRef] = {}
        self._categories: dict[int, set[int]] = {}

    def add(self, product: ProductRef, categories: Iterable[int] = ()) -> ProductRef:
        """Register a product and its category assignments."""
        self._products[product.id] = product
        for category_id in categories:
            self._categories.setdefault(category_id, set()).add(product.id)
        return product

    def add_variable(
        self,
        product_id: int,
        variation_ids: Iterable[int],
        categories: Iterable[int] = (),
    ) -> ProductRef:
        """Register a variable product together with its variations."""
        children = tuple(variation_ids)
        for variation_id in children:
            self.add(
                ProductRef(id=variation_id, kind=ProductKind.VARIATION, parent_id=product_id)
            )
        return self.add(
            ProductRef(id=product_id, kind=ProductKind.VARIABLE, children=children),
            categories,
        )

    def remove(self, product_id: int) -> None:
        self._products.pop(product_id, None)
        for members in self._categories.values():
            members.discard(product_id)

    async def get_product(self, product_id: int) -> ProductRef | None:
        return self._products.get(product_id)

    async def get_category_product_ids(self, category_id: int) -> list[int]:
        return sorted(self._categories.get(category_id, set()))
