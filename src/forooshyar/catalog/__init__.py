"""Product catalog collaborators used to resolve cache relationships."""

from forooshyar.catalog.base import (
    InMemoryProductCatalog,
    ProductCatalog,
    ProductKind,
    ProductRef,
)
from forooshyar.catalog.woocommerce import WooCommerceCatalog

__all__ = [
    "InMemoryProductCatalog",
    "ProductCatalog",
    "ProductKind",
    "ProductRef",
    "WooCommerceCatalog",
]
