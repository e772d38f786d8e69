"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from forooshyar.cache.backends import InMemoryBackend
from forooshyar.cache.invalidation import InvalidationCoordinator
from forooshyar.cache.service import CacheService
from forooshyar.catalog.base import InMemoryProductCatalog, ProductKind, ProductRef


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> InMemoryBackend:
    return InMemoryBackend(clock=clock)


@pytest.fixture
def catalog() -> InMemoryProductCatalog:
    """Catalog with a variable product 10 (variations 11, 12), a simple
    product 20, and category 5 holding products 10 and 20."""
    catalog = InMemoryProductCatalog()
    catalog.add_variable(10, [11, 12], categories=[5])
    catalog.add(ProductRef(20, ProductKind.SIMPLE), categories=[5])
    catalog.add(ProductRef(30, ProductKind.SIMPLE), categories=[6])
    return catalog


@pytest.fixture
def cache(backend: InMemoryBackend, catalog: InMemoryProductCatalog) -> CacheService:
    return CacheService(
        backend,
        catalog,
        enabled=True,
        ttl=3600,
        prefix="forooshyar_",
        list_patterns=["products_*"],
    )


@pytest.fixture
def coordinator(cache: CacheService) -> InvalidationCoordinator:
    return InvalidationCoordinator(cache, log_size=100, retry_limit=10)
