"""Tests for the in-memory product catalog."""

from forooshyar.catalog.base import InMemoryProductCatalog, ProductKind, ProductRef


class TestInMemoryProductCatalog:
    """Test relationship lookups."""

    async def test_variable_product_registers_variations(self, catalog: InMemoryProductCatalog) -> None:
        parent = await catalog.get_product(10)
        variation = await catalog.get_product(11)

        assert parent is not None and parent.children == (11, 12)
        assert variation is not None and variation.parent_id == 10
        assert variation.kind == ProductKind.VARIATION

    async def test_unknown_product(self, catalog: InMemoryProductCatalog) -> None:
        assert await catalog.get_product(999) is None

    async def test_category_members(self, catalog: InMemoryProductCatalog) -> None:
        assert await catalog.get_category_product_ids(5) == [10, 20]
        assert await catalog.get_category_product_ids(999) == []

    async def test_remove(self, catalog: InMemoryProductCatalog) -> None:
        catalog.remove(20)
        assert await catalog.get_product(20) is None
        assert await catalog.get_category_product_ids(5) == [10]

    async def test_add_returns_product(self) -> None:
        catalog = InMemoryProductCatalog()
        product = ProductRef(1)
        assert catalog.add(product, categories=[3]) is product
        assert await catalog.get_category_product_ids(3) == [1]
