"""Tests for cache key generation."""

import random
import re

import pytest

from forooshyar.cache.errors import CacheKeyError
from forooshyar.cache.keys import CacheKeys

KEY_RE = re.compile(r"^products_[a-f0-9]{32}$")


class TestGenerate:
    """Test deterministic query keys."""

    def test_key_format(self) -> None:
        """Key is the prefix followed by 32 hex characters."""
        key = CacheKeys.generate("products", {"page": 1, "per_page": 10})
        assert KEY_RE.match(key)

    def test_empty_params(self) -> None:
        """Empty parameter maps still produce a well-formed key."""
        assert KEY_RE.match(CacheKeys.generate("products", {}))

    def test_deterministic(self) -> None:
        """Same inputs always produce the same key."""
        params = {"page": 2, "category": 5, "search": "shirt"}
        assert CacheKeys.generate("products", params) == CacheKeys.generate("products", params)

    def test_stable_across_processes(self) -> None:
        """Key is a pure function of the canonical JSON form."""
        assert CacheKeys.generate("products", {"a": 1}) == (
            "products_2c6b113b8dd15ffbded9860b43eb0c6c"
        )
        assert CacheKeys.generate("products", {"page": 1, "category": 5}) == (
            "products_23ee6820e15b23099ef9e28756390b6b"
        )

    def test_insertion_order_ignored(self) -> None:
        """Reordered maps produce the same key."""
        first = CacheKeys.generate("products", {"page": 1, "category": 5, "orderby": "date"})
        second = CacheKeys.generate("products", {"orderby": "date", "category": 5, "page": 1})
        assert first == second

    def test_nested_order_ignored(self) -> None:
        """Nested maps are canonicalized too."""
        first = CacheKeys.generate("products", {"filter": {"min": 1, "max": 9}})
        second = CacheKeys.generate("products", {"filter": {"max": 9, "min": 1}})
        assert first == second

    def test_list_order_matters(self) -> None:
        """Sequences are ordered."""
        first = CacheKeys.generate("products", {"include": [1, 2]})
        second = CacheKeys.generate("products", {"include": [2, 1]})
        assert first != second

    def test_tuple_equals_list(self) -> None:
        assert CacheKeys.generate("products", {"ids": (1, 2)}) == CacheKeys.generate(
            "products", {"ids": [1, 2]}
        )

    def test_value_change_changes_key(self) -> None:
        assert CacheKeys.generate("products", {"page": 1}) != CacheKeys.generate(
            "products", {"page": 2}
        )

    def test_prefix_change_changes_key(self) -> None:
        assert CacheKeys.generate("products", {"page": 1}) != CacheKeys.generate(
            "product", {"page": 1}
        )

    @pytest.mark.parametrize(
        ("left", "right"),
        [
            ("1", 1),
            (1, 1.0),
            (1, True),
            (0, False),
            (None, "null"),
            ("", None),
        ],
    )
    def test_scalar_types_are_distinct(self, left: object, right: object) -> None:
        """JSON types are part of the key."""
        assert CacheKeys.generate("products", {"v": left}) != CacheKeys.generate(
            "products", {"v": right}
        )

    def test_none_differs_from_absent(self) -> None:
        assert CacheKeys.generate("products", {"v": None}) != CacheKeys.generate("products", {})

    def test_randomized_distinct_maps_distinct_keys(self) -> None:
        """Distinct random parameter maps never collide."""
        rng = random.Random(20240101)
        seen: dict[str, tuple] = {}

        for _ in range(10_000):
            params = {
                "page": rng.randint(1, 50),
                "per_page": rng.choice([10, 20, 50, 100]),
                "category": rng.randint(0, 200),
                "search": rng.choice(["", "shirt", "shoe", "hat", "bag"]),
            }
            identity = tuple(sorted(params.items()))
            key = CacheKeys.generate("products", params)
            if key in seen:
                assert seen[key] == identity
            seen[key] = identity

        assert len(seen) == len(set(seen.values()))


class TestInvalidParams:
    """Values that cannot be canonically serialized are rejected."""

    def test_object_value(self) -> None:
        with pytest.raises(CacheKeyError) as exc_info:
            CacheKeys.generate("products", {"obj": object()})
        assert exc_info.value.path == "params.obj"

    def test_set_value(self) -> None:
        with pytest.raises(CacheKeyError):
            CacheKeys.generate("products", {"ids": {1, 2}})

    def test_nan_value(self) -> None:
        with pytest.raises(CacheKeyError):
            CacheKeys.generate("products", {"price": float("nan")})

    def test_non_string_key(self) -> None:
        with pytest.raises(CacheKeyError):
            CacheKeys.generate("products", {"filter": {1: "a"}})

    def test_nested_path_reported(self) -> None:
        with pytest.raises(CacheKeyError) as exc_info:
            CacheKeys.generate("products", {"filter": {"tags": ["a", b"b"]}})
        assert exc_info.value.path == "params.filter.tags[1]"

    def test_is_type_error(self) -> None:
        """Callers catching TypeError also catch key errors."""
        with pytest.raises(TypeError):
            CacheKeys.generate("products", {"when": object()})


class TestEntityKeys:
    """Test fixed entity key names."""

    def test_product_key(self) -> None:
        assert CacheKeys.product(42) == "product_42"

    def test_product_variations_key(self) -> None:
        assert CacheKeys.product_variations(42) == "product_42_variations"

    def test_category_key(self) -> None:
        assert CacheKeys.category(5) == "category_5"

    def test_category_products_key_is_a_list_key(self) -> None:
        """Category product lists are cleared with the other lists."""
        key = CacheKeys.category_products(5)
        assert key == "products_category_5"
        assert key.startswith(CacheKeys.LIST_PREFIX)

    def test_product_keys(self) -> None:
        assert CacheKeys.product_keys(7) == ["product_7", "product_7_variations"]

    def test_category_keys(self) -> None:
        assert CacheKeys.category_keys(5) == ["category_5", "products_category_5"]


class TestToGlob:
    """Test invalidation pattern normalization."""

    def test_prefix_becomes_glob(self) -> None:
        assert CacheKeys.to_glob("products_") == "products_*"

    def test_glob_kept(self) -> None:
        assert CacheKeys.to_glob("product_*_variations") == "product_*_variations"

    def test_question_mark_kept(self) -> None:
        assert CacheKeys.to_glob("product_?") == "product_?"

    def test_character_class_kept(self) -> None:
        assert CacheKeys.to_glob("product_[12]") == "product_[12]"


class TestParseKey:
    """Test parsing keys back into components."""

    def test_entity_keys(self) -> None:
        assert CacheKeys.parse_key("product_42") == {"kind": "product", "id": "42"}
        assert CacheKeys.parse_key("product_42_variations") == {"kind": "product_variations", "id": "42"}
        assert CacheKeys.parse_key("category_5") == {"kind": "category", "id": "5"}
        assert CacheKeys.parse_key("products_category_5") == {"kind": "category_products", "id": "5"}

    def test_generated_query_key(self) -> None:
        key = CacheKeys.generate("products", {"page": 1})
        parsed = CacheKeys.parse_key(key)
        assert parsed == {"kind": "query", "prefix": "products", "digest": key[len("products_") :]}

    def test_named_list_key(self) -> None:
        assert CacheKeys.parse_key("products_featured") == {"kind": "list", "name": "featured"}

    def test_unknown_key(self) -> None:
        assert CacheKeys.parse_key("settings") is None
        assert CacheKeys.parse_key("product_abc") is None
