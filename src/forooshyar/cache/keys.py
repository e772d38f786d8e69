"""Cache key schema for the product catalog cache.

Two kinds of keys live under the service prefix (default "forooshyar_"):

- Entity keys with fixed names, e.g. "product_42", "category_5".
- Query keys "{prefix}_{digest}" derived from a parameter map, where digest is
  a 128-bit BLAKE2b hex digest of the canonical JSON form of the parameters.

Every key starting with "products_" is a list key: it may contain any product
and is cleared whenever a product or category changes.
"""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Mapping
from typing import Any

import orjson

from forooshyar.cache.errors import CacheKeyError

DIGEST_SIZE = 16  # bytes -> 32 hex chars

_GLOB_CHARS = frozenset("*?[")


def _canonicalize(value: Any, path: str) -> Any:
    """Validate a parameter value and return its JSON-ready form.

    Scalars keep their JSON type, so "1", 1, 1.0 and True stay distinct.
    Tuples and lists are equivalent.
    """
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CacheKeyError(path, "is not a finite number")
        return value
    if isinstance(value, Mapping):
        result: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CacheKeyError(f"{path}.{key!r}", "has a non-string key")
            result[key] = _canonicalize(item, f"{path}.{key}")
        return result
    if isinstance(value, (list, tuple)):
        return [_canonicalize(item, f"{path}[{i}]") for i, item in enumerate(value)]
    raise CacheKeyError(path, f"has unsupported type {type(value).__name__}")


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    LIST_PREFIX = "products_"

    @classmethod
    def generate(cls, prefix: str, params: Mapping[str, Any]) -> str:
        """Derive a stable key from a prefix and a parameter map.

        The result does not depend on the insertion order of ``params`` and is
        stable across processes.

        Raises:
            CacheKeyError: If any value cannot be canonically serialized.
        """
        canonical = _canonicalize(params, "params")
        try:
            payload = orjson.dumps(canonical, option=orjson.OPT_SORT_KEYS)
        except orjson.JSONEncodeError as exc:
            # e.g. integers outside the 64-bit range
            raise CacheKeyError("params", str(exc)) from exc
        digest = hashlib.blake2b(payload, digest_size=DIGEST_SIZE).hexdigest()
        return f"{prefix}_{digest}"

    @staticmethod
    def product(product_id: int) -> str:
        """Key for a single product (simple, variable or variation)."""
        return f"product_{product_id}"

    @staticmethod
    def product_variations(product_id: int) -> str:
        """Key for the variation list of a variable product."""
        return f"product_{product_id}_variations"

    @staticmethod
    def category(category_id: int) -> str:
        """Key for a single category."""
        return f"category_{category_id}"

    @classmethod
    def category_products(cls, category_id: int) -> str:
        """Key for the product list scoped to a category."""
        return f"{cls.LIST_PREFIX}category_{category_id}"

    @classmethod
    def product_keys(cls, product_id: int) -> list[str]:
        """All entity keys owned by one product."""
        return [cls.product(product_id), cls.product_variations(product_id)]

    @classmethod
    def category_keys(cls, category_id: int) -> list[str]:
        """All entity keys owned by one category."""
        return [cls.category(category_id), cls.category_products(category_id)]

    @staticmethod
    def to_glob(pattern: str) -> str:
        """Normalize an invalidation pattern to a glob.

        A pattern without glob metacharacters is a prefix match.
        """
        if _GLOB_CHARS.intersection(pattern):
            return pattern
        return f"{pattern}*"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse an unprefixed cache key into its components.

        Returns None if the key doesn't match any known shape.
        """
        for kind, pattern in _KEY_SHAPES:
            match = pattern.fullmatch(key)
            if match:
                return {"kind": kind, **match.groupdict()}

        if key.startswith(cls.LIST_PREFIX):
            return {"kind": "list", "name": key[len(cls.LIST_PREFIX) :]}
        return None


# Checked in order; entity shapes win over the generic query shape
_KEY_SHAPES = (
    ("product_variations", re.compile(r"product_(?P<id>\d+)_variations")),
    ("product", re.compile(r"product_(?P<id>\d+)")),
    ("category_products", re.compile(rf"{CacheKeys.LIST_PREFIX}category_(?P<id>\d+)")),
    ("category", re.compile(r"category_(?P<id>\d+)")),
    ("query", re.compile(rf"(?P<prefix>.+)_(?P<digest>[0-9a-f]{{{DIGEST_SIZE * 2}}})")),
)
