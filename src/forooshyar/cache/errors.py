"""Error taxonomy for the cache layer.

Only CacheKeyError is meant to reach callers. The other errors are raised by
collaborators (backend, catalog) and recovered inside the cache layer.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base class for cache layer errors."""


class CacheKeyError(CacheError, TypeError):
    """A cache key parameter cannot be canonically serialized."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot build cache key: parameter {path!r} {reason}")


class BackendUnavailableError(CacheError):
    """The backend store cannot be reached or is not initialized."""


class CatalogLookupError(CacheError):
    """A product or category relationship lookup failed."""

    def __init__(self, message: str, entity_id: int | None = None) -> None:
        self.entity_id = entity_id
        super().__init__(message)
