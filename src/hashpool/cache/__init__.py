"""In-memory caches backing hash lookups."""

from .lru import BoundedCache

__all__ = ["BoundedCache"]
