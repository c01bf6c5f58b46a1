"""Fixed-capacity key/value store with least-recently-used eviction."""

from collections import OrderedDict
from typing import Any, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """
    Key/value store holding at most ``max_size`` entries.

    Reads promote an entry to most-recently-used. Writing past capacity
    evicts exactly one entry, the least recently used. No expiry is
    applied here; callers layer time-to-live on top.
    """

    def __init__(self, max_size: int) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._entries: "OrderedDict[K, V]" = OrderedDict()

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def size(self) -> int:
        return len(self._entries)

    def get(self, key: K, default: Optional[Any] = None) -> Any:
        """Return the value for ``key`` and mark it most-recently-used."""
        if key not in self._entries:
            return default
        self._entries.move_to_end(key)
        return self._entries[key]

    def set(self, key: K, value: V) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def has(self, key: K) -> bool:
        return key in self._entries

    def delete(self, key: K) -> bool:
        if key not in self._entries:
            return False
        del self._entries[key]
        return True

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
