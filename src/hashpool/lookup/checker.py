"""Validated, optionally cached existence checks for perceptual hashes.

A checker wraps a caller-supplied coroutine that answers "is this hash
already known?" (a database query, a remote API call). Checkers are
immutable: ``ignore_invalid()`` and ``cached()`` each return a new checker
built from the current options plus one change, so variants can be derived
freely without affecting each other::

    check = create_hash_checker(lookup).ignore_invalid().cached(ttl=300)
    result = await check(hex_hash)
"""

import math
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Mapping, Union

from ..cache import BoundedCache
from ..dedup.hash import HASH_HEX_LENGTH, is_valid_hash
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_CACHE_SIZE = 1000


class InvalidHashError(ValueError):
    """Raised when a hash is not a 64 character hexadecimal string."""


@dataclass(frozen=True)
class LookupResult:
    exists: bool
    existing: Any = None


Lookup = Callable[[str], Awaitable[Union[LookupResult, Mapping[str, Any]]]]


@dataclass(frozen=True)
class CheckerOptions:
    ignore_invalid: bool = False
    cached: bool = False
    cache_ttl: float = math.inf
    cache_max_size: int = DEFAULT_CACHE_SIZE


@dataclass(frozen=True)
class CacheEntry:
    result: LookupResult
    timestamp: float


class HashChecker:
    """Awaitable hash existence check with chainable modifiers."""

    def __init__(self, lookup: Lookup, options: CheckerOptions = CheckerOptions()) -> None:
        self._lookup = lookup
        self._options = options

    @property
    def options(self) -> CheckerOptions:
        return self._options

    async def __call__(self, hash: str) -> LookupResult:
        if not is_valid_hash(hash):
            if self._options.ignore_invalid:
                logger.debug(f"Ignoring invalid hash {hash!r}")
                return LookupResult(exists=False, existing=None)
            raise InvalidHashError(f"Invalid hash: must be {HASH_HEX_LENGTH} hexadecimal characters")

        return await self._check(hash.lower())

    async def _check(self, normalized: str) -> LookupResult:
        return _as_result(await self._lookup(normalized))

    def ignore_invalid(self) -> "HashChecker":
        """Return a checker that answers ``exists=False`` for malformed hashes instead of raising."""
        return _build(self._lookup, replace(self._options, ignore_invalid=True))

    def cached(self, ttl: float = math.inf, max_size: int = DEFAULT_CACHE_SIZE) -> "CachedHashChecker":
        """
        Return a checker that memoizes lookup results.

        Args:
            ttl: Seconds a result stays valid (default: forever)
            max_size: Maximum number of cached hashes, least recently used
                evicted first
        """
        if ttl < 0:
            raise ValueError(f"ttl must not be negative, got {ttl}")
        options = replace(self._options, cached=True, cache_ttl=ttl, cache_max_size=max_size)
        return CachedHashChecker(self._lookup, options)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._options})"


class CachedHashChecker(HashChecker):
    """Hash checker backed by its own LRU cache with time-to-live."""

    def __init__(self, lookup: Lookup, options: CheckerOptions) -> None:
        super().__init__(lookup, options)
        self._cache: BoundedCache[str, CacheEntry] = BoundedCache(options.cache_max_size)

    @property
    def cache_size(self) -> int:
        return self._cache.size

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _check(self, normalized: str) -> LookupResult:
        entry = self._cache.get(normalized)
        if entry is not None:
            if time.monotonic() - entry.timestamp < self._options.cache_ttl:
                return entry.result
            self._cache.delete(normalized)

        # Lookup failures propagate before anything is stored
        result = await super()._check(normalized)
        self._cache.set(normalized, CacheEntry(result=result, timestamp=time.monotonic()))
        return result


def create_hash_checker(lookup: Lookup) -> HashChecker:
    """
    Wrap an async lookup in a validating hash checker.

    Args:
        lookup: Coroutine function taking a lowercase hex hash and returning
            a LookupResult (or a mapping with ``exists``/``existing`` keys)

    Returns:
        A strict, uncached HashChecker
    """
    return HashChecker(lookup)


def _build(lookup: Lookup, options: CheckerOptions) -> HashChecker:
    # Derived cached checkers get a fresh cache with the same limits
    if options.cached:
        return CachedHashChecker(lookup, options)
    return HashChecker(lookup, options)


def _as_result(value: Union[LookupResult, Mapping[str, Any]]) -> LookupResult:
    if isinstance(value, LookupResult):
        return value
    return LookupResult(exists=bool(value["exists"]), existing=value.get("existing"))
