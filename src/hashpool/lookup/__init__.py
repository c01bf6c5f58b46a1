"""Existence checks for computed hashes."""

from .checker import (
    CachedHashChecker,
    CheckerOptions,
    HashChecker,
    InvalidHashError,
    LookupResult,
    create_hash_checker,
)

__all__ = [
    "CachedHashChecker",
    "CheckerOptions",
    "HashChecker",
    "InvalidHashError",
    "LookupResult",
    "create_hash_checker",
]
