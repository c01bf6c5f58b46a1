"""Tests for validated, cached hash existence checks."""

import asyncio
import time

import pytest

from hashpool.lookup import (
    CachedHashChecker,
    HashChecker,
    InvalidHashError,
    LookupResult,
    create_hash_checker,
)

VALID_HASH = "a1b2c3d4" * 8
OTHER_HASH = "0f" * 32
NON_HEX_HASH = "g" * 64


class CountingLookup:
    """Async lookup that records every hash it is asked about."""

    def __init__(self, known=(), fail=False):
        self.known = set(known)
        self.fail = fail
        self.calls = []

    async def __call__(self, hash):
        self.calls.append(hash)
        if self.fail:
            raise ConnectionError("store unavailable")
        if hash in self.known:
            return LookupResult(exists=True, existing={"hash": hash})
        return LookupResult(exists=False)


def run(coro):
    return asyncio.run(coro)


class TestDefaultChecker:
    def test_valid_hash_delegates_to_lookup(self):
        """Test that a valid hash reaches the lookup and its answer is returned."""
        lookup = CountingLookup(known={VALID_HASH})
        check = create_hash_checker(lookup)

        result = run(check(VALID_HASH))

        assert result == LookupResult(exists=True, existing={"hash": VALID_HASH})
        assert lookup.calls == [VALID_HASH]

    def test_uppercase_hash_is_normalized(self):
        """Test that the lookup always receives a lowercase hash."""
        lookup = CountingLookup(known={VALID_HASH})
        check = create_hash_checker(lookup)

        result = run(check(VALID_HASH.upper()))

        assert result.exists is True
        assert lookup.calls == [VALID_HASH]

    @pytest.mark.parametrize("bad", ["short", NON_HEX_HASH, VALID_HASH + "0", "", None, 12345])
    def test_invalid_hash_raises(self, bad):
        """Test that malformed input raises before any lookup."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup)

        with pytest.raises(InvalidHashError, match="must be 64 hexadecimal characters"):
            run(check(bad))
        assert lookup.calls == []

    def test_invalid_hash_message(self):
        """Test the exact validation message."""
        check = create_hash_checker(CountingLookup())

        with pytest.raises(InvalidHashError) as excinfo:
            run(check("short"))
        assert str(excinfo.value) == "Invalid hash: must be 64 hexadecimal characters"

    def test_invalid_hash_error_is_value_error(self):
        """Test that validation failures can be caught as ValueError."""
        check = create_hash_checker(CountingLookup())

        with pytest.raises(ValueError):
            run(check("short"))

    def test_mapping_results_are_converted(self):
        """Test that a lookup returning a plain dict is accepted."""
        async def lookup(hash):
            return {"exists": True, "existing": 42}

        result = run(create_hash_checker(lookup)(VALID_HASH))

        assert result == LookupResult(exists=True, existing=42)

    def test_lookup_error_propagates(self):
        """Test that lookup failures reach the caller unchanged."""
        check = create_hash_checker(CountingLookup(fail=True))

        with pytest.raises(ConnectionError, match="store unavailable"):
            run(check(VALID_HASH))

    def test_uncached_checker_has_no_clear_cache(self):
        """Test that only cached checkers expose cache management."""
        check = create_hash_checker(CountingLookup())

        assert not hasattr(check, "clear_cache")
        assert not hasattr(check.ignore_invalid(), "clear_cache")


class TestIgnoreInvalid:
    @pytest.mark.parametrize("bad", ["short", NON_HEX_HASH])
    def test_invalid_hash_resolves_to_not_found(self, bad):
        """Test that tolerant checkers answer exists=False without a lookup."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup).ignore_invalid()

        result = run(check(bad))

        assert result == LookupResult(exists=False, existing=None)
        assert lookup.calls == []

    def test_valid_hash_still_looked_up(self):
        """Test that tolerant checkers still check valid hashes."""
        lookup = CountingLookup(known={VALID_HASH})
        check = create_hash_checker(lookup).ignore_invalid()

        assert run(check(VALID_HASH)).exists is True
        assert lookup.calls == [VALID_HASH]

    def test_original_checker_unaffected(self):
        """Test that deriving a tolerant checker leaves the original strict."""
        strict = create_hash_checker(CountingLookup())
        tolerant = strict.ignore_invalid()

        assert tolerant is not strict
        assert run(tolerant("short")).exists is False
        with pytest.raises(InvalidHashError):
            run(strict("short"))


class TestCachedChecker:
    def test_repeat_calls_hit_cache(self):
        """Test that the same hash is looked up once within the TTL."""
        lookup = CountingLookup(known={VALID_HASH})
        check = create_hash_checker(lookup).cached(ttl=60)

        first = run(check(VALID_HASH))
        second = run(check(VALID_HASH.upper()))

        assert first == second
        assert lookup.calls == [VALID_HASH]

    def test_negative_results_are_cached(self):
        """Test that exists=False outcomes are memoized too."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup).cached()

        run(check(OTHER_HASH))
        run(check(OTHER_HASH))

        assert lookup.calls == [OTHER_HASH]

    def test_expired_entry_is_looked_up_again(self):
        """Test that a call after the TTL invokes the lookup again."""
        lookup = CountingLookup(known={VALID_HASH})
        check = create_hash_checker(lookup).cached(ttl=0.05)

        run(check(VALID_HASH))
        run(check(VALID_HASH))
        assert len(lookup.calls) == 1

        time.sleep(0.06)
        run(check(VALID_HASH))
        assert len(lookup.calls) == 2

    def test_zero_ttl_never_hits(self):
        """Test that a zero TTL makes every call a miss."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup).cached(ttl=0)

        run(check(VALID_HASH))
        run(check(VALID_HASH))

        assert len(lookup.calls) == 2

    def test_lookup_errors_are_not_cached(self):
        """Test that a failed lookup is retried on the next call."""
        lookup = CountingLookup(fail=True)
        check = create_hash_checker(lookup).cached()

        with pytest.raises(ConnectionError):
            run(check(VALID_HASH))
        assert check.cache_size == 0

        lookup.fail = False
        assert run(check(VALID_HASH)).exists is False
        assert len(lookup.calls) == 2

    def test_max_size_evicts_least_recently_used(self):
        """Test that the cache holds at most max_size hashes."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup).cached(max_size=1)

        run(check(VALID_HASH))
        run(check(OTHER_HASH))
        run(check(VALID_HASH))

        assert lookup.calls == [VALID_HASH, OTHER_HASH, VALID_HASH]
        assert check.cache_size == 1

    def test_clear_cache(self):
        """Test that clearing the cache forces fresh lookups."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup).cached()

        run(check(VALID_HASH))
        check.clear_cache()
        run(check(VALID_HASH))

        assert len(lookup.calls) == 2

    def test_invalid_hash_raises_without_caching(self):
        """Test that cached strict checkers still validate first."""
        lookup = CountingLookup()
        check = create_hash_checker(lookup).cached()

        with pytest.raises(InvalidHashError):
            run(check("short"))
        assert check.cache_size == 0

    def test_each_cached_call_gets_fresh_cache(self):
        """Test that cached variants never share entries."""
        lookup = CountingLookup()
        base = create_hash_checker(lookup)
        first = base.cached()
        second = base.cached()

        run(first(VALID_HASH))
        run(second(VALID_HASH))

        assert len(lookup.calls) == 2
        assert first.cache_size == 1
        assert second.cache_size == 1

    def test_derived_checker_does_not_touch_parent_cache(self):
        """Test that ignore_invalid on a cached checker starts with its own cache."""
        lookup = CountingLookup()
        parent = create_hash_checker(lookup).cached(ttl=60, max_size=10)
        run(parent(VALID_HASH))

        child = parent.ignore_invalid()
        run(child(OTHER_HASH))

        assert isinstance(child, CachedHashChecker)
        assert child.options.cache_ttl == 60
        assert child.options.cache_max_size == 10
        assert parent.cache_size == 1
        assert child.cache_size == 1

    def test_negative_ttl_rejected(self):
        """Test that a negative TTL is refused."""
        with pytest.raises(ValueError):
            create_hash_checker(CountingLookup()).cached(ttl=-1)


class TestModifierComposition:
    def test_modifiers_commute(self):
        """Test that ignore_invalid and cached compose in either order."""
        lookup_a = CountingLookup(known={VALID_HASH})
        lookup_b = CountingLookup(known={VALID_HASH})
        a = create_hash_checker(lookup_a).ignore_invalid().cached(ttl=60, max_size=5)
        b = create_hash_checker(lookup_b).cached(ttl=60, max_size=5).ignore_invalid()

        assert a.options == b.options
        assert type(a) is type(b) is CachedHashChecker

        for check, lookup in ((a, lookup_a), (b, lookup_b)):
            assert run(check("short")) == LookupResult(exists=False, existing=None)
            assert run(check(VALID_HASH)).exists is True
            assert run(check(VALID_HASH)).exists is True
            assert lookup.calls == [VALID_HASH]

    def test_modifiers_return_new_instances(self):
        """Test that every modifier returns a distinct checker."""
        base = create_hash_checker(CountingLookup())

        assert isinstance(base, HashChecker)
        assert base.ignore_invalid() is not base
        assert base.cached() is not base
        assert base.options.ignore_invalid is False
        assert base.options.cached is False
