"""Tests for the in-memory result cache.

Time is injected through a fake clock so expiry can be checked exactly,
without sleeping.
"""

import pytest
from hypothesis import given, strategies as st

from precohora.cache import ResultCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(clock=clock)


class TestKeyBuilding:
    """Test suite for canonical key construction."""

    def test_key_independent_of_parameter_order(self) -> None:
        first = ResultCache.build_key("coordinates", {"lat": -12.97, "lng": -38.5, "type": "etanol"})
        second = ResultCache.build_key("coordinates", {"type": "etanol", "lng": -38.5, "lat": -12.97})

        assert first == second

    def test_key_format(self) -> None:
        key = ResultCache.build_key("coordinates", {"radius": 5, "lat": 1.5})

        assert key == "coordinates:lat=1.5&radius=5"

    def test_different_values_give_different_keys(self) -> None:
        assert ResultCache.build_key("coordinates", {"radius": 5}) != ResultCache.build_key(
            "coordinates", {"radius": 10}
        )

    @given(
        params=st.dictionaries(
            keys=st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=8),
            values=st.one_of(
                st.integers(),
                st.floats(allow_nan=False),
                st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789 -", max_size=10),
            ),
            max_size=6,
        )
    )
    def test_key_never_depends_on_insertion_order(self, params: dict) -> None:
        """Property: reversing the mapping's insertion order yields the same key."""
        reversed_params = dict(reversed(list(params.items())))

        assert ResultCache.build_key("coordinates", params) == ResultCache.build_key(
            "coordinates", reversed_params
        )


class TestExpiry:
    """Test suite for TTL semantics."""

    def test_value_retrievable_before_expiry(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.put("k", ("a",), ttl_seconds=60)
        clock.advance(59.9)

        assert cache.get("k") == ("a",)

    def test_value_absent_at_expiry(self, cache: ResultCache, clock: FakeClock) -> None:
        """Verify an entry expires exactly when its TTL elapses."""
        cache.put("k", ("a",), ttl_seconds=60)
        clock.advance(60)

        assert cache.get("k") is None

    def test_expired_entry_evicted_on_lookup(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.put("k", ("a",), ttl_seconds=1)
        clock.advance(5)

        assert len(cache) == 1
        cache.get("k")
        assert len(cache) == 0

    def test_put_replaces_existing_entry(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.put("k", ("old",), ttl_seconds=10)
        clock.advance(8)
        cache.put("k", ("new",), ttl_seconds=10)
        clock.advance(8)

        assert cache.get("k") == ("new",)

    def test_missing_key(self, cache: ResultCache) -> None:
        assert cache.get("nothing") is None


class TestEnableGate:
    """Test suite for disabling and re-enabling the cache."""

    def test_disabled_cache_hides_entries(self, cache: ResultCache) -> None:
        cache.put("k", ("a",), ttl_seconds=60)
        cache.set_enabled(False)

        assert cache.get("k") is None
        assert not cache.enabled

    def test_reenabling_restores_unexpired_entries(self, cache: ResultCache) -> None:
        """Verify disabling is a visibility gate rather than a purge."""
        cache.put("k", ("a",), ttl_seconds=60)
        cache.set_enabled(False)
        cache.set_enabled(True)

        assert cache.get("k") == ("a",)

    def test_put_while_disabled_is_noop(self, clock: FakeClock) -> None:
        cache = ResultCache(enabled=False, clock=clock)
        cache.put("k", ("a",), ttl_seconds=60)
        cache.set_enabled(True)

        assert cache.get("k") is None
        assert len(cache) == 0


class TestRemoval:
    """Test suite for explicit removal."""

    def test_invalidate_single_key(self, cache: ResultCache) -> None:
        cache.put("a", 1, ttl_seconds=60)
        cache.put("b", 2, ttl_seconds=60)

        cache.invalidate("a")

        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_invalidate_unknown_key_is_harmless(self, cache: ResultCache) -> None:
        cache.invalidate("ghost")

        assert len(cache) == 0

    def test_clear_removes_everything(self, cache: ResultCache) -> None:
        cache.put("a", 1, ttl_seconds=60)
        cache.put("b", 2, ttl_seconds=60)

        cache.clear()

        assert len(cache) == 0
        assert cache.get("a") is None
