"""Tests for fleetmatch/services/cache.py

Run with:  pytest tests/test_cache.py -v
"""

from fleetmatch.services.cache import InMemoryTTLCache, cached


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _cache():
    clock = FakeClock()
    return InMemoryTTLCache(clock=clock), clock


class TestInMemoryTTLCache:
    def test_hit_before_expiry(self):
        cache, clock = _cache()
        cache.set("cargo:list", [1, 2], ttl=120)
        clock.advance(119)
        assert cache.get("cargo:list") == [1, 2]

    def test_miss_after_expiry(self):
        cache, clock = _cache()
        cache.set("cargo:list", [1, 2], ttl=120)
        clock.advance(120)
        assert cache.get("cargo:list", "gone") == "gone"
        assert len(cache) == 0

    def test_non_positive_ttl_not_stored(self):
        cache, _ = _cache()
        cache.set("a", 1, ttl=0)
        cache.set("b", 1, ttl=-5)
        assert len(cache) == 0

    def test_invalidate_prefix(self):
        cache, _ = _cache()
        cache.set("vehicle:one:1", "a", ttl=30)
        cache.set("vehicle:list:*", "b", ttl=30)
        cache.set("cargo:one:1", "c", ttl=30)
        assert cache.invalidate_prefix("vehicle:") == 2
        assert cache.get("vehicle:one:1") is None
        assert cache.get("cargo:one:1") == "c"
        assert cache.invalidate_prefix("vehicle:") == 0

    def test_invalidate_and_clear(self):
        cache, _ = _cache()
        cache.set("a", 1, ttl=30)
        cache.set("b", 2, ttl=30)
        cache.invalidate("a")
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestCachedLoader:
    def test_loads_once_within_ttl(self):
        cache, clock = _cache()
        calls = []

        def loader():
            calls.append(1)
            return len(calls)

        assert cached(cache, "k", 10, loader) == 1
        clock.advance(5)
        assert cached(cache, "k", 10, loader) == 1
        clock.advance(10)
        assert cached(cache, "k", 10, loader) == 2

    def test_none_is_cached(self):
        cache, _ = _cache()
        calls = []

        def loader():
            calls.append(1)
            return None

        assert cached(cache, "vehicle:one:ghost", 30, loader) is None
        assert cached(cache, "vehicle:one:ghost", 30, loader) is None
        assert len(calls) == 1
