"""Tests for the TTL results cache."""

from cotton_finder.cache import TTLCache


class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Tests for TTLCache expiry."""

    def test_get_before_expiry(self):
        clock = FakeTime()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("tee:10", ["a"])

        clock.now += 9.9
        assert cache.get("tee:10") == ["a"]

    def test_expires_after_ttl(self):
        clock = FakeTime()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("tee:10", ["a"])

        clock.now += 10
        assert cache.get("tee:10") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        clock = FakeTime()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)

        clock.now += 5
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_missing_key(self):
        assert TTLCache().get("nothing") is None

    def test_delete_and_clear(self):
        cache = TTLCache(ttl_seconds=60)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        assert cache.get("a") is None
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0
