"""
Tests for archive_spine.core.cache module.

Covers:
- InMemoryCache: get/set/delete/exists/clear, LRU eviction, TTL expiry
- TTL boundary: an entry read exactly at expiry is gone
- A TTL of zero or less stores nothing
- CacheTiers defaults
"""

from archive_spine.core.cache import CacheTiers, InMemoryCache


class Tick:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.t = start

    def __call__(self) -> float:
        return self.t


class TestInMemoryCache:
    """Test InMemoryCache backend."""

    def test_basic_get_set(self):
        """Cache should store and retrieve values."""
        cache = InMemoryCache(max_size=100, default_ttl_seconds=None)
        cache.set("key1", {"data": [1, 2, 3]})
        assert cache.get("key1") == {"data": [1, 2, 3]}

    def test_get_missing_key(self):
        cache = InMemoryCache()
        assert cache.get("missing") is None

    def test_delete(self):
        cache = InMemoryCache()
        cache.set("key1", "value1")
        assert cache.exists("key1")
        cache.delete("key1")
        assert not cache.exists("key1")
        assert cache.get("key1") is None

    def test_delete_missing_is_noop(self):
        cache = InMemoryCache()
        cache.delete("never-set")
        assert cache.size() == 0

    def test_clear(self):
        cache = InMemoryCache()
        cache.set("k1", 1)
        cache.set("k2", 2)
        assert cache.size() == 2
        cache.clear()
        assert cache.size() == 0
        assert not cache.exists("k1")

    def test_lru_eviction(self):
        """Oldest key should be evicted when max_size reached."""
        cache = InMemoryCache(max_size=3, default_ttl_seconds=None)
        cache.set("k1", 1)
        cache.set("k2", 2)
        cache.set("k3", 3)

        cache.set("k4", 4)
        assert cache.size() == 3
        assert not cache.exists("k1")
        assert cache.exists("k4")

    def test_lru_updates_on_get(self):
        cache = InMemoryCache(max_size=3, default_ttl_seconds=None)
        cache.set("k1", 1)
        cache.set("k2", 2)
        cache.set("k3", 3)

        cache.get("k1")
        cache.set("k4", 4)
        assert cache.exists("k1")
        assert not cache.exists("k2")


class TestInMemoryCacheTtl:
    """Expiry is checked on every read, against the injected clock."""

    def test_entry_served_before_expiry(self):
        tick = Tick()
        cache = InMemoryCache(default_ttl_seconds=None, clock=tick)
        cache.set("min", {"min_ts": None}, ttl_seconds=3600)
        tick.t += 3599
        assert cache.get("min") == {"min_ts": None}

    def test_entry_gone_at_exact_expiry(self):
        tick = Tick()
        cache = InMemoryCache(clock=tick)
        cache.set("min", {"min_ts": None}, ttl_seconds=3600)
        tick.t += 3600
        assert cache.get("min") is None
        assert not cache.exists("min")

    def test_entry_gone_long_after_expiry(self):
        tick = Tick()
        cache = InMemoryCache(clock=tick)
        cache.set("min", "v", ttl_seconds=10)
        tick.t += 86_400
        assert cache.get("min") is None
        assert cache.size() == 0

    def test_default_ttl_applies(self):
        tick = Tick()
        cache = InMemoryCache(default_ttl_seconds=5, clock=tick)
        cache.set("k", "v")
        tick.t += 5
        assert cache.get("k") is None

    def test_explicit_ttl_overrides_default(self):
        tick = Tick()
        cache = InMemoryCache(default_ttl_seconds=3600, clock=tick)
        cache.set("k", "v", ttl_seconds=1)
        tick.t += 1
        assert not cache.exists("k")

    def test_no_ttl_lives_forever(self):
        tick = Tick()
        cache = InMemoryCache(default_ttl_seconds=None, clock=tick)
        cache.set("sites", [1, 2])
        tick.t += 10 * 365 * 86_400
        assert cache.get("sites") == [1, 2]

    def test_zero_ttl_is_not_stored(self):
        tick = Tick()
        cache = InMemoryCache(default_ttl_seconds=None, clock=tick)
        cache.set("min", {"min_ts": None}, ttl_seconds=0)
        assert cache.get("min") is None
        assert cache.size() == 0

    def test_zero_ttl_drops_previous_value(self):
        tick = Tick()
        cache = InMemoryCache(default_ttl_seconds=None, clock=tick)
        cache.set("min", "old")
        cache.set("min", "new", ttl_seconds=0)
        assert not cache.exists("min")

    def test_zero_default_ttl_is_not_stored(self):
        cache = InMemoryCache(default_ttl_seconds=0, clock=Tick())
        cache.set("k", "v")
        assert cache.get("k") is None

    def test_negative_ttl_is_not_stored(self):
        cache = InMemoryCache(clock=Tick())
        cache.set("k", "v", ttl_seconds=-5)
        assert not cache.exists("k")

    def test_overwrite_refreshes_expiry(self):
        tick = Tick()
        cache = InMemoryCache(clock=tick)
        cache.set("k", "old", ttl_seconds=10)
        tick.t += 9
        cache.set("k", "new", ttl_seconds=10)
        tick.t += 9
        assert cache.get("k") == "new"


class TestCacheTiers:
    def test_defaults(self):
        tiers = CacheTiers()
        assert isinstance(tiers.transient, InMemoryCache)
        assert isinstance(tiers.lazy, InMemoryCache)

    def test_tiers_are_independent(self):
        tiers = CacheTiers()
        tiers.transient.set("k", 1)
        assert tiers.lazy.get("k") is None
