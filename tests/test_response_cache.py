from app.utils.response_cache import ResponseCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = FakeClock()
    cache = ResponseCache(default_ttl=60, clock=clock)
    cache.set("overview:cafe-1:180", {"ok": True})
    assert cache.get("overview:cafe-1:180") == {"ok": True}
    clock.now += 61
    assert cache.get("overview:cafe-1:180") is None


def test_bounded_entries_evict_soonest_expiry():
    clock = FakeClock()
    cache = ResponseCache(max_entries=2, default_ttl=60, clock=clock)
    cache.set("a", 1)
    clock.now += 1
    cache.set("b", 2)
    clock.now += 1
    cache.set("c", 3)
    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_overwrite_at_capacity_keeps_other_entries():
    cache = ResponseCache(max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert cache.get("a") == 10
    assert cache.get("b") == 2


def test_zero_ttl_disables_caching():
    cache = ResponseCache(default_ttl=0)
    cache.set("a", 1)
    assert cache.get("a") is None


def test_invalidate_by_prefix():
    cache = ResponseCache()
    cache.set("overview:cafe-1:180", 1)
    cache.set("overview:cafe-1:30", 2)
    cache.set("overview:cafe-2:180", 3)
    assert cache.invalidate("overview:cafe-1:") == 2
    assert cache.get("overview:cafe-2:180") == 3
