from growchamber.utils.cache import TTLCache


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


def test_loader_result_is_cached_until_expiry():
    clock = FakeMonotonic()
    cache = TTLCache(ttl_seconds=30, clock=clock)
    calls = []

    def loader():
        calls.append(1)
        return ["rule"]

    assert cache.get("rules", loader) == ["rule"]
    assert cache.get("rules", loader) == ["rule"]
    assert len(calls) == 1

    clock.value += 31
    cache.get("rules", loader)
    assert len(calls) == 2

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["hit_rate"] == 33.33


def test_contains_does_not_count_as_hit():
    clock = FakeMonotonic()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("tank_low", True)
    assert cache.contains("tank_low")
    clock.value += 10
    assert not cache.contains("tank_low")
    assert cache.get_stats()["hits"] == 0


def test_invalidate_and_clear():
    cache = TTLCache(ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2
    cache.clear()
    assert cache.get_stats()["size"] == 0


def test_oldest_entry_is_evicted_past_maxsize():
    cache = TTLCache(ttl_seconds=60, maxsize=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get_stats()["evictions"] == 1


def test_none_is_never_cached():
    cache = TTLCache(ttl_seconds=60)
    cache.set("a", 1)
    cache.set("a", None)
    assert not cache.contains("a")


def test_disabled_cache_always_calls_loader():
    cache = TTLCache(ttl_seconds=0)
    calls = []
    cache.get("x", lambda: calls.append(1) or "v")
    cache.get("x", lambda: calls.append(1) or "v")
    assert len(calls) == 2
    assert not cache.get_stats()["enabled"]
