"""Tests for the live unit cache."""

import threading
from concurrent.futures import ThreadPoolExecutor

from integrix.resilience.models.policies import PolicyKey
from integrix.resilience.services.unit_cache import LiveUnitCache


def key(adapter_id: str) -> PolicyKey:
    return PolicyKey(adapter_type="http", adapter_id=adapter_id)


class TestLiveUnitCache:
    """Unit creation, sharing and eviction."""

    def test_factory_runs_once_per_key(self) -> None:
        """Test concurrent callers for one key share a single unit."""
        cache: LiveUnitCache[object] = LiveUnitCache("retry")
        created: list[PolicyKey] = []
        barrier = threading.Barrier(8)

        def factory(k: PolicyKey) -> object:
            created.append(k)
            return object()

        def lookup() -> object:
            barrier.wait(timeout=5.0)
            return cache.get_or_create(key("svc-A"), factory)

        with ThreadPoolExecutor(max_workers=8) as executor:
            units = list(executor.map(lambda _: lookup(), range(8)))

        assert len(created) == 1
        assert all(unit is units[0] for unit in units)
        assert len(cache) == 1

    def test_distinct_keys_get_distinct_units(self) -> None:
        cache: LiveUnitCache[str] = LiveUnitCache("retry")

        first = cache.get_or_create(key("svc-A"), lambda k: k.name)
        second = cache.get_or_create(key("svc-B"), lambda k: k.name)

        assert (first, second) == ("http-svc-A", "http-svc-B")
        assert cache.get(key("svc-A")) == "http-svc-A"
        assert cache.get(key("svc-C")) is None

    def test_unbounded_by_default(self) -> None:
        cache: LiveUnitCache[str] = LiveUnitCache("circuit_breaker")

        for i in range(500):
            cache.get_or_create(key(f"svc-{i}"), lambda k: k.name)

        assert len(cache) == 500

    def test_lru_eviction(self) -> None:
        """Test the least recently used unit is dropped past the bound."""
        evicted: list[tuple[str, str]] = []
        cache: LiveUnitCache[str] = LiveUnitCache(
            "thread_pool_bulkhead",
            max_size=2,
            on_evict=lambda k, unit: evicted.append((k.name, unit)),
        )

        cache.get_or_create(key("a"), lambda k: "unit-a")
        cache.get_or_create(key("b"), lambda k: "unit-b")
        cache.get_or_create(key("a"), lambda k: "unused")
        cache.get_or_create(key("c"), lambda k: "unit-c")

        assert evicted == [("http-b", "unit-b")]
        assert [k.name for k, _ in cache.items()] == ["http-a", "http-c"]

    def test_clear_returns_units(self) -> None:
        cache: LiveUnitCache[str] = LiveUnitCache("bulkhead")
        cache.get_or_create(key("a"), lambda k: "unit-a")
        cache.get_or_create(key("b"), lambda k: "unit-b")

        assert cache.clear() == ["unit-a", "unit-b"]
        assert len(cache) == 0
        assert cache.items() == []
