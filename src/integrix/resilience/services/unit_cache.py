"""Per-service cache of live resilience units."""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

from ..models.policies import PolicyKey

logger = structlog.get_logger()

U = TypeVar("U")


class LiveUnitCache(Generic[U]):
    """
    Thread-safe map of PolicyKey to live unit.

    ``get_or_create`` runs the factory at most once per key, so concurrent
    callers sharing a key always share one unit and its counters. With
    ``max_size`` set, the least recently used unit is dropped when the
    cache grows past the bound.
    """

    def __init__(
        self,
        kind: str,
        max_size: int | None = None,
        on_evict: Callable[[PolicyKey, U], None] | None = None,
    ) -> None:
        """
        Initialize live unit cache.

        Args:
            kind: Unit kind for log context (retry, circuit_breaker, ...)
            max_size: LRU bound, None for unbounded
            on_evict: Called with the key and unit after eviction
        """
        self.kind = kind
        self.max_size = max_size
        self._on_evict = on_evict
        self._units: OrderedDict[PolicyKey, U] = OrderedDict()
        self._lock = threading.Lock()

    def get_or_create(self, key: PolicyKey, factory: Callable[[PolicyKey], U]) -> U:
        """
        Return the unit for a key, creating it if absent.

        Args:
            key: Policy key
            factory: Builds the unit for a new key

        Returns:
            Live unit bound to the key
        """
        evicted: list[tuple[PolicyKey, U]] = []
        with self._lock:
            unit = self._units.get(key)
            if unit is not None:
                self._units.move_to_end(key)
                return unit

            unit = factory(key)
            self._units[key] = unit
            if self.max_size is not None:
                while len(self._units) > self.max_size:
                    evicted.append(self._units.popitem(last=False))

        for old_key, old_unit in evicted:
            logger.info(
                "live_unit_evicted",
                kind=self.kind,
                unit=old_key.name,
                max_size=self.max_size,
            )
            if self._on_evict is not None:
                self._on_evict(old_key, old_unit)

        return unit

    def get(self, key: PolicyKey) -> U | None:
        with self._lock:
            return self._units.get(key)

    def items(self) -> list[tuple[PolicyKey, U]]:
        """Snapshot of every cached unit."""
        with self._lock:
            return list(self._units.items())

    def clear(self) -> list[U]:
        with self._lock:
            units = list(self._units.values())
            self._units.clear()
        return units

    def __len__(self) -> int:
        with self._lock:
            return len(self._units)
