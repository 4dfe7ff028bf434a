"""
Bulkhead service.

Owns one semaphore ``Bulkhead`` and one ``ThreadPoolBulkhead`` per
(adapter_type, adapter_id), each created on first use from the bulkhead
policy tables.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from concurrent.futures import Future
from typing import TypeVar

import structlog

from ..exceptions import BulkheadFullError
from ..models.policies import BulkheadPolicy, PolicyKey, ThreadPoolBulkheadPolicy
from ..models.status import BulkheadMetrics, ThreadPoolBulkheadMetrics
from ..policies.registry import PolicyRegistry
from .bulkhead import Bulkhead, ThreadPoolBulkhead
from .metrics_collector import ResilienceMetrics
from .unit_cache import LiveUnitCache

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_UTILIZATION_SCALE = 100.0


class BulkheadService:
    """Isolates adapter resource pools behind per-adapter bulkheads."""

    def __init__(
        self,
        policies: PolicyRegistry,
        metrics: ResilienceMetrics | None = None,
        utilization_scale: float = DEFAULT_UTILIZATION_SCALE,
        max_live_units: int | None = None,
    ) -> None:
        """
        Initialize bulkhead service.

        Args:
            policies: Tuning tables built at startup
            metrics: Optional Prometheus sink for bulkhead events
            utilization_scale: Multiplier applied to the used/max ratio
            max_live_units: LRU bound for cached bulkheads, None for unbounded
        """
        self.policies = policies
        self.metrics = metrics
        self.utilization_scale = utilization_scale
        self._bulkheads: LiveUnitCache[Bulkhead] = LiveUnitCache(
            "bulkhead", max_size=max_live_units
        )
        self._thread_pools: LiveUnitCache[ThreadPoolBulkhead] = LiveUnitCache(
            "thread_pool_bulkhead",
            max_size=max_live_units,
            on_evict=lambda _, pool: pool.shutdown(wait=False),
        )

    def has_bulkhead(self, adapter_type: str, adapter_id: str) -> bool:
        """Whether a live semaphore bulkhead exists, without creating one."""
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._bulkheads.get(key) is not None

    def has_thread_pool_bulkhead(self, adapter_type: str, adapter_id: str) -> bool:
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._thread_pools.get(key) is not None

    def get_bulkhead(self, adapter_type: str, adapter_id: str) -> Bulkhead:
        """Live semaphore bulkhead for an adapter, created on first use."""
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._bulkheads.get_or_create(key, self._create_bulkhead)

    def get_thread_pool_bulkhead(self, adapter_type: str, adapter_id: str) -> ThreadPoolBulkhead:
        """Live thread-pool bulkhead for an adapter, created on first use."""
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._thread_pools.get_or_create(key, self._create_thread_pool_bulkhead)

    def _create_bulkhead(self, key: PolicyKey) -> Bulkhead:
        policy = self.policies.bulkhead.resolve(key.adapter_type)
        bulkhead = Bulkhead(key, policy)
        if self.metrics is not None:
            bulkhead.add_listener(self.metrics.bulkhead_listener(key))

        logger.info(
            "bulkhead_created",
            adapter_type=key.adapter_type,
            adapter_id=key.adapter_id,
            category=policy.category.value,
            max_concurrent_calls=policy.max_concurrent_calls,
            max_wait_seconds=policy.max_wait_seconds,
        )
        return bulkhead

    def _create_thread_pool_bulkhead(self, key: PolicyKey) -> ThreadPoolBulkhead:
        policy = self.policies.thread_pool_bulkhead.resolve(key.adapter_type)
        pool = ThreadPoolBulkhead(key, policy)
        if self.metrics is not None:
            pool.add_listener(self.metrics.bulkhead_listener(key))

        logger.info(
            "thread_pool_bulkhead_created",
            adapter_type=key.adapter_type,
            adapter_id=key.adapter_id,
            category=policy.category.value,
            max_thread_pool_size=policy.max_thread_pool_size,
            queue_capacity=policy.queue_capacity,
        )
        return pool

    def execute_with_bulkhead(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
    ) -> T:
        """
        Execute operation with bulkhead protection.

        Blocks up to the policy's max wait for a free slot.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable

        Returns:
            Operation result

        Raises:
            BulkheadFullError: If no slot frees up in time
        """
        return self.get_bulkhead(adapter_type, adapter_id).call(operation)

    def execute_with_fallback(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
        fallback: Callable[[], T],
    ) -> T:
        """
        Execute operation, using the fallback when the bulkhead is full.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable
            fallback: Zero-argument callable used on rejection

        Returns:
            Operation or fallback result
        """
        try:
            return self.execute_with_bulkhead(adapter_type, adapter_id, operation)
        except BulkheadFullError:
            logger.warning(
                "bulkhead_fallback",
                adapter_type=adapter_type,
                adapter_id=adapter_id,
            )
            return fallback()

    def execute_async(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
    ) -> Future[T]:
        """
        Run operation on the adapter's thread-pool bulkhead.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable

        Returns:
            Future resolving to the operation result

        Raises:
            BulkheadFullError: If the pool and its backlog are full
        """
        return self.get_thread_pool_bulkhead(adapter_type, adapter_id).submit(operation)

    async def execute_coroutine(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Await operation in a semaphore bulkhead slot."""
        return await self.get_bulkhead(adapter_type, adapter_id).call_async(operation)

    def has_available_capacity(self, adapter_type: str, adapter_id: str) -> bool:
        """Non-blocking check for a free slot."""
        return self.get_bulkhead(adapter_type, adapter_id).available_concurrent_calls > 0

    def get_utilization_percentage(self, adapter_type: str, adapter_id: str) -> float:
        """
        Share of slots in use.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier

        Returns:
            (max - available) / max, multiplied by the utilization scale
        """
        metrics = self.get_metrics(adapter_type, adapter_id)
        used = metrics.max_allowed_concurrent_calls - metrics.available_concurrent_calls
        return used / metrics.max_allowed_concurrent_calls * self.utilization_scale

    def get_metrics(self, adapter_type: str, adapter_id: str) -> BulkheadMetrics:
        return self.get_bulkhead(adapter_type, adapter_id).get_metrics()

    def get_thread_pool_metrics(
        self,
        adapter_type: str,
        adapter_id: str,
    ) -> ThreadPoolBulkheadMetrics:
        return self.get_thread_pool_bulkhead(adapter_type, adapter_id).get_metrics()

    def get_all_metrics(self) -> dict[str, BulkheadMetrics]:
        """Semaphore bulkhead metrics of every live unit, keyed by unit name."""
        return {key.name: bulkhead.get_metrics() for key, bulkhead in self._bulkheads.items()}

    def get_all_thread_pool_metrics(self) -> dict[str, ThreadPoolBulkheadMetrics]:
        return {key.name: pool.get_metrics() for key, pool in self._thread_pools.items()}

    def get_policy(self, adapter_type: str) -> BulkheadPolicy:
        return self.policies.bulkhead.resolve(adapter_type)

    def get_thread_pool_policy(self, adapter_type: str) -> ThreadPoolBulkheadPolicy:
        return self.policies.thread_pool_bulkhead.resolve(adapter_type)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop every thread-pool bulkhead.

        Args:
            wait: Whether to wait for running tasks to finish
        """
        pools = self._thread_pools.clear()
        for pool in pools:
            pool.shutdown(wait=wait)
        logger.info("bulkhead_service_shutdown", thread_pools=len(pools))
