"""
Retry service.

Owns one live ``Retry`` unit per (adapter_type, adapter_id), resolved from
the retry policy table on first use, and wraps caller operations with it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from ..models.policies import PolicyKey
from ..models.status import RetryConfigInfo, RetryMetrics
from ..policies.registry import PolicyRegistry
from .metrics_collector import ResilienceMetrics
from .retry import Retry
from .unit_cache import LiveUnitCache

logger = structlog.get_logger()

T = TypeVar("T")


class RetryService:
    """Executes adapter operations under per-adapter retry policies."""

    def __init__(
        self,
        policies: PolicyRegistry,
        metrics: ResilienceMetrics | None = None,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        max_live_units: int | None = None,
    ) -> None:
        """
        Initialize retry service.

        Args:
            policies: Tuning tables built at startup
            metrics: Optional Prometheus sink for retry events
            sleep: Blocking wait between synchronous attempts
            async_sleep: Awaitable wait between asynchronous attempts
            clock: Monotonic clock for overall retry budgets
            max_live_units: LRU bound for cached units, None for unbounded
        """
        self.policies = policies
        self.metrics = metrics
        self._sleep = sleep
        self._async_sleep = async_sleep
        self._clock = clock
        self._units: LiveUnitCache[Retry] = LiveUnitCache("retry", max_size=max_live_units)

    def has_retry(self, adapter_type: str, adapter_id: str) -> bool:
        """Whether a live retry unit exists, without creating one."""
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._units.get(key) is not None

    def get_retry(self, adapter_type: str, adapter_id: str) -> Retry:
        """Live retry unit for an adapter, created on first use."""
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._units.get_or_create(key, self._create_retry)

    def _create_retry(self, key: PolicyKey) -> Retry:
        policy = self.policies.retry.resolve(key.adapter_type)
        retry = Retry(
            key,
            policy,
            sleep=self._sleep,
            async_sleep=self._async_sleep,
            clock=self._clock,
        )
        if self.metrics is not None:
            retry.add_listener(self.metrics.retry_listener(key))

        logger.info(
            "retry_created",
            adapter_type=key.adapter_type,
            adapter_id=key.adapter_id,
            category=policy.category.value,
            max_attempts=policy.max_attempts,
        )
        return retry

    def execute_with_retry(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
    ) -> T:
        """
        Execute operation with retry.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable

        Returns:
            Operation result

        Raises:
            RetryDeadlineExceededError: If the overall retry budget runs out
            Exception: The last failure once attempts are exhausted
        """
        return self.get_retry(adapter_type, adapter_id).execute(operation)

    def execute_with_fallback(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
        fallback: Callable[[], T],
    ) -> T:
        """
        Execute operation with retry, falling back once it finally fails.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable
            fallback: Zero-argument callable used when the operation fails

        Returns:
            Operation or fallback result
        """
        try:
            return self.execute_with_retry(adapter_type, adapter_id, operation)
        except Exception as e:
            logger.warning(
                "retry_fallback",
                adapter_type=adapter_type,
                adapter_id=adapter_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback()

    async def execute_async(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Await operation with retry without blocking the event loop.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable returning an awaitable

        Returns:
            Operation result
        """
        return await self.get_retry(adapter_type, adapter_id).execute_async(operation)

    def get_metrics(self, adapter_type: str, adapter_id: str) -> RetryMetrics:
        """
        Get retry metrics for an adapter.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier

        Returns:
            Outcome counters of the adapter's retry unit
        """
        return self.get_retry(adapter_type, adapter_id).get_metrics()

    def get_all_metrics(self) -> dict[str, RetryMetrics]:
        """Retry metrics of every live unit, keyed by unit name."""
        return {key.name: retry.get_metrics() for key, retry in self._units.items()}

    def get_retry_config(self, adapter_type: str) -> RetryConfigInfo:
        """
        Describe the retry tuning resolved for an adapter type.

        Args:
            adapter_type: Adapter type tag

        Returns:
            Resolved retry parameters
        """
        policy = self.policies.retry.resolve(adapter_type)
        return RetryConfigInfo(
            adapter_type=adapter_type,
            category=policy.category.value,
            max_retries=policy.max_retries,
            max_attempts=policy.max_attempts,
            wait_seconds=policy.wait_seconds,
            backoff_multiplier=policy.backoff_multiplier,
            max_duration_seconds=policy.max_duration_seconds,
            retry_exceptions=policy.retry_exceptions,
            ignore_exceptions=policy.ignore_exceptions,
        )
