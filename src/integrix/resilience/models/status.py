"""Read-only snapshots exposed to callers and the operations console."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .events import CircuitState


class RetryMetrics(BaseModel):
    """Monotonic call counters of one retry unit."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str
    adapter_id: str
    successful_calls_without_retry: int = 0
    successful_calls_with_retry: int = 0
    failed_calls_without_retry: int = 0
    failed_calls_with_retry: int = 0


class RetryConfigInfo(BaseModel):
    """Resolved retry tuning for an adapter type."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str
    category: str
    max_retries: int
    max_attempts: int
    wait_seconds: float
    backoff_multiplier: float
    max_duration_seconds: float | None
    retry_exceptions: tuple[str, ...]
    ignore_exceptions: tuple[str, ...]


class CircuitBreakerHealthStatus(BaseModel):
    """Health snapshot of one circuit breaker."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str
    adapter_id: str
    state: CircuitState
    failure_rate: float = Field(description="Percentage, -1.0 until minimum calls are recorded")
    slow_call_rate: float = Field(description="Percentage, -1.0 until minimum calls are recorded")
    buffered_calls: int
    failed_calls: int
    slow_calls: int
    successful_calls: int
    not_permitted_calls: int


class BulkheadMetrics(BaseModel):
    """Slot usage of one semaphore bulkhead."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str
    adapter_id: str
    available_concurrent_calls: int
    max_allowed_concurrent_calls: int


class ThreadPoolBulkheadMetrics(BaseModel):
    """Worker and queue usage of one thread-pool bulkhead."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str
    adapter_id: str
    core_thread_pool_size: int
    max_thread_pool_size: int
    active_thread_count: int
    queue_depth: int
    queue_capacity: int
    remaining_queue_capacity: int
