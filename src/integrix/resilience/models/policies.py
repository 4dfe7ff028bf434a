"""
Policy models for retry, circuit-breaker and bulkhead tuning.

Policies are immutable bundles built once at startup from the static tuning
tables in ``integrix.resilience.policies``; live units only ever read them.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

ExceptionPredicate = Callable[[BaseException], bool]
ResultPredicate = Callable[[Any], bool]


class AdapterCategory(str, Enum):
    """Tuning buckets that adapter types map onto."""

    HTTP = "http"
    DATABASE = "database"
    MESSAGING = "messaging"
    FILE = "file"
    # Most critical external system, ERP-style RFC/IDoc endpoints
    CRITICAL_SYSTEM = "sap"
    DEFAULT = "default"


class SlidingWindowType(str, Enum):
    """How the circuit breaker aggregates recent outcomes."""

    COUNT_BASED = "count_based"
    TIME_BASED = "time_based"


class PolicyKey(BaseModel):
    """Identifies one logical resilience unit."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str = Field(min_length=1, description="Adapter type tag")
    adapter_id: str = Field(min_length=1, description="Adapter instance identifier")

    @property
    def name(self) -> str:
        return f"{self.adapter_type}-{self.adapter_id}"

    def __str__(self) -> str:
        return self.name


def _never(_: Any) -> bool:
    return False


class RetryPolicy(BaseModel):
    """Retry tuning for one adapter category."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    category: AdapterCategory = Field(description="Bucket this policy belongs to")
    max_retries: int = Field(
        ge=0,
        description="Re-attempts after the initial call",
    )
    wait_seconds: float = Field(ge=0.0, description="Wait before the first re-attempt")
    backoff_multiplier: float = Field(
        default=1.0,
        ge=1.0,
        description="Growth factor per re-attempt (1.0 means fixed wait)",
    )
    max_duration_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Overall wall-clock budget across all attempts",
    )
    retry_on_exception: ExceptionPredicate = Field(
        description="Whether a raised error is worth another attempt",
    )
    retry_on_result: ResultPredicate = Field(
        default=_never,
        description="Whether a returned result is worth another attempt",
    )
    retry_exceptions: tuple[str, ...] = Field(
        default=(),
        description="Names of retried error kinds, for operator display",
    )
    ignore_exceptions: tuple[str, ...] = Field(
        default=(),
        description="Names of never-retried error kinds, for operator display",
    )

    @property
    def max_attempts(self) -> int:
        """Total invocations including the initial call."""
        return self.max_retries + 1

    def wait_for_retry(self, retry_number: int) -> float:
        """
        Wait before re-attempt ``retry_number`` (1-based).

        Args:
            retry_number: Index of the upcoming re-attempt

        Returns:
            Wait in seconds
        """
        return self.wait_seconds * (self.backoff_multiplier ** (retry_number - 1))


class CircuitBreakerPolicy(BaseModel):
    """Circuit-breaker tuning for one adapter category."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    category: AdapterCategory = Field(description="Bucket this policy belongs to")
    failure_rate_threshold: float = Field(
        gt=0.0,
        le=100.0,
        description="Failure percentage that opens the circuit",
    )
    slow_call_rate_threshold: float = Field(
        gt=0.0,
        le=100.0,
        description="Slow-call percentage that opens the circuit",
    )
    slow_call_duration_seconds: float = Field(
        gt=0.0,
        description="Calls longer than this count as slow",
    )
    wait_duration_in_open_state_seconds: float = Field(
        gt=0.0,
        description="Time spent OPEN before probing recovery",
    )
    sliding_window_type: SlidingWindowType = SlidingWindowType.COUNT_BASED
    sliding_window_size: int = Field(
        ge=1,
        description="Calls (count based) or seconds (time based) in the window",
    )
    minimum_number_of_calls: int = Field(
        ge=1,
        description="Calls required before rates are evaluated",
    )
    permitted_calls_in_half_open_state: int = Field(
        ge=1,
        description="Trial calls allowed while HALF_OPEN",
    )
    automatic_transition_from_open_to_half_open: bool = Field(
        default=True,
        description="Whether OPEN moves to HALF_OPEN without operator action",
    )
    record_exceptions: tuple[type[BaseException], ...] = Field(
        default=(Exception,),
        description="Errors that count as failures",
    )
    ignore_exceptions: tuple[type[BaseException], ...] = Field(
        default=(),
        description="Errors that count as neither success nor failure",
    )


class BulkheadPolicy(BaseModel):
    """Semaphore bulkhead tuning for one adapter category."""

    model_config = ConfigDict(frozen=True)

    category: AdapterCategory = Field(description="Bucket this policy belongs to")
    max_concurrent_calls: int = Field(ge=1, description="Slots available")
    max_wait_seconds: float = Field(ge=0.0, description="Longest wait for a slot")


class ThreadPoolBulkheadPolicy(BaseModel):
    """Thread-pool bulkhead tuning for one adapter category."""

    model_config = ConfigDict(frozen=True)

    category: AdapterCategory = Field(description="Bucket this policy belongs to")
    core_thread_pool_size: int = Field(ge=1, description="Threads kept warm")
    max_thread_pool_size: int = Field(ge=1, description="Upper bound on workers")
    queue_capacity: int = Field(ge=0, description="Tasks allowed to wait for a worker")
    keep_alive_seconds: float = Field(ge=0.0, description="Idle time before extra workers exit")

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> ThreadPoolBulkheadPolicy:
        if self.max_thread_pool_size < self.core_thread_pool_size:
            raise ValueError("max_thread_pool_size must be >= core_thread_pool_size")
        return self
