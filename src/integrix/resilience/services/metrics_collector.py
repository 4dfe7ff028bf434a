"""
Prometheus metrics for the resilience layer.

Live units publish events to listeners; this collector turns those events
into counters and gauges held in its own registry, which the admin app
exposes on ``/metrics``.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge

from ..models.events import (
    BulkheadEvent,
    CircuitBreakerEvent,
    CircuitBreakerEventType,
    CircuitState,
    RetryEvent,
    RetryEventType,
)
from ..models.policies import PolicyKey

logger = structlog.get_logger()

# Gauge encoding of circuit breaker states
CIRCUIT_STATE_VALUES: dict[CircuitState, int] = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
    CircuitState.DISABLED: 3,
    CircuitState.FORCED_OPEN: 4,
}

_RETRY_RESULTS: dict[RetryEventType, str] = {
    RetryEventType.SUCCESS: "success",
    RetryEventType.ERROR: "exhausted",
    RetryEventType.IGNORED_ERROR: "not_retried",
}

_CIRCUIT_BREAKER_RESULTS: dict[CircuitBreakerEventType, str] = {
    CircuitBreakerEventType.SUCCESS: "success",
    CircuitBreakerEventType.ERROR: "failure",
    CircuitBreakerEventType.IGNORED_ERROR: "ignored",
    CircuitBreakerEventType.NOT_PERMITTED: "not_permitted",
}


class ResilienceMetrics:
    """Prometheus metrics for retries, circuit breakers and bulkheads."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize resilience metrics.

        Args:
            registry: Optional custom registry (a fresh one by default)
        """
        self._registry = registry if registry is not None else CollectorRegistry()

        self._init_retry_metrics()
        self._init_circuit_breaker_metrics()
        self._init_bulkhead_metrics()

        logger.info("resilience_metrics_initialized")

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def _init_retry_metrics(self) -> None:
        """Initialize retry metrics."""
        self.retry_calls = Counter(
            "integrix_retry_calls_total",
            "Completed retried calls by outcome",
            ["adapter_type", "adapter_id", "result"],
            registry=self._registry,
        )

        self.retry_attempts = Counter(
            "integrix_retry_attempts_total",
            "Re-attempts scheduled after a failed attempt",
            ["adapter_type", "adapter_id"],
            registry=self._registry,
        )

    def _init_circuit_breaker_metrics(self) -> None:
        """Initialize circuit breaker metrics."""
        self.circuit_breaker_calls = Counter(
            "integrix_circuit_breaker_calls_total",
            "Calls seen by circuit breakers by outcome",
            ["adapter_type", "adapter_id", "result"],
            registry=self._registry,
        )

        self.circuit_breaker_transitions = Counter(
            "integrix_circuit_breaker_state_transitions_total",
            "Circuit breaker state transitions",
            ["adapter_type", "adapter_id", "from_state", "to_state"],
            registry=self._registry,
        )

        self.circuit_breaker_state = Gauge(
            "integrix_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=open, 2=half_open, 3=disabled, 4=forced_open)",
            ["adapter_type", "adapter_id"],
            registry=self._registry,
        )

    def _init_bulkhead_metrics(self) -> None:
        """Initialize bulkhead metrics."""
        self.bulkhead_calls = Counter(
            "integrix_bulkhead_calls_total",
            "Semaphore bulkhead admission decisions",
            ["adapter_type", "adapter_id", "result"],
            registry=self._registry,
        )

        self.thread_pool_bulkhead_calls = Counter(
            "integrix_thread_pool_bulkhead_calls_total",
            "Thread pool bulkhead admission decisions",
            ["adapter_type", "adapter_id", "result"],
            registry=self._registry,
        )

    def retry_listener(self, key: PolicyKey) -> Callable[[RetryEvent], None]:
        """Listener feeding one retry unit's events into the metrics."""
        return lambda event: self.record_retry_event(key, event)

    def circuit_breaker_listener(self, key: PolicyKey) -> Callable[[CircuitBreakerEvent], None]:
        """Listener feeding one circuit breaker's events into the metrics."""
        self.circuit_breaker_state.labels(
            adapter_type=key.adapter_type, adapter_id=key.adapter_id
        ).set(CIRCUIT_STATE_VALUES[CircuitState.CLOSED])
        return lambda event: self.record_circuit_breaker_event(key, event)

    def bulkhead_listener(self, key: PolicyKey) -> Callable[[BulkheadEvent], None]:
        """Listener feeding one bulkhead's events into the metrics."""
        return lambda event: self.record_bulkhead_event(key, event)

    def record_retry_event(self, key: PolicyKey, event: RetryEvent) -> None:
        """
        Record a retry event.

        Args:
            key: Adapter the event belongs to
            event: Event published by the retry unit
        """
        if event.event_type == RetryEventType.RETRY:
            self.retry_attempts.labels(
                adapter_type=key.adapter_type, adapter_id=key.adapter_id
            ).inc()
            return

        self.retry_calls.labels(
            adapter_type=key.adapter_type,
            adapter_id=key.adapter_id,
            result=_RETRY_RESULTS[event.event_type],
        ).inc()

    def record_circuit_breaker_event(self, key: PolicyKey, event: CircuitBreakerEvent) -> None:
        """
        Record a circuit breaker event.

        Args:
            key: Adapter the event belongs to
            event: Event published by the circuit breaker
        """
        result = _CIRCUIT_BREAKER_RESULTS.get(event.event_type)
        if result is not None:
            self.circuit_breaker_calls.labels(
                adapter_type=key.adapter_type,
                adapter_id=key.adapter_id,
                result=result,
            ).inc()
            return

        if (
            event.event_type
            in (CircuitBreakerEventType.STATE_TRANSITION, CircuitBreakerEventType.RESET)
            and event.from_state is not None
            and event.to_state is not None
        ):
            self.circuit_breaker_transitions.labels(
                adapter_type=key.adapter_type,
                adapter_id=key.adapter_id,
                from_state=event.from_state.value,
                to_state=event.to_state.value,
            ).inc()
            self.circuit_breaker_state.labels(
                adapter_type=key.adapter_type, adapter_id=key.adapter_id
            ).set(CIRCUIT_STATE_VALUES[event.to_state])

    def record_bulkhead_event(self, key: PolicyKey, event: BulkheadEvent) -> None:
        """
        Record a bulkhead event.

        Args:
            key: Adapter the event belongs to
            event: Event published by a semaphore or thread pool bulkhead
        """
        counter = self.thread_pool_bulkhead_calls if event.thread_pool else self.bulkhead_calls
        counter.labels(
            adapter_type=key.adapter_type,
            adapter_id=key.adapter_id,
            result=event.event_type.value,
        ).inc()
