"""
Circuit breaker service.

Owns one live ``CircuitBreaker`` per (adapter_type, adapter_id), exposes
health snapshots and the operator overrides (force open, disable, reset).
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from ..exceptions import CallNotPermittedError
from ..models.events import CircuitState
from ..models.policies import CircuitBreakerPolicy, PolicyKey
from ..models.status import CircuitBreakerHealthStatus
from ..policies.registry import PolicyRegistry
from .circuit_breaker import CircuitBreaker, CircuitBreakerListener
from .metrics_collector import ResilienceMetrics
from .unit_cache import LiveUnitCache

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitBreakerService:
    """Executes adapter operations behind per-adapter circuit breakers."""

    def __init__(
        self,
        policies: PolicyRegistry,
        metrics: ResilienceMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_live_units: int | None = None,
    ) -> None:
        """
        Initialize circuit breaker service.

        Args:
            policies: Tuning tables built at startup
            metrics: Optional Prometheus sink for breaker events
            clock: Monotonic clock shared by every breaker
            max_live_units: LRU bound for cached breakers, None for unbounded
        """
        self.policies = policies
        self.metrics = metrics
        self._clock = clock
        self._subscribers: list[CircuitBreakerListener] = []
        self._units: LiveUnitCache[CircuitBreaker] = LiveUnitCache(
            "circuit_breaker", max_size=max_live_units
        )

    def subscribe(self, listener: CircuitBreakerListener) -> None:
        """
        Receive events from every breaker, current and future.

        Args:
            listener: Callback invoked with each circuit breaker event
        """
        self._subscribers.append(listener)
        for _, breaker in self._units.items():
            breaker.add_listener(listener)

    def has_circuit_breaker(self, adapter_type: str, adapter_id: str) -> bool:
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._units.get(key) is not None

    def get_circuit_breaker(self, adapter_type: str, adapter_id: str) -> CircuitBreaker:
        """Live breaker for an adapter, created on first use."""
        key = PolicyKey(adapter_type=adapter_type, adapter_id=adapter_id)
        return self._units.get_or_create(key, self._create_circuit_breaker)

    def _create_circuit_breaker(self, key: PolicyKey) -> CircuitBreaker:
        policy = self.policies.circuit_breaker.resolve(key.adapter_type)
        breaker = CircuitBreaker(key, policy, clock=self._clock)
        if self.metrics is not None:
            breaker.add_listener(self.metrics.circuit_breaker_listener(key))
        for listener in self._subscribers:
            breaker.add_listener(listener)

        logger.info(
            "circuit_breaker_created",
            adapter_type=key.adapter_type,
            adapter_id=key.adapter_id,
            category=policy.category.value,
            automatic_recovery=policy.automatic_transition_from_open_to_half_open,
        )
        return breaker

    def execute_with_circuit_breaker(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
    ) -> T:
        """
        Execute operation behind the adapter's circuit breaker.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable

        Returns:
            Operation result

        Raises:
            CallNotPermittedError: If the breaker rejects the call
        """
        return self.get_circuit_breaker(adapter_type, adapter_id).call(operation)

    def execute_with_fallback(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
        fallback: Callable[[], T],
    ) -> T:
        """
        Execute operation, using the fallback when the breaker rejects it.

        Errors raised by the operation itself still propagate.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable
            fallback: Zero-argument callable used on rejection

        Returns:
            Operation or fallback result
        """
        try:
            return self.execute_with_circuit_breaker(adapter_type, adapter_id, operation)
        except CallNotPermittedError as e:
            logger.warning(
                "circuit_breaker_fallback",
                adapter_type=adapter_type,
                adapter_id=adapter_id,
                state=e.state.value,
            )
            return fallback()

    async def execute_async(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Await operation behind the adapter's circuit breaker."""
        return await self.get_circuit_breaker(adapter_type, adapter_id).call_async(operation)

    def is_open(self, adapter_type: str, adapter_id: str) -> bool:
        """Whether the breaker currently rejects calls (OPEN or FORCED_OPEN)."""
        state = self.get_circuit_breaker(adapter_type, adapter_id).state
        return state in (CircuitState.OPEN, CircuitState.FORCED_OPEN)

    def get_state(self, adapter_type: str, adapter_id: str) -> CircuitState:
        return self.get_circuit_breaker(adapter_type, adapter_id).state

    def get_health_status(self, adapter_type: str, adapter_id: str) -> CircuitBreakerHealthStatus:
        """
        Get health status of an adapter's breaker.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier

        Returns:
            State, rates and call counts
        """
        return self.get_circuit_breaker(adapter_type, adapter_id).get_health_status()

    def reset_circuit_breaker(self, adapter_type: str, adapter_id: str) -> None:
        """Operator override: return the breaker to CLOSED."""
        logger.warning(
            "circuit_breaker_manual_reset",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
        )
        self.get_circuit_breaker(adapter_type, adapter_id).reset()

    def force_open(self, adapter_type: str, adapter_id: str) -> None:
        """Operator override: reject every call until reset."""
        logger.warning(
            "circuit_breaker_forced_open",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
        )
        self.get_circuit_breaker(adapter_type, adapter_id).transition_to_forced_open()

    def disable(self, adapter_type: str, adapter_id: str) -> None:
        """Operator override: permit every call and stop recording until reset."""
        logger.warning(
            "circuit_breaker_disabled",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
        )
        self.get_circuit_breaker(adapter_type, adapter_id).transition_to_disabled()

    def get_all_statuses(self) -> dict[str, CircuitBreakerHealthStatus]:
        """Health status of every live breaker, keyed by breaker name."""
        return {key.name: breaker.get_health_status() for key, breaker in self._units.items()}

    def get_policy(self, adapter_type: str) -> CircuitBreakerPolicy:
        return self.policies.circuit_breaker.resolve(adapter_type)

