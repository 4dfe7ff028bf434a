"""Shared fixtures for resilience layer tests."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from integrix.resilience.config.settings import Settings
from integrix.resilience.policies.registry import PolicyRegistry
from integrix.resilience.services.bulkhead_service import BulkheadService
from integrix.resilience.services.circuit_breaker_service import CircuitBreakerService
from integrix.resilience.services.error_classifier import ErrorClassifier
from integrix.resilience.services.metrics_collector import ResilienceMetrics
from integrix.resilience.services.resilience_facade import ResilienceFacade
from integrix.resilience.services.retry_service import RetryService

# ============================================================================
# Time Control
# ============================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Blocking sleep replacement that records waits and advances a clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


class RecordingAsyncSleep:
    """Awaitable sleep replacement that records waits."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    """Create a recording sleep that advances the fake clock."""
    return RecordingSleep(clock)


@pytest.fixture
def async_sleep() -> RecordingAsyncSleep:
    """Create a recording async sleep."""
    return RecordingAsyncSleep()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Create test settings independent of the environment."""
    return Settings(
        default_retry_max_retries=2,
        default_retry_wait_seconds=1.0,
        default_retry_max_duration_seconds=None,
        default_bulkhead_max_concurrent_calls=2,
        default_bulkhead_max_wait_seconds=0.0,
        bulkhead_core_thread_pool_size=1,
        bulkhead_max_thread_pool_size=2,
        bulkhead_queue_capacity=1,
        bulkhead_keep_alive_seconds=1.0,
        bulkhead_utilization_scale=100.0,
        max_live_units=None,
        enable_metrics=True,
    )


@pytest.fixture
def policies(settings: Settings) -> PolicyRegistry:
    """Create policy registry from test settings."""
    return PolicyRegistry.from_settings(settings)


@pytest.fixture
def metrics() -> ResilienceMetrics:
    """Create metrics collector with an isolated registry."""
    return ResilienceMetrics()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def retry_service(
    policies: PolicyRegistry,
    metrics: ResilienceMetrics,
    sleep: RecordingSleep,
    async_sleep: RecordingAsyncSleep,
    clock: FakeClock,
) -> RetryService:
    """Create retry service with fake time."""
    return RetryService(
        policies,
        metrics=metrics,
        sleep=sleep,
        async_sleep=async_sleep,
        clock=clock,
    )


@pytest.fixture
def circuit_breaker_service(
    policies: PolicyRegistry,
    metrics: ResilienceMetrics,
    clock: FakeClock,
) -> CircuitBreakerService:
    """Create circuit breaker service with fake time."""
    return CircuitBreakerService(policies, metrics=metrics, clock=clock)


@pytest.fixture
def bulkhead_service(
    policies: PolicyRegistry,
    metrics: ResilienceMetrics,
) -> Generator[BulkheadService, None, None]:
    """Create bulkhead service and stop its pools afterwards."""
    service = BulkheadService(policies, metrics=metrics)
    yield service
    service.shutdown(wait=True)


@pytest.fixture
def classifier() -> ErrorClassifier:
    """Create error classifier."""
    return ErrorClassifier()


@pytest.fixture
def facade(
    retry_service: RetryService,
    circuit_breaker_service: CircuitBreakerService,
    bulkhead_service: BulkheadService,
    classifier: ErrorClassifier,
    metrics: ResilienceMetrics,
) -> ResilienceFacade:
    """Create facade over the fake-time services."""
    return ResilienceFacade(
        retry_service=retry_service,
        circuit_breaker_service=circuit_breaker_service,
        bulkhead_service=bulkhead_service,
        classifier=classifier,
        metrics=metrics,
    )
