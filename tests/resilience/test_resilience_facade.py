"""Tests for the resilience facade composing bulkhead, breaker and retry."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from integrix.resilience.config.settings import Settings
from integrix.resilience.exceptions import (
    BulkheadFullError,
    CallNotPermittedError,
    RetryDeadlineExceededError,
)
from integrix.resilience.models.adapter_errors import HttpStatusError
from integrix.resilience.models.error_types import ErrorCategory, FailureReason
from integrix.resilience.models.events import CircuitState
from integrix.resilience.services.resilience_facade import ResilienceFacade


class FlakyOperation:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestExecute:
    """Synchronous composition."""

    def test_retries_inside_one_breaker_call(self, facade: ResilienceFacade, sleep) -> None:
        """Test the breaker records only the outcome of the whole retried call."""
        operation = FlakyOperation([HttpStatusError(503) for _ in range(3)], result="orders")

        assert facade.execute("http", "svc-A", operation) == "orders"

        assert operation.calls == 4
        assert sleep.calls == [0.5, 1.0, 2.0]
        assert facade.retry.get_metrics("http", "svc-A").successful_calls_with_retry == 1
        status = facade.circuit_breakers.get_health_status("http", "svc-A")
        assert status.successful_calls == 1
        assert status.failed_calls == 0
        assert facade.bulkheads.get_utilization_percentage("http", "svc-A") == 0.0

    def test_exhausted_retries_count_one_breaker_failure(
        self,
        facade: ResilienceFacade,
    ) -> None:
        operation = FlakyOperation([HttpStatusError(503) for _ in range(10)])

        with pytest.raises(HttpStatusError):
            facade.execute("http", "svc-A", operation)

        assert operation.calls == 4
        assert facade.circuit_breakers.get_health_status("http", "svc-A").failed_calls == 1
        assert facade.retry.get_metrics("http", "svc-A").failed_calls_with_retry == 1

    def test_open_breaker_short_circuits(self, facade: ResilienceFacade, sleep) -> None:
        """Test a rejected call never reaches the operation or the retry loop."""
        facade.circuit_breakers.force_open("http", "svc-A")
        operation = FlakyOperation([])

        with pytest.raises(CallNotPermittedError):
            facade.execute("http", "svc-A", operation)

        assert operation.calls == 0
        assert sleep.calls == []
        metrics = facade.retry.get_metrics("http", "svc-A")
        assert metrics.successful_calls_without_retry == 0
        assert metrics.failed_calls_without_retry == 0

    def test_full_bulkhead_short_circuits(self, facade: ResilienceFacade) -> None:
        """Test a full bulkhead rejects before the breaker sees the call."""
        release = threading.Event()
        entered = threading.Semaphore(0)

        def hold() -> str:
            entered.release()
            assert release.wait(5.0)
            return "held"

        with ThreadPoolExecutor(max_workers=2) as callers:
            try:
                running = [callers.submit(facade.execute, "unknown", "x", hold) for _ in range(2)]
                for _ in range(2):
                    assert entered.acquire(timeout=5.0)

                operation = FlakyOperation([])
                with pytest.raises(BulkheadFullError):
                    facade.execute("unknown", "x", operation)
                assert operation.calls == 0
            finally:
                release.set()

        assert [f.result() for f in running] == ["held", "held"]
        status = facade.circuit_breakers.get_health_status("unknown", "x")
        assert status.buffered_calls == 2
        assert status.not_permitted_calls == 0

    def test_fallback_on_rejection(self, facade: ResilienceFacade) -> None:
        facade.circuit_breakers.force_open("sap-like", "erp-1")

        assert facade.execute("sap-like", "erp-1", lambda: "live", fallback=lambda: "cached") == "cached"

    def test_fallback_on_operation_failure(self, facade: ResilienceFacade) -> None:
        operation = FlakyOperation([ValueError("bad payload")])

        result = facade.execute("http", "svc-A", operation, fallback=lambda: "default")

        assert result == "default"
        assert operation.calls == 1

    def test_ignored_errors_do_not_trip_breaker(self, facade: ResilienceFacade) -> None:
        """Test caller mistakes on HTTP adapters never open the breaker."""
        for _ in range(30):
            with pytest.raises(ValueError):
                facade.execute("http", "svc-A", FlakyOperation([ValueError("bad")]))

        assert facade.circuit_breakers.get_state("http", "svc-A") == CircuitState.CLOSED


class TestDescribeFailure:
    """Operator-facing failure reports."""

    def test_circuit_open(self, facade: ResilienceFacade) -> None:
        facade.circuit_breakers.force_open("http", "svc-A")
        with pytest.raises(CallNotPermittedError) as exc_info:
            facade.execute("http", "svc-A", lambda: "ok")

        report = facade.describe_failure(exc_info.value)

        assert report.reason == FailureReason.CIRCUIT_OPEN
        assert report.rejected is True
        assert report.adapter_type == "http"
        assert report.adapter_id == "svc-A"
        assert report.classification.category == ErrorCategory.SERVICE_UNAVAILABLE

    def test_bulkhead_full(self, facade: ResilienceFacade) -> None:
        error = BulkheadFullError("file-share", 5, 30.0, adapter_type="file", adapter_id="share")

        report = facade.describe_failure(error)

        assert report.reason == FailureReason.BULKHEAD_FULL
        assert report.rejected is True
        assert report.adapter_type == "file"
        assert report.classification.category == ErrorCategory.RESOURCE

    def test_retry_deadline(self, facade: ResilienceFacade) -> None:
        error = RetryDeadlineExceededError("http-svc-A", 3, 30.0, TimeoutError("slow"))

        report = facade.describe_failure(error, "http", "svc-A")

        assert report.reason == FailureReason.RETRY_DEADLINE_EXCEEDED
        assert report.rejected is False
        assert report.adapter_id == "svc-A"
        assert report.classification.category == ErrorCategory.TIMEOUT

    def test_operation_failure(self, facade: ResilienceFacade) -> None:
        report = facade.describe_failure(ConnectionRefusedError("refused"), "kafka", "orders")

        assert report.reason == FailureReason.OPERATION_FAILED
        assert report.rejected is False
        assert report.adapter_type == "kafka"
        assert report.classification.category == ErrorCategory.CONNECTION
        assert report.classification.retryable is True


class TestAsyncExecute:
    """Asyncio composition."""

    @pytest.mark.asyncio
    async def test_retries_with_async_sleep(self, facade: ResilienceFacade, async_sleep) -> None:
        failures = [RuntimeError("transient")]

        async def operation() -> str:
            if failures:
                raise failures.pop(0)
            return "async-ok"

        assert await facade.execute_async("unknown", "x", operation) == "async-ok"
        assert async_sleep.calls == [1.0]
        assert facade.circuit_breakers.get_health_status("unknown", "x").successful_calls == 1

    @pytest.mark.asyncio
    async def test_async_fallback(self, facade: ResilienceFacade) -> None:
        facade.circuit_breakers.force_open("http", "svc-A")

        async def operation() -> str:
            return "live"

        async def fallback() -> str:
            return "cached"

        assert await facade.execute_async("http", "svc-A", operation, fallback=fallback) == "cached"

    @pytest.mark.asyncio
    async def test_async_rejection_propagates(self, facade: ResilienceFacade) -> None:
        facade.circuit_breakers.force_open("http", "svc-A")

        async def operation() -> str:
            return "live"

        with pytest.raises(CallNotPermittedError):
            await facade.execute_async("http", "svc-A", operation)


class TestFromSettings:
    """Wiring from configuration."""

    def test_builds_with_metrics(self) -> None:
        facade = ResilienceFacade.from_settings(Settings(enable_metrics=True))
        try:
            assert facade.metrics is not None
            assert facade.execute("http", "svc-A", lambda: "ok") == "ok"
            assert (
                facade.metrics.registry.get_sample_value(
                    "integrix_retry_calls_total",
                    {"adapter_type": "http", "adapter_id": "svc-A", "result": "success"},
                )
                == 1.0
            )
        finally:
            facade.shutdown()

    def test_builds_without_metrics(self) -> None:
        settings = Settings(
            enable_metrics=False,
            bulkhead_utilization_scale=1.0,
            default_bulkhead_max_concurrent_calls=4,
        )
        facade = ResilienceFacade.from_settings(settings)
        try:
            assert facade.metrics is None
            assert facade.retry.metrics is None

            def inside() -> float:
                return facade.bulkheads.get_utilization_percentage("unknown", "x")

            assert facade.execute("unknown", "x", inside) == 0.25
        finally:
            facade.shutdown()
