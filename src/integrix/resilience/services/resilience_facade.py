"""
Resilience facade.

The single entry point adapter call-sites use: run an operation for an
adapter under its bulkhead, circuit breaker and retry policies, in that
order, and describe failures for operator tooling.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from ..config.settings import Settings, get_settings
from ..exceptions import (
    BulkheadFullError,
    CallNotPermittedError,
    ResilienceError,
    RetryDeadlineExceededError,
)
from ..models.error_types import FailureReason, FailureReport
from ..policies.registry import PolicyRegistry
from .bulkhead_service import BulkheadService
from .circuit_breaker_service import CircuitBreakerService
from .error_classifier import ErrorClassifier
from .metrics_collector import ResilienceMetrics
from .retry_service import RetryService

logger = structlog.get_logger()

T = TypeVar("T")


class ResilienceFacade:
    """
    Composes bulkhead, circuit breaker and retry for adapter calls.

    A full bulkhead or an open breaker short-circuits before the operation
    runs, so rejected calls never reach the retry loop.
    """

    def __init__(
        self,
        retry_service: RetryService,
        circuit_breaker_service: CircuitBreakerService,
        bulkhead_service: BulkheadService,
        classifier: ErrorClassifier | None = None,
        metrics: ResilienceMetrics | None = None,
    ) -> None:
        """
        Initialize resilience facade.

        Args:
            retry_service: Retry service
            circuit_breaker_service: Circuit breaker service
            bulkhead_service: Bulkhead service
            classifier: Error classifier used to describe failures
            metrics: Prometheus sink shared by the services, if any
        """
        self.retry = retry_service
        self.circuit_breakers = circuit_breaker_service
        self.bulkheads = bulkhead_service
        self.classifier = classifier or ErrorClassifier()
        self.metrics = metrics

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ResilienceFacade:
        """
        Build the policy tables, services, classifier and metrics once.

        Args:
            settings: Settings to build from (cached settings if omitted)

        Returns:
            Ready-to-use facade
        """
        settings = settings or get_settings()
        policies = PolicyRegistry.from_settings(settings)
        metrics = ResilienceMetrics() if settings.enable_metrics else None

        facade = cls(
            retry_service=RetryService(
                policies, metrics=metrics, max_live_units=settings.max_live_units
            ),
            circuit_breaker_service=CircuitBreakerService(
                policies, metrics=metrics, max_live_units=settings.max_live_units
            ),
            bulkhead_service=BulkheadService(
                policies,
                metrics=metrics,
                utilization_scale=settings.bulkhead_utilization_scale,
                max_live_units=settings.max_live_units,
            ),
            metrics=metrics,
        )

        logger.info(
            "resilience_facade_initialized",
            metrics_enabled=metrics is not None,
            max_live_units=settings.max_live_units,
        )
        return facade

    def execute(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], T],
        fallback: Callable[[], T] | None = None,
    ) -> T:
        """
        Execute operation under bulkhead, circuit breaker and retry.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable
            fallback: Optional zero-argument callable used when the call fails
                or is rejected

        Returns:
            Operation or fallback result

        Raises:
            BulkheadFullError: If the bulkhead is full and no fallback is given
            CallNotPermittedError: If the breaker rejects and no fallback is given
            Exception: The operation's own failure when no fallback is given
        """
        bulkhead = self.bulkheads.get_bulkhead(adapter_type, adapter_id)
        breaker = self.circuit_breakers.get_circuit_breaker(adapter_type, adapter_id)
        retry = self.retry.get_retry(adapter_type, adapter_id)

        try:
            return bulkhead.call(lambda: breaker.call(lambda: retry.execute(operation)))
        except Exception as e:
            if fallback is None:
                raise
            self._log_fallback(adapter_type, adapter_id, e)
            return fallback()

    async def execute_async(
        self,
        adapter_type: str,
        adapter_id: str,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        """
        Await operation under bulkhead, circuit breaker and retry.

        Args:
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
            operation: Zero-argument callable returning an awaitable
            fallback: Optional zero-argument callable returning an awaitable

        Returns:
            Operation or fallback result
        """
        bulkhead = self.bulkheads.get_bulkhead(adapter_type, adapter_id)
        breaker = self.circuit_breakers.get_circuit_breaker(adapter_type, adapter_id)
        retry = self.retry.get_retry(adapter_type, adapter_id)

        try:
            return await bulkhead.call_async(
                lambda: breaker.call_async(lambda: retry.execute_async(operation))
            )
        except Exception as e:
            if fallback is None:
                raise
            self._log_fallback(adapter_type, adapter_id, e)
            return await fallback()

    def describe_failure(
        self,
        error: BaseException,
        adapter_type: str | None = None,
        adapter_id: str | None = None,
    ) -> FailureReport:
        """
        Describe how a resilient call failed.

        Separates rejections made to protect resources from genuine
        failures of the dependency.

        Args:
            error: Error raised by ``execute`` or one of the services
            adapter_type: Adapter type tag, taken from the error if omitted
            adapter_id: Adapter instance identifier, taken from the error if omitted

        Returns:
            Failure report
        """
        if isinstance(error, CallNotPermittedError):
            reason = FailureReason.CIRCUIT_OPEN
        elif isinstance(error, BulkheadFullError):
            reason = FailureReason.BULKHEAD_FULL
        elif isinstance(error, RetryDeadlineExceededError):
            reason = FailureReason.RETRY_DEADLINE_EXCEEDED
        else:
            reason = FailureReason.OPERATION_FAILED

        if isinstance(error, ResilienceError):
            adapter_type = adapter_type or error.adapter_type
            adapter_id = adapter_id or error.adapter_id
            rejected = error.rejected
        else:
            rejected = False

        return FailureReport(
            adapter_type=adapter_type,
            adapter_id=adapter_id,
            reason=reason,
            rejected=rejected,
            classification=self.classifier.classify(error),
        )

    def shutdown(self) -> None:
        """Release thread pools held by the bulkhead service."""
        self.bulkheads.shutdown(wait=False)
        logger.info("resilience_facade_shutdown")

    def _log_fallback(self, adapter_type: str, adapter_id: str, error: Exception) -> None:
        report = self.describe_failure(error, adapter_type, adapter_id)
        logger.warning(
            "resilience_fallback",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
            reason=report.reason.value,
            rejected=report.rejected,
            category=report.classification.category.value,
            error=str(error),
        )
