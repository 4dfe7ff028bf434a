"""Live retry unit bound to one adapter instance.

A ``Retry`` owns the policy resolved for its adapter type, the monotonically
increasing outcome counters and the listeners observing its attempts. The
same unit drives both the blocking and the asyncio execution paths.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from ..exceptions import RetryDeadlineExceededError
from ..models.events import RetryEvent, RetryEventType
from ..models.policies import PolicyKey, RetryPolicy
from ..models.status import RetryMetrics

logger = structlog.get_logger()

T = TypeVar("T")

RetryListener = Callable[[RetryEvent], None]


class Retry:
    """Retry unit for one (adapter_type, adapter_id) pair."""

    def __init__(
        self,
        key: PolicyKey,
        policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize retry unit.

        Args:
            key: Adapter the unit is bound to
            policy: Resolved retry tuning
            sleep: Blocking wait used between synchronous attempts
            async_sleep: Awaitable wait used between asynchronous attempts
            clock: Monotonic clock used for the overall budget
        """
        self.key = key
        self.policy = policy
        self._sleep = sleep
        self._async_sleep = async_sleep
        self._clock = clock
        self._listeners: list[RetryListener] = []
        self._lock = threading.Lock()

        self._succeeded_without_retry = 0
        self._succeeded_with_retry = 0
        self._failed_without_retry = 0
        self._failed_with_retry = 0

    @property
    def name(self) -> str:
        return self.key.name

    def add_listener(self, listener: RetryListener) -> None:
        """Register a callback receiving every retry event."""
        self._listeners.append(listener)

    def execute(self, operation: Callable[[], T]) -> T:
        """
        Run an operation, re-invoking it while the policy allows.

        Args:
            operation: Zero-argument callable

        Returns:
            Operation result

        Raises:
            RetryDeadlineExceededError: If the next wait would overrun the overall budget
            Exception: The last failure once attempts are exhausted, or a
                non-retryable failure on first occurrence
        """
        started = self._clock()
        attempt = 1
        while True:
            try:
                result = operation()
            except Exception as e:
                wait = self._on_error(attempt, started, e)
                if wait is None:
                    raise
            else:
                wait = self._on_result(attempt, started, result)
                if wait is None:
                    return result

            self._sleep(wait)
            attempt += 1

    async def execute_async(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Await an operation, re-awaiting it while the policy allows.

        Backoff waits suspend only this coroutine.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            Operation result
        """
        started = self._clock()
        attempt = 1
        while True:
            try:
                result = await operation()
            except Exception as e:
                wait = self._on_error(attempt, started, e)
                if wait is None:
                    raise
            else:
                wait = self._on_result(attempt, started, result)
                if wait is None:
                    return result

            await self._async_sleep(wait)
            attempt += 1

    def get_metrics(self) -> RetryMetrics:
        """Snapshot of the outcome counters."""
        with self._lock:
            return RetryMetrics(
                adapter_type=self.key.adapter_type,
                adapter_id=self.key.adapter_id,
                successful_calls_without_retry=self._succeeded_without_retry,
                successful_calls_with_retry=self._succeeded_with_retry,
                failed_calls_without_retry=self._failed_without_retry,
                failed_calls_with_retry=self._failed_with_retry,
            )

    def _on_error(self, attempt: int, started: float, error: Exception) -> float | None:
        """Decide what follows a failed attempt.

        Returns the wait before the next attempt, or None when the error must
        propagate unchanged.
        """
        if not self.policy.retry_on_exception(error):
            self._record_failure(attempt)
            logger.debug(
                "retry_not_applicable",
                retry=self.name,
                attempt=attempt,
                error_type=type(error).__name__,
            )
            self._publish(
                RetryEvent(
                    name=self.name,
                    event_type=RetryEventType.IGNORED_ERROR,
                    attempt=attempt,
                    error=str(error),
                )
            )
            return None

        if attempt >= self.policy.max_attempts:
            self._exhausted(attempt, str(error))
            return None

        wait = self.policy.wait_for_retry(attempt)
        budget = self.policy.max_duration_seconds
        if budget is not None and (self._clock() - started) + wait > budget:
            self._exhausted(attempt, str(error))
            raise RetryDeadlineExceededError(
                name=self.name,
                attempts=attempt,
                max_duration_seconds=budget,
                last_error=error,
                adapter_type=self.key.adapter_type,
                adapter_id=self.key.adapter_id,
            ) from error

        self._before_retry(attempt, wait, str(error))
        return wait

    def _on_result(self, attempt: int, started: float, result: Any) -> float | None:
        """Decide what follows a returned result.

        Returns the wait before the next attempt, or None when the result
        goes back to the caller.
        """
        if not self.policy.retry_on_result(result):
            with self._lock:
                if attempt == 1:
                    self._succeeded_without_retry += 1
                else:
                    self._succeeded_with_retry += 1
            if attempt > 1:
                logger.info("retry_succeeded", retry=self.name, attempt=attempt)
            self._publish(
                RetryEvent(name=self.name, event_type=RetryEventType.SUCCESS, attempt=attempt)
            )
            return None

        # A rejected result is handed back as-is once attempts or budget run out
        wait = self.policy.wait_for_retry(attempt)
        budget = self.policy.max_duration_seconds
        over_budget = budget is not None and (self._clock() - started) + wait > budget
        if attempt >= self.policy.max_attempts or over_budget:
            self._exhausted(attempt, f"retryable result: {result!r}")
            return None

        self._before_retry(attempt, wait, f"retryable result: {result!r}")
        return wait

    def _before_retry(self, attempt: int, wait: float, error: str) -> None:
        logger.warning(
            "retry_attempt",
            retry=self.name,
            attempt=attempt + 1,
            max_attempts=self.policy.max_attempts,
            delay=wait,
            error=error,
        )
        self._publish(
            RetryEvent(
                name=self.name,
                event_type=RetryEventType.RETRY,
                attempt=attempt,
                wait_seconds=wait,
                error=error,
            )
        )

    def _exhausted(self, attempt: int, error: str) -> None:
        self._record_failure(attempt)
        logger.warning(
            "retry_exhausted",
            retry=self.name,
            attempts=attempt,
            max_attempts=self.policy.max_attempts,
            error=error,
        )
        self._publish(
            RetryEvent(
                name=self.name,
                event_type=RetryEventType.ERROR,
                attempt=attempt,
                error=error,
            )
        )

    def _record_failure(self, attempt: int) -> None:
        with self._lock:
            if attempt == 1:
                self._failed_without_retry += 1
            else:
                self._failed_with_retry += 1

    def _publish(self, event: RetryEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "retry_listener_failed",
                    retry=self.name,
                    event_type=event.event_type.value,
                )
