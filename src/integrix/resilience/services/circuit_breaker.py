"""
Circuit breaker for one adapter instance.

Implements the CLOSED/OPEN/HALF_OPEN state machine over a count- or
time-based sliding window of call outcomes, with DISABLED and FORCED_OPEN
as operator overrides. The OPEN to HALF_OPEN transition is evaluated
lazily whenever the state is read, so no timer thread is needed.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from ..exceptions import CallNotPermittedError
from ..models.events import CircuitBreakerEvent, CircuitBreakerEventType, CircuitState
from ..models.policies import CircuitBreakerPolicy, PolicyKey, SlidingWindowType
from ..models.status import CircuitBreakerHealthStatus

logger = structlog.get_logger()

T = TypeVar("T")

CircuitBreakerListener = Callable[[CircuitBreakerEvent], None]

NOT_EVALUATED = -1.0


@dataclass(frozen=True)
class _Outcome:
    at: float
    failed: bool
    slow: bool


@dataclass(frozen=True)
class WindowSnapshot:
    """Aggregated view of the outcomes currently in a window."""

    buffered_calls: int
    failed_calls: int
    slow_calls: int
    failure_rate: float
    slow_call_rate: float

    @property
    def successful_calls(self) -> int:
        return self.buffered_calls - self.failed_calls


class SlidingWindow:
    """Recent call outcomes, bounded by count or by age."""

    def __init__(
        self,
        window_type: SlidingWindowType,
        size: int,
        minimum_number_of_calls: int,
        clock: Callable[[], float],
    ) -> None:
        self.window_type = window_type
        self.size = size
        if window_type == SlidingWindowType.COUNT_BASED:
            self.minimum_number_of_calls = min(minimum_number_of_calls, size)
            self._outcomes: deque[_Outcome] = deque(maxlen=size)
        else:
            self.minimum_number_of_calls = minimum_number_of_calls
            self._outcomes = deque()
        self._clock = clock

    def record(self, failed: bool, slow: bool) -> WindowSnapshot:
        self._outcomes.append(_Outcome(at=self._clock(), failed=failed, slow=slow))
        return self.snapshot()

    def snapshot(self) -> WindowSnapshot:
        self._evict_expired()
        buffered = len(self._outcomes)
        failed = sum(1 for outcome in self._outcomes if outcome.failed)
        slow = sum(1 for outcome in self._outcomes if outcome.slow)

        if buffered < self.minimum_number_of_calls:
            failure_rate = slow_call_rate = NOT_EVALUATED
        else:
            failure_rate = failed * 100.0 / buffered
            slow_call_rate = slow * 100.0 / buffered

        return WindowSnapshot(
            buffered_calls=buffered,
            failed_calls=failed,
            slow_calls=slow,
            failure_rate=failure_rate,
            slow_call_rate=slow_call_rate,
        )

    def _evict_expired(self) -> None:
        if self.window_type != SlidingWindowType.TIME_BASED:
            return
        cutoff = self._clock() - self.size
        while self._outcomes and self._outcomes[0].at <= cutoff:
            self._outcomes.popleft()


class CircuitBreaker:
    """
    Circuit breaker bound to one (adapter_type, adapter_id) pair.

    Outcomes are recorded only while CLOSED or HALF_OPEN. Errors matching the
    policy's ignore list count as neither success nor failure, and errors
    outside its record list count as success.
    """

    def __init__(
        self,
        key: PolicyKey,
        policy: CircuitBreakerPolicy,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize circuit breaker.

        Args:
            key: Adapter the breaker is bound to
            policy: Resolved circuit-breaker tuning
            clock: Monotonic clock for durations and the open-state wait
        """
        self.key = key
        self.policy = policy
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: list[CircuitBreakerListener] = []

        self._state = CircuitState.CLOSED
        self._window = self._closed_window()
        self._opened_at: float | None = None
        self._half_open_permits_used = 0
        self._not_permitted_calls = 0

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the wait has elapsed."""
        events: list[CircuitBreakerEvent] = []
        with self._lock:
            state = self._refresh_state(events)
        self._publish_all(events)
        return state

    def add_listener(self, listener: CircuitBreakerListener) -> None:
        """Register a callback receiving every circuit breaker event."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def call(self, operation: Callable[[], T]) -> T:
        """
        Execute an operation under the breaker.

        Args:
            operation: Zero-argument callable

        Returns:
            Operation result

        Raises:
            CallNotPermittedError: If the breaker rejects the call
        """
        self.acquire_permission()
        start = self._clock()
        try:
            result = operation()
        except Exception as e:
            self.on_error(self._clock() - start, e)
            raise
        except BaseException:
            self.release_permission()
            raise
        self.on_success(self._clock() - start)
        return result

    async def call_async(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Await an operation under the breaker.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            Operation result

        Raises:
            CallNotPermittedError: If the breaker rejects the call
        """
        self.acquire_permission()
        start = self._clock()
        try:
            result = await operation()
        except Exception as e:
            self.on_error(self._clock() - start, e)
            raise
        except BaseException:
            self.release_permission()
            raise
        self.on_success(self._clock() - start)
        return result

    def acquire_permission(self) -> None:
        """
        Admit one call or fail fast.

        Raises:
            CallNotPermittedError: If OPEN, FORCED_OPEN, or HALF_OPEN with no trial calls left
        """
        events: list[CircuitBreakerEvent] = []
        try:
            with self._lock:
                state = self._refresh_state(events)
                if state in (CircuitState.CLOSED, CircuitState.DISABLED):
                    return
                if (
                    state == CircuitState.HALF_OPEN
                    and self._half_open_permits_used
                    < self.policy.permitted_calls_in_half_open_state
                ):
                    self._half_open_permits_used += 1
                    return

                self._not_permitted_calls += 1
                retry_after = self._retry_after(state)
                events.append(
                    CircuitBreakerEvent(
                        name=self.name,
                        event_type=CircuitBreakerEventType.NOT_PERMITTED,
                        from_state=state,
                    )
                )
        finally:
            self._publish_all(events)

        logger.debug(
            "circuit_breaker_call_not_permitted",
            circuit_breaker=self.name,
            state=state.value,
            retry_after=retry_after,
        )
        raise CallNotPermittedError(
            name=self.name,
            state=state,
            retry_after=retry_after,
            adapter_type=self.key.adapter_type,
            adapter_id=self.key.adapter_id,
        )

    def release_permission(self) -> None:
        """Give back a half-open trial permit for a call that produced no outcome."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._half_open_permits_used > 0:
                self._half_open_permits_used -= 1

    def on_success(self, duration: float) -> None:
        """Record a successful call."""
        self._record(duration, error=None)

    def on_error(self, duration: float, error: BaseException) -> None:
        """Record a failed call, honoring the record and ignore lists."""
        if isinstance(error, self.policy.ignore_exceptions):
            self.release_permission()
            logger.debug(
                "circuit_breaker_error_ignored",
                circuit_breaker=self.name,
                error_type=type(error).__name__,
            )
            self._publish_all(
                [
                    CircuitBreakerEvent(
                        name=self.name,
                        event_type=CircuitBreakerEventType.IGNORED_ERROR,
                        duration_seconds=duration,
                        error=str(error),
                    )
                ]
            )
            return

        if isinstance(error, self.policy.record_exceptions):
            self._record(duration, error=error)
        else:
            self._record(duration, error=None)

    def reset(self) -> None:
        """Return to CLOSED with an empty window, whatever the current state."""
        with self._lock:
            from_state = self._state
            self._state = CircuitState.CLOSED
            self._window = self._closed_window()
            self._opened_at = None
            self._half_open_permits_used = 0
            self._not_permitted_calls = 0

        logger.info(
            "circuit_breaker_reset",
            circuit_breaker=self.name,
            from_state=from_state.value,
        )
        self._publish_all(
            [
                CircuitBreakerEvent(
                    name=self.name,
                    event_type=CircuitBreakerEventType.RESET,
                    from_state=from_state,
                    to_state=CircuitState.CLOSED,
                )
            ]
        )

    def transition_to_forced_open(self) -> None:
        """Reject every call until the breaker is reset."""
        self._manual_transition(CircuitState.FORCED_OPEN)

    def transition_to_disabled(self) -> None:
        """Permit every call and stop recording outcomes until the breaker is reset."""
        self._manual_transition(CircuitState.DISABLED)

    def get_health_status(self) -> CircuitBreakerHealthStatus:
        events: list[CircuitBreakerEvent] = []
        with self._lock:
            state = self._refresh_state(events)
            snapshot = self._window.snapshot()
            not_permitted = self._not_permitted_calls
        self._publish_all(events)

        return CircuitBreakerHealthStatus(
            adapter_type=self.key.adapter_type,
            adapter_id=self.key.adapter_id,
            state=state,
            failure_rate=snapshot.failure_rate,
            slow_call_rate=snapshot.slow_call_rate,
            buffered_calls=snapshot.buffered_calls,
            failed_calls=snapshot.failed_calls,
            slow_calls=snapshot.slow_calls,
            successful_calls=snapshot.successful_calls,
            not_permitted_calls=not_permitted,
        )

    def _record(self, duration: float, error: BaseException | None) -> None:
        slow = duration > self.policy.slow_call_duration_seconds
        events: list[CircuitBreakerEvent] = [
            CircuitBreakerEvent(
                name=self.name,
                event_type=(
                    CircuitBreakerEventType.SUCCESS
                    if error is None
                    else CircuitBreakerEventType.ERROR
                ),
                duration_seconds=duration,
                error=str(error) if error is not None else None,
            )
        ]

        with self._lock:
            state = self._state
            if state in (CircuitState.CLOSED, CircuitState.HALF_OPEN):
                snapshot = self._window.record(failed=error is not None, slow=slow)
                self._evaluate(state, snapshot, events)

        self._publish_all(events)

    def _evaluate(
        self,
        state: CircuitState,
        snapshot: WindowSnapshot,
        events: list[CircuitBreakerEvent],
    ) -> None:
        if snapshot.failure_rate == NOT_EVALUATED:
            return

        exceeded: CircuitBreakerEventType | None = None
        rate = None
        if snapshot.failure_rate >= self.policy.failure_rate_threshold:
            exceeded = CircuitBreakerEventType.FAILURE_RATE_EXCEEDED
            rate = snapshot.failure_rate
        elif snapshot.slow_call_rate >= self.policy.slow_call_rate_threshold:
            exceeded = CircuitBreakerEventType.SLOW_CALL_RATE_EXCEEDED
            rate = snapshot.slow_call_rate

        if exceeded is not None:
            events.append(
                CircuitBreakerEvent(name=self.name, event_type=exceeded, rate=rate)
            )
            self._transition_to_open(events, snapshot)
        elif state == CircuitState.HALF_OPEN:
            self._transition_to_closed(events)

    def _refresh_state(self, events: list[CircuitBreakerEvent]) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self.policy.automatic_transition_from_open_to_half_open
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.policy.wait_duration_in_open_state_seconds
        ):
            self._transition_to_half_open(events)
        return self._state

    def _retry_after(self, state: CircuitState) -> float | None:
        if state == CircuitState.HALF_OPEN:
            return 0.0
        if (
            state == CircuitState.OPEN
            and self.policy.automatic_transition_from_open_to_half_open
            and self._opened_at is not None
        ):
            elapsed = self._clock() - self._opened_at
            return max(0.0, self.policy.wait_duration_in_open_state_seconds - elapsed)
        return None

    def _transition_to_open(
        self,
        events: list[CircuitBreakerEvent],
        snapshot: WindowSnapshot,
    ) -> None:
        from_state = self._change_state(CircuitState.OPEN, events)
        self._opened_at = self._clock()
        self._half_open_permits_used = 0

        logger.error(
            "circuit_breaker_alert",
            circuit_breaker=self.name,
            adapter_type=self.key.adapter_type,
            adapter_id=self.key.adapter_id,
            from_state=from_state.value,
            to_state=CircuitState.OPEN.value,
            failure_rate=snapshot.failure_rate,
            slow_call_rate=snapshot.slow_call_rate,
            automatic_recovery=self.policy.automatic_transition_from_open_to_half_open,
        )

    def _transition_to_half_open(self, events: list[CircuitBreakerEvent]) -> None:
        from_state = self._change_state(CircuitState.HALF_OPEN, events)
        permitted = self.policy.permitted_calls_in_half_open_state
        self._window = SlidingWindow(
            SlidingWindowType.COUNT_BASED, permitted, permitted, self._clock
        )
        self._half_open_permits_used = 0

        logger.warning(
            "circuit_breaker_state_transition",
            circuit_breaker=self.name,
            from_state=from_state.value,
            to_state=CircuitState.HALF_OPEN.value,
            permitted_calls=permitted,
        )

    def _transition_to_closed(self, events: list[CircuitBreakerEvent]) -> None:
        from_state = self._change_state(CircuitState.CLOSED, events)
        self._window = self._closed_window()
        self._opened_at = None
        self._half_open_permits_used = 0

        logger.warning(
            "circuit_breaker_state_transition",
            circuit_breaker=self.name,
            from_state=from_state.value,
            to_state=CircuitState.CLOSED.value,
        )

    def _manual_transition(self, to_state: CircuitState) -> None:
        events: list[CircuitBreakerEvent] = []
        with self._lock:
            from_state = self._change_state(to_state, events)
            self._window = self._closed_window()
            self._opened_at = None
            self._half_open_permits_used = 0

        logger.warning(
            "circuit_breaker_state_transition",
            circuit_breaker=self.name,
            from_state=from_state.value,
            to_state=to_state.value,
            manual=True,
        )
        self._publish_all(events)

    def _change_state(
        self,
        to_state: CircuitState,
        events: list[CircuitBreakerEvent],
    ) -> CircuitState:
        from_state = self._state
        self._state = to_state
        events.append(
            CircuitBreakerEvent(
                name=self.name,
                event_type=CircuitBreakerEventType.STATE_TRANSITION,
                from_state=from_state,
                to_state=to_state,
            )
        )
        return from_state

    def _closed_window(self) -> SlidingWindow:
        return SlidingWindow(
            self.policy.sliding_window_type,
            self.policy.sliding_window_size,
            self.policy.minimum_number_of_calls,
            self._clock,
        )

    def _publish_all(self, events: list[CircuitBreakerEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception(
                        "circuit_breaker_listener_failed",
                        circuit_breaker=self.name,
                        event_type=event.event_type.value,
                    )
