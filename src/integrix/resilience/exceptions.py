"""Errors raised by the resilience layer itself."""

from __future__ import annotations

from .models.events import CircuitState


class ResilienceError(Exception):
    """Base for every error the resilience layer raises on its own behalf."""

    #: True when the call was refused to protect resources rather than attempted
    rejected: bool = False

    def __init__(
        self,
        message: str,
        adapter_type: str | None = None,
        adapter_id: str | None = None,
    ) -> None:
        self.adapter_type = adapter_type
        self.adapter_id = adapter_id
        super().__init__(message)


class CallNotPermittedError(ResilienceError):
    """Raised when a circuit breaker refuses a call."""

    rejected = True

    def __init__(
        self,
        name: str,
        state: CircuitState,
        retry_after: float | None = None,
        adapter_type: str | None = None,
        adapter_id: str | None = None,
    ) -> None:
        """
        Initialize call-not-permitted error.

        Args:
            name: Circuit breaker name
            state: State that refused the call
            retry_after: Seconds until probing resumes, None if an operator must reset
            adapter_type: Adapter type tag
            adapter_id: Adapter instance identifier
        """
        self.name = name
        self.state = state
        self.retry_after = retry_after
        if retry_after is None:
            detail = "manual reset required"
        else:
            detail = f"retry after {retry_after:.1f} seconds"
        super().__init__(
            f"Circuit breaker '{name}' is {state.value} and does not permit calls ({detail})",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
        )


class BulkheadFullError(ResilienceError):
    """Raised when a bulkhead has no slot or queue space for a call."""

    rejected = True

    def __init__(
        self,
        name: str,
        max_concurrent_calls: int,
        max_wait_seconds: float = 0.0,
        adapter_type: str | None = None,
        adapter_id: str | None = None,
    ) -> None:
        self.name = name
        self.max_concurrent_calls = max_concurrent_calls
        self.max_wait_seconds = max_wait_seconds
        super().__init__(
            f"Bulkhead '{name}' is full "
            f"({max_concurrent_calls} concurrent calls, waited {max_wait_seconds:.1f}s)",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
        )


class RetryDeadlineExceededError(ResilienceError):
    """Raised when the next backoff would overrun a retry policy's overall budget."""

    def __init__(
        self,
        name: str,
        attempts: int,
        max_duration_seconds: float,
        last_error: BaseException,
        adapter_type: str | None = None,
        adapter_id: str | None = None,
    ) -> None:
        self.name = name
        self.attempts = attempts
        self.max_duration_seconds = max_duration_seconds
        self.last_error = last_error
        super().__init__(
            f"Retry '{name}' gave up after {attempts} attempts: "
            f"{max_duration_seconds:.1f}s budget exhausted ({last_error})",
            adapter_type=adapter_type,
            adapter_id=adapter_id,
        )
