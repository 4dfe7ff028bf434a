"""Events published by live resilience units."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CircuitState(str, Enum):
    """States of a circuit breaker."""

    CLOSED = "closed"  # Normal operation, calls permitted and recorded
    OPEN = "open"  # Threshold exceeded, calls rejected
    HALF_OPEN = "half_open"  # Limited trial calls probe recovery
    DISABLED = "disabled"  # Manual override, calls permitted and not recorded
    FORCED_OPEN = "forced_open"  # Manual override, calls rejected until reset


class RetryEventType(str, Enum):
    RETRY = "retry"
    SUCCESS = "success"
    ERROR = "error"
    IGNORED_ERROR = "ignored_error"


class CircuitBreakerEventType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    IGNORED_ERROR = "ignored_error"
    NOT_PERMITTED = "not_permitted"
    FAILURE_RATE_EXCEEDED = "failure_rate_exceeded"
    SLOW_CALL_RATE_EXCEEDED = "slow_call_rate_exceeded"
    STATE_TRANSITION = "state_transition"
    RESET = "reset"


class BulkheadEventType(str, Enum):
    PERMITTED = "permitted"
    REJECTED = "rejected"
    FINISHED = "finished"


def _now() -> datetime:
    return datetime.now(UTC)


class RetryEvent(BaseModel):
    """Something happened inside a retried call."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unit name (adapterType-adapterId)")
    event_type: RetryEventType
    attempt: int = Field(ge=1, description="Attempt the event refers to")
    wait_seconds: float | None = Field(default=None, description="Backoff before next attempt")
    error: str | None = Field(default=None, description="Error message, if any")
    timestamp: datetime = Field(default_factory=_now)


class CircuitBreakerEvent(BaseModel):
    """Outcome or state change of a circuit breaker."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unit name (adapterType-adapterId)")
    event_type: CircuitBreakerEventType
    from_state: CircuitState | None = None
    to_state: CircuitState | None = None
    duration_seconds: float | None = None
    error: str | None = None
    rate: float | None = Field(default=None, description="Rate that crossed a threshold")
    timestamp: datetime = Field(default_factory=_now)


class BulkheadEvent(BaseModel):
    """Admission decision or completion in a bulkhead."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unit name (adapterType-adapterId)")
    event_type: BulkheadEventType
    thread_pool: bool = Field(default=False, description="Raised by the thread-pool flavor")
    timestamp: datetime = Field(default_factory=_now)
