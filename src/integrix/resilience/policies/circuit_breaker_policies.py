"""
Circuit-breaker tuning per adapter category.

Externally facing fast protocols use short windows and recover on their
own. Persistence and file layers watch longer windows and wait longer. The
critical ERP system trips on a small window, probes with a single call and
never leaves OPEN without an operator resetting it.
"""

from __future__ import annotations

from ..config.settings import Settings
from ..models.adapter_errors import AuthenticationError, IllegalStateError
from ..models.policies import AdapterCategory, CircuitBreakerPolicy, SlidingWindowType
from .base import CategoryPolicyTable

# Caller-side mistakes say nothing about dependency health
_CALLER_ERRORS: tuple[type[BaseException], ...] = (ValueError, TypeError, IllegalStateError)


def build_circuit_breaker_policies(
    settings: Settings | None = None,
) -> dict[AdapterCategory, CircuitBreakerPolicy]:
    """
    Build the circuit-breaker tuning table.

    Args:
        settings: Unused today, accepted for symmetry with the other tables

    Returns:
        Circuit-breaker policy per adapter category
    """
    return {
        AdapterCategory.HTTP: CircuitBreakerPolicy(
            category=AdapterCategory.HTTP,
            failure_rate_threshold=50.0,
            slow_call_rate_threshold=80.0,
            slow_call_duration_seconds=5.0,
            wait_duration_in_open_state_seconds=30.0,
            sliding_window_type=SlidingWindowType.COUNT_BASED,
            sliding_window_size=20,
            minimum_number_of_calls=10,
            permitted_calls_in_half_open_state=5,
            automatic_transition_from_open_to_half_open=True,
            ignore_exceptions=_CALLER_ERRORS + (AuthenticationError,),
        ),
        AdapterCategory.MESSAGING: CircuitBreakerPolicy(
            category=AdapterCategory.MESSAGING,
            failure_rate_threshold=50.0,
            slow_call_rate_threshold=90.0,
            slow_call_duration_seconds=3.0,
            wait_duration_in_open_state_seconds=20.0,
            sliding_window_type=SlidingWindowType.COUNT_BASED,
            sliding_window_size=30,
            minimum_number_of_calls=10,
            permitted_calls_in_half_open_state=10,
            automatic_transition_from_open_to_half_open=True,
            ignore_exceptions=_CALLER_ERRORS,
        ),
        AdapterCategory.DATABASE: CircuitBreakerPolicy(
            category=AdapterCategory.DATABASE,
            failure_rate_threshold=60.0,
            slow_call_rate_threshold=70.0,
            slow_call_duration_seconds=10.0,
            wait_duration_in_open_state_seconds=60.0,
            sliding_window_type=SlidingWindowType.TIME_BASED,
            sliding_window_size=60,
            minimum_number_of_calls=5,
            permitted_calls_in_half_open_state=3,
            automatic_transition_from_open_to_half_open=True,
            ignore_exceptions=_CALLER_ERRORS,
        ),
        AdapterCategory.FILE: CircuitBreakerPolicy(
            category=AdapterCategory.FILE,
            failure_rate_threshold=70.0,
            slow_call_rate_threshold=60.0,
            slow_call_duration_seconds=60.0,
            wait_duration_in_open_state_seconds=120.0,
            sliding_window_type=SlidingWindowType.TIME_BASED,
            sliding_window_size=120,
            minimum_number_of_calls=5,
            permitted_calls_in_half_open_state=2,
            automatic_transition_from_open_to_half_open=True,
            ignore_exceptions=_CALLER_ERRORS + (FileNotFoundError,),
        ),
        AdapterCategory.CRITICAL_SYSTEM: CircuitBreakerPolicy(
            category=AdapterCategory.CRITICAL_SYSTEM,
            failure_rate_threshold=40.0,
            slow_call_rate_threshold=50.0,
            slow_call_duration_seconds=30.0,
            wait_duration_in_open_state_seconds=300.0,
            sliding_window_type=SlidingWindowType.COUNT_BASED,
            sliding_window_size=10,
            minimum_number_of_calls=5,
            permitted_calls_in_half_open_state=1,
            # Recovery of the ERP link is gated on an operator
            automatic_transition_from_open_to_half_open=False,
            ignore_exceptions=_CALLER_ERRORS,
        ),
        AdapterCategory.DEFAULT: CircuitBreakerPolicy(
            category=AdapterCategory.DEFAULT,
            failure_rate_threshold=50.0,
            slow_call_rate_threshold=100.0,
            slow_call_duration_seconds=60.0,
            wait_duration_in_open_state_seconds=60.0,
            sliding_window_type=SlidingWindowType.COUNT_BASED,
            sliding_window_size=100,
            minimum_number_of_calls=10,
            permitted_calls_in_half_open_state=10,
            automatic_transition_from_open_to_half_open=True,
        ),
    }


class CircuitBreakerPolicyRegistry(CategoryPolicyTable[CircuitBreakerPolicy]):
    """Circuit-breaker policies keyed by adapter category."""

    @classmethod
    def from_settings(cls, settings: Settings) -> CircuitBreakerPolicyRegistry:
        return cls(build_circuit_breaker_policies(settings))
