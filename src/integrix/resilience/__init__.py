"""
Resilience control layer for Integrix adapters.

This package wraps outbound adapter calls in tuned retry, circuit-breaker and
bulkhead policies, and classifies adapter errors for operator tooling.

Key Components:
- Policy Registries: per adapter category tuning tables, built once at startup
- Retry Service: bounded re-attempts with fixed or exponential backoff
- Circuit Breaker Service: sliding-window state machines with manual overrides
- Bulkhead Service: semaphore and thread-pool concurrency limits
- Error Classifier: exception taxonomy for routing and recovery guidance
"""

__version__ = "0.1.0"
