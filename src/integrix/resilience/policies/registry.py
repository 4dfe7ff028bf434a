"""Bundle of every policy table, built once at startup."""

from __future__ import annotations

from dataclasses import dataclass

from ..config.settings import Settings
from .bulkhead_policies import BulkheadPolicyRegistry, ThreadPoolBulkheadPolicyRegistry
from .circuit_breaker_policies import CircuitBreakerPolicyRegistry
from .retry_policies import RetryPolicyRegistry


@dataclass(frozen=True)
class PolicyRegistry:
    """Read-only tuning tables handed to each resilience service."""

    retry: RetryPolicyRegistry
    circuit_breaker: CircuitBreakerPolicyRegistry
    bulkhead: BulkheadPolicyRegistry
    thread_pool_bulkhead: ThreadPoolBulkheadPolicyRegistry

    @classmethod
    def from_settings(cls, settings: Settings) -> PolicyRegistry:
        """
        Build all tuning tables from settings.

        Args:
            settings: Settings supplying the default buckets

        Returns:
            Policy registry
        """
        return cls(
            retry=RetryPolicyRegistry.from_settings(settings),
            circuit_breaker=CircuitBreakerPolicyRegistry.from_settings(settings),
            bulkhead=BulkheadPolicyRegistry.from_settings(settings),
            thread_pool_bulkhead=ThreadPoolBulkheadPolicyRegistry.from_settings(settings),
        )
