"""Static tuning tables for retries, circuit breakers and bulkheads."""

from .adapter_types import ADAPTER_TYPE_CATEGORIES, classify_adapter_type
from .bulkhead_policies import BulkheadPolicyRegistry, ThreadPoolBulkheadPolicyRegistry
from .circuit_breaker_policies import CircuitBreakerPolicyRegistry
from .registry import PolicyRegistry
from .retry_policies import RetryPolicyRegistry

__all__ = [
    "ADAPTER_TYPE_CATEGORIES",
    "classify_adapter_type",
    "PolicyRegistry",
    "RetryPolicyRegistry",
    "CircuitBreakerPolicyRegistry",
    "BulkheadPolicyRegistry",
    "ThreadPoolBulkheadPolicyRegistry",
]
