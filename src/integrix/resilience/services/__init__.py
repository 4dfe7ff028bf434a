"""Resilience services layer."""

from .bulkhead import Bulkhead, ThreadPoolBulkhead
from .bulkhead_service import BulkheadService
from .circuit_breaker import CircuitBreaker, SlidingWindow
from .circuit_breaker_service import CircuitBreakerService
from .error_classifier import ErrorClassifier
from .metrics_collector import ResilienceMetrics
from .resilience_facade import ResilienceFacade
from .retry import Retry
from .retry_service import RetryService
from .unit_cache import LiveUnitCache

__all__ = [
    "ErrorClassifier",
    "Retry",
    "RetryService",
    "CircuitBreaker",
    "SlidingWindow",
    "CircuitBreakerService",
    "Bulkhead",
    "ThreadPoolBulkhead",
    "BulkheadService",
    "ResilienceFacade",
    "ResilienceMetrics",
    "LiveUnitCache",
]
