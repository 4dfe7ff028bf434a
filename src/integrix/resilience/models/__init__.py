"""Resilience layer data models."""

from .adapter_errors import (
    AdapterConnectionError,
    AdapterError,
    AdapterPermissionError,
    AdapterTimeoutError,
    AuthenticationError,
    ClassifiableVendorError,
    DatabaseError,
    HasSQLState,
    HttpStatusError,
    IllegalStateError,
    RateLimitError,
    ResourceExhaustedError,
    TransientDataAccessError,
    VendorErrorGroup,
    VendorSystemError,
)
from .error_types import (
    ErrorCategory,
    ErrorClassification,
    ErrorSeverity,
    FailureReason,
    FailureReport,
)
from .events import (
    BulkheadEvent,
    BulkheadEventType,
    CircuitBreakerEvent,
    CircuitBreakerEventType,
    CircuitState,
    RetryEvent,
    RetryEventType,
)
from .policies import (
    AdapterCategory,
    BulkheadPolicy,
    CircuitBreakerPolicy,
    PolicyKey,
    RetryPolicy,
    SlidingWindowType,
    ThreadPoolBulkheadPolicy,
)
from .status import (
    BulkheadMetrics,
    CircuitBreakerHealthStatus,
    RetryConfigInfo,
    RetryMetrics,
    ThreadPoolBulkheadMetrics,
)

__all__ = [
    "AdapterError",
    "AdapterTimeoutError",
    "AdapterConnectionError",
    "AdapterPermissionError",
    "AuthenticationError",
    "RateLimitError",
    "ResourceExhaustedError",
    "IllegalStateError",
    "HttpStatusError",
    "DatabaseError",
    "TransientDataAccessError",
    "VendorSystemError",
    "VendorErrorGroup",
    "ClassifiableVendorError",
    "HasSQLState",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorClassification",
    "FailureReason",
    "FailureReport",
    "CircuitState",
    "RetryEvent",
    "RetryEventType",
    "CircuitBreakerEvent",
    "CircuitBreakerEventType",
    "BulkheadEvent",
    "BulkheadEventType",
    "AdapterCategory",
    "PolicyKey",
    "RetryPolicy",
    "CircuitBreakerPolicy",
    "SlidingWindowType",
    "BulkheadPolicy",
    "ThreadPoolBulkheadPolicy",
    "RetryMetrics",
    "RetryConfigInfo",
    "CircuitBreakerHealthStatus",
    "BulkheadMetrics",
    "ThreadPoolBulkheadMetrics",
]
