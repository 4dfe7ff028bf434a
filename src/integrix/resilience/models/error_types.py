"""
Error categorization and types for the resilience layer.

This module defines the error categories, severity levels and classification
results used to decide retry, circuit-breaker and operator guidance for
adapter failures.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ErrorCategory(str, Enum):
    """Categories of adapter errors."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    # Memory, disk, pool or quota exhaustion
    RESOURCE = "resource"
    DATABASE = "database"
    TRANSACTION = "transaction"
    CONSTRAINT_VIOLATION = "constraint_violation"
    SERVICE_UNAVAILABLE = "service_unavailable"
    IO = "io"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""

    # Critical - dependency or host integrity at risk, page an operator
    CRITICAL = "critical"
    # High - adapter cannot make progress without intervention
    HIGH = "high"
    # Medium - degraded, usually self-healing
    MEDIUM = "medium"
    # Low - caller-side problem, no action on the dependency
    LOW = "low"


class FailureReason(str, Enum):
    """Why a resilient call ended without a result."""

    CIRCUIT_OPEN = "circuit_open"
    BULKHEAD_FULL = "bulkhead_full"
    RETRY_DEADLINE_EXCEEDED = "retry_deadline_exceeded"
    OPERATION_FAILED = "operation_failed"


class ErrorClassification(BaseModel):
    """Classification of one (exception type, message) pair."""

    model_config = ConfigDict(frozen=True)

    exception_class: str = Field(description="Fully qualified exception type name")
    message: str | None = Field(default=None, description="Exception message")
    category: ErrorCategory = Field(description="Error category")
    severity: ErrorSeverity = Field(description="Error severity level")
    retryable: bool = Field(description="Whether a re-attempt may plausibly succeed")
    circuit_breaker_candidate: bool = Field(
        description="Whether the failure points at an unhealthy dependency",
    )
    recovery_suggestions: tuple[str, ...] = Field(
        default=(),
        description="Ordered operator remediation hints",
    )
    estimated_recovery_time_ms: int = Field(
        ge=0,
        description="Expected time until the dependency recovers",
    )


class FailureReport(BaseModel):
    """Operator-facing summary of a failed resilient call."""

    model_config = ConfigDict(frozen=True)

    adapter_type: str | None = Field(default=None, description="Adapter type tag")
    adapter_id: str | None = Field(default=None, description="Adapter instance id")
    reason: FailureReason = Field(description="How the call ended")
    rejected: bool = Field(
        description="True when the resilience layer refused the call to protect resources",
    )
    classification: ErrorClassification = Field(description="Underlying error classification")


# Category to severity mapping
CATEGORY_SEVERITY: dict[ErrorCategory, ErrorSeverity] = {
    ErrorCategory.RESOURCE: ErrorSeverity.CRITICAL,
    ErrorCategory.PERMISSION: ErrorSeverity.CRITICAL,
    ErrorCategory.AUTHENTICATION: ErrorSeverity.HIGH,
    ErrorCategory.DATABASE: ErrorSeverity.HIGH,
    ErrorCategory.TRANSACTION: ErrorSeverity.HIGH,
    ErrorCategory.CONNECTION: ErrorSeverity.MEDIUM,
    ErrorCategory.TIMEOUT: ErrorSeverity.MEDIUM,
    ErrorCategory.SERVICE_UNAVAILABLE: ErrorSeverity.MEDIUM,
    ErrorCategory.VALIDATION: ErrorSeverity.LOW,
    ErrorCategory.NOT_FOUND: ErrorSeverity.LOW,
    ErrorCategory.RATE_LIMIT: ErrorSeverity.LOW,
}

NON_RETRYABLE_CATEGORIES: frozenset[ErrorCategory] = frozenset(
    {
        ErrorCategory.VALIDATION,
        ErrorCategory.AUTHENTICATION,
        ErrorCategory.PERMISSION,
        ErrorCategory.NOT_FOUND,
        ErrorCategory.CONSTRAINT_VIOLATION,
    }
)

RETRYABLE_CATEGORIES: frozenset[ErrorCategory] = frozenset(
    {
        ErrorCategory.TIMEOUT,
        ErrorCategory.CONNECTION,
        ErrorCategory.SERVICE_UNAVAILABLE,
        ErrorCategory.RATE_LIMIT,
        ErrorCategory.TRANSACTION,
    }
)

CIRCUIT_BREAKER_CATEGORIES: frozenset[ErrorCategory] = frozenset(
    {
        ErrorCategory.SERVICE_UNAVAILABLE,
        ErrorCategory.CONNECTION,
        ErrorCategory.TIMEOUT,
        ErrorCategory.RESOURCE,
    }
)

# Base recovery time per category in milliseconds
BASE_RECOVERY_TIME_MS: dict[ErrorCategory, int] = {
    ErrorCategory.TIMEOUT: 30_000,
    ErrorCategory.CONNECTION: 60_000,
    ErrorCategory.SERVICE_UNAVAILABLE: 300_000,
    ErrorCategory.RATE_LIMIT: 60_000,
    ErrorCategory.RESOURCE: 600_000,
    ErrorCategory.TRANSACTION: 5_000,
}
DEFAULT_RECOVERY_TIME_MS = 10_000

SEVERITY_RECOVERY_MULTIPLIER: dict[ErrorSeverity, float] = {
    ErrorSeverity.CRITICAL: 2.0,
    ErrorSeverity.HIGH: 1.5,
    ErrorSeverity.MEDIUM: 1.0,
    ErrorSeverity.LOW: 0.5,
}

RECOVERY_SUGGESTIONS: dict[ErrorCategory, tuple[str, ...]] = {
    ErrorCategory.TIMEOUT: (
        "Increase timeout configuration",
        "Check network latency",
        "Verify target service performance",
    ),
    ErrorCategory.CONNECTION: (
        "Verify network connectivity",
        "Check firewall rules",
        "Validate connection parameters",
        "Ensure target service is running",
    ),
    ErrorCategory.AUTHENTICATION: (
        "Verify credentials",
        "Check authentication token expiry",
        "Review access permissions",
    ),
    ErrorCategory.RATE_LIMIT: (
        "Implement request throttling",
        "Add exponential backoff",
        "Consider batch processing",
    ),
    ErrorCategory.RESOURCE: (
        "Check system resources (memory, disk)",
        "Implement resource cleanup",
        "Consider scaling resources",
    ),
    ErrorCategory.DATABASE: (
        "Check database connectivity",
        "Verify connection pool settings",
        "Review query performance",
    ),
    ErrorCategory.VALIDATION: (
        "Review input data validation",
        "Check data format requirements",
        "Verify API contract",
    ),
}
DEFAULT_RECOVERY_SUGGESTIONS: tuple[str, ...] = (
    "Check application logs for details",
    "Review error message for specific guidance",
)
