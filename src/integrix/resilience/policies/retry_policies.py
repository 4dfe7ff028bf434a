"""
Retry tuning per adapter category.

Fast request/response protocols retry quickly and often, persistence and
file transfers back off slowly, and the critical ERP system only retries
communication failures reported by its SDK.
"""

from __future__ import annotations

from typing import Any

from ..config.settings import Settings
from ..models.adapter_errors import (
    AdapterConnectionError,
    AdapterPermissionError,
    AdapterTimeoutError,
    ClassifiableVendorError,
    HasSQLState,
    HttpStatusError,
    IllegalStateError,
    TransientDataAccessError,
    VendorErrorGroup,
)
from ..models.policies import AdapterCategory, RetryPolicy
from .base import CategoryPolicyTable

_ILLEGAL_ARGUMENT_OR_STATE = (ValueError, TypeError, IllegalStateError)


def http_retry_on_exception(exc: BaseException) -> bool:
    """I/O, timeout and connect failures plus HTTP 5xx, never bad input."""
    if isinstance(exc, _ILLEGAL_ARGUMENT_OR_STATE):
        return False
    if isinstance(exc, HttpStatusError):
        return exc.is_server_error
    return isinstance(exc, (OSError, AdapterTimeoutError, AdapterConnectionError))


def http_retry_on_result(result: Any) -> bool:
    """Responses carrying a 5xx status code."""
    status_code = getattr(result, "status_code", None)
    return isinstance(status_code, int) and status_code >= 500


def database_retry_on_exception(exc: BaseException) -> bool:
    """Connection-class SQLSTATEs and transient transactions, never integrity violations."""
    if isinstance(exc, HasSQLState) and (exc.sqlstate or "").startswith("23"):
        return False
    if isinstance(exc, TransientDataAccessError):
        return True
    if isinstance(exc, HasSQLState):
        return (exc.sqlstate or "").startswith("08")
    return False


def messaging_retry_on_exception(exc: BaseException) -> bool:
    """Anything broker-side, never bad input."""
    return isinstance(exc, Exception) and not isinstance(exc, _ILLEGAL_ARGUMENT_OR_STATE)


def file_retry_on_exception(exc: BaseException) -> bool:
    """I/O and dropped connections, never missing files or denied access."""
    if isinstance(exc, (FileNotFoundError, PermissionError, AdapterPermissionError)):
        return False
    message = str(exc)
    if "Permission denied" in message or "Access denied" in message:
        return False
    # ftplib surfaces a server-closed control connection as EOFError
    return isinstance(
        exc,
        (OSError, EOFError, AdapterConnectionError, AdapterTimeoutError),
    )


def critical_system_retry_on_exception(exc: BaseException) -> bool:
    """Only vendor communication failures."""
    return (
        isinstance(exc, ClassifiableVendorError)
        and exc.error_group() == VendorErrorGroup.COMMUNICATION
    )


def default_retry_on_exception(exc: BaseException) -> bool:
    """Anything except an illegal argument."""
    return isinstance(exc, Exception) and not isinstance(exc, ValueError)


def build_retry_policies(settings: Settings) -> dict[AdapterCategory, RetryPolicy]:
    """
    Build the retry tuning table.

    Args:
        settings: Settings supplying the default bucket

    Returns:
        Retry policy per adapter category
    """
    return {
        AdapterCategory.HTTP: RetryPolicy(
            category=AdapterCategory.HTTP,
            max_retries=3,
            wait_seconds=0.5,
            backoff_multiplier=2.0,
            max_duration_seconds=30.0,
            retry_on_exception=http_retry_on_exception,
            retry_on_result=http_retry_on_result,
            retry_exceptions=("OSError", "AdapterTimeoutError", "AdapterConnectionError", "HttpStatusError(5xx)"),
            ignore_exceptions=("ValueError", "TypeError", "IllegalStateError"),
        ),
        AdapterCategory.DATABASE: RetryPolicy(
            category=AdapterCategory.DATABASE,
            max_retries=2,
            wait_seconds=2.0,
            backoff_multiplier=1.5,
            max_duration_seconds=60.0,
            retry_on_exception=database_retry_on_exception,
            retry_exceptions=("SQLSTATE 08xxx", "TransientDataAccessError"),
            ignore_exceptions=("SQLSTATE 23xxx",),
        ),
        AdapterCategory.MESSAGING: RetryPolicy(
            category=AdapterCategory.MESSAGING,
            max_retries=5,
            wait_seconds=0.2,
            backoff_multiplier=2.0,
            max_duration_seconds=30.0,
            retry_on_exception=messaging_retry_on_exception,
            retry_exceptions=("Exception",),
            ignore_exceptions=("ValueError", "TypeError", "IllegalStateError"),
        ),
        AdapterCategory.FILE: RetryPolicy(
            category=AdapterCategory.FILE,
            max_retries=4,
            wait_seconds=5.0,
            backoff_multiplier=1.5,
            max_duration_seconds=300.0,
            retry_on_exception=file_retry_on_exception,
            retry_exceptions=("OSError", "EOFError", "AdapterConnectionError", "AdapterTimeoutError"),
            ignore_exceptions=("FileNotFoundError", "PermissionError", "AdapterPermissionError"),
        ),
        AdapterCategory.CRITICAL_SYSTEM: RetryPolicy(
            category=AdapterCategory.CRITICAL_SYSTEM,
            max_retries=2,
            wait_seconds=10.0,
            backoff_multiplier=1.2,
            max_duration_seconds=120.0,
            retry_on_exception=critical_system_retry_on_exception,
            retry_exceptions=("VendorErrorGroup.COMMUNICATION",),
        ),
        AdapterCategory.DEFAULT: RetryPolicy(
            category=AdapterCategory.DEFAULT,
            max_retries=settings.default_retry_max_retries,
            wait_seconds=settings.default_retry_wait_seconds,
            max_duration_seconds=settings.default_retry_max_duration_seconds,
            retry_on_exception=default_retry_on_exception,
            retry_exceptions=("Exception",),
            ignore_exceptions=("ValueError",),
        ),
    }


class RetryPolicyRegistry(CategoryPolicyTable[RetryPolicy]):
    """Retry policies keyed by adapter category."""

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicyRegistry:
        return cls(build_retry_policies(settings))
