"""
Typed errors raised by adapters.

Adapters raise these instead of bare exceptions so the classifier and the
retry predicates can match on a closed set of error kinds rather than on
class-name strings. Driver errors that already expose a SQLSTATE and vendor
SDK wrappers are recognised through the protocols at the bottom.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from .error_types import ErrorCategory


class VendorErrorGroup(str, Enum):
    """Error groups reported by critical ERP-style vendor SDKs."""

    COMMUNICATION = "communication"
    LOGON = "logon"
    SYSTEM_FAILURE = "system_failure"
    RESOURCE = "resource"
    APPLICATION = "application"


@runtime_checkable
class ClassifiableVendorError(Protocol):
    """Error that can report the vendor error group it belongs to."""

    def error_group(self) -> VendorErrorGroup: ...


@runtime_checkable
class HasSQLState(Protocol):
    """Database driver error exposing a five character SQLSTATE."""

    sqlstate: str | None


def sqlstate_category(sqlstate: str | None) -> ErrorCategory:
    """Map a SQLSTATE class prefix onto an error category."""
    if sqlstate:
        if sqlstate.startswith("08"):
            return ErrorCategory.CONNECTION
        if sqlstate.startswith("22"):
            return ErrorCategory.VALIDATION
        if sqlstate.startswith("23"):
            return ErrorCategory.CONSTRAINT_VIOLATION
        if sqlstate.startswith("40"):
            return ErrorCategory.TRANSACTION
        if sqlstate.startswith(("53", "54")):
            return ErrorCategory.RESOURCE
    return ErrorCategory.DATABASE


class AdapterError(Exception):
    """Base class for errors raised by adapter call-sites."""

    default_category: ErrorCategory = ErrorCategory.UNKNOWN

    @property
    def category(self) -> ErrorCategory:
        """Category this error belongs to."""
        return self.default_category


class AdapterTimeoutError(AdapterError):
    """Outbound call did not complete in time."""

    default_category = ErrorCategory.TIMEOUT


class AdapterConnectionError(AdapterError):
    """Connection to the vendor endpoint could not be established or was lost."""

    default_category = ErrorCategory.CONNECTION


class AuthenticationError(AdapterError):
    """Credentials were missing, invalid or expired."""

    default_category = ErrorCategory.AUTHENTICATION


class AdapterPermissionError(AdapterError):
    """Authenticated principal lacks access to the resource."""

    default_category = ErrorCategory.PERMISSION


class RateLimitError(AdapterError):
    """Vendor throttled the adapter."""

    default_category = ErrorCategory.RATE_LIMIT

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class ResourceExhaustedError(AdapterError):
    """Local or remote resources (memory, disk, pool slots) ran out."""

    default_category = ErrorCategory.RESOURCE


class IllegalStateError(AdapterError):
    """Adapter was invoked in a state that cannot serve the call."""

    default_category = ErrorCategory.VALIDATION


class HttpStatusError(AdapterError):
    """Vendor HTTP endpoint answered with a non-success status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}")

    @property
    def category(self) -> ErrorCategory:
        if self.status_code in (401, 403):
            return ErrorCategory.AUTHENTICATION
        if self.status_code == 404:
            return ErrorCategory.NOT_FOUND
        if self.status_code == 429:
            return ErrorCategory.RATE_LIMIT
        if self.status_code >= 500:
            return ErrorCategory.SERVICE_UNAVAILABLE
        if self.status_code >= 400:
            return ErrorCategory.VALIDATION
        return ErrorCategory.UNKNOWN

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class DatabaseError(AdapterError):
    """Database failure carrying the driver's SQLSTATE."""

    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        self.sqlstate = sqlstate
        super().__init__(message)

    @property
    def category(self) -> ErrorCategory:
        return sqlstate_category(self.sqlstate)


class TransientDataAccessError(DatabaseError):
    """Transaction failed for a transient reason (deadlock victim, lock timeout)."""

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory.TRANSACTION


class VendorSystemError(AdapterError):
    """Error wrapped from a critical vendor SDK, tagged with its error group."""

    def __init__(
        self,
        message: str,
        group: VendorErrorGroup,
        code: str | None = None,
    ) -> None:
        self.group = group
        self.code = code
        super().__init__(message)

    def error_group(self) -> VendorErrorGroup:
        return self.group

    @property
    def category(self) -> ErrorCategory:
        return {
            VendorErrorGroup.COMMUNICATION: ErrorCategory.CONNECTION,
            VendorErrorGroup.LOGON: ErrorCategory.AUTHENTICATION,
            VendorErrorGroup.SYSTEM_FAILURE: ErrorCategory.SERVICE_UNAVAILABLE,
            VendorErrorGroup.RESOURCE: ErrorCategory.RESOURCE,
        }.get(self.group, ErrorCategory.UNKNOWN)
