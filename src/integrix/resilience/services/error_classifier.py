"""
Error classification for adapter failures.

Classifies any raised exception into a category and severity, decides
whether it is worth retrying or points at an unhealthy dependency, and
attaches operator remediation hints with an estimated recovery time.
"""

from __future__ import annotations

import re
import socket
import ssl
import threading
from collections.abc import Hashable

import structlog

from ..exceptions import BulkheadFullError, CallNotPermittedError, RetryDeadlineExceededError
from ..models.adapter_errors import AdapterError, HasSQLState, sqlstate_category
from ..models.error_types import (
    BASE_RECOVERY_TIME_MS,
    CATEGORY_SEVERITY,
    CIRCUIT_BREAKER_CATEGORIES,
    DEFAULT_RECOVERY_SUGGESTIONS,
    DEFAULT_RECOVERY_TIME_MS,
    NON_RETRYABLE_CATEGORIES,
    RECOVERY_SUGGESTIONS,
    RETRYABLE_CATEGORIES,
    SEVERITY_RECOVERY_MULTIPLIER,
    ErrorCategory,
    ErrorClassification,
    ErrorSeverity,
)

logger = structlog.get_logger()

# Message patterns, checked in order when the type is not recognised
TIMEOUT_PATTERN = re.compile(r"timeout|timed out|time out", re.IGNORECASE)
CONNECTION_PATTERN = re.compile(r"connection|connect|refused|reset|closed", re.IGNORECASE)
AUTHENTICATION_PATTERN = re.compile(
    r"auth|authentication|unauthorized|forbidden|401|403", re.IGNORECASE
)
RATE_LIMIT_PATTERN = re.compile(r"rate limit|too many requests|429", re.IGNORECASE)
RESOURCE_PATTERN = re.compile(r"out of memory|disk full|no space|resource", re.IGNORECASE)

_MESSAGE_PATTERNS: tuple[tuple[re.Pattern[str], ErrorCategory], ...] = (
    (TIMEOUT_PATTERN, ErrorCategory.TIMEOUT),
    (CONNECTION_PATTERN, ErrorCategory.CONNECTION),
    (AUTHENTICATION_PATTERN, ErrorCategory.AUTHENTICATION),
    (RATE_LIMIT_PATTERN, ErrorCategory.RATE_LIMIT),
    (RESOURCE_PATTERN, ErrorCategory.RESOURCE),
)

_FILESYSTEM_ERRORS: tuple[type[OSError], ...] = (
    FileNotFoundError,
    FileExistsError,
    PermissionError,
    IsADirectoryError,
    NotADirectoryError,
)

_DEFAULT_CACHE_SIZE = 10_000


def _qualified_name(exc: BaseException) -> str:
    exc_type = type(exc)
    if exc_type.__module__ == "builtins":
        return exc_type.__qualname__
    return f"{exc_type.__module__}.{exc_type.__qualname__}"


def _message_of(exc: BaseException) -> str | None:
    message = str(exc)
    return message or None


class ErrorClassifier:
    """
    Classifies exceptions into the resilience error taxonomy.

    Classification is a pure function of the exception type, its message and
    its structured discriminator (HTTP status, SQLSTATE, vendor group), so
    results are memoized per (type, message hash, discriminator).
    """

    def __init__(self, max_cache_size: int = _DEFAULT_CACHE_SIZE) -> None:
        """
        Initialize error classifier.

        Args:
            max_cache_size: Memoized classifications kept before the oldest are dropped
        """
        self._max_cache_size = max_cache_size
        self._cache: dict[tuple[str, int, Hashable], ErrorClassification] = {}
        self._lock = threading.Lock()

    def classify(self, exception: BaseException) -> ErrorClassification:
        """
        Classify an exception.

        Args:
            exception: Any raised error

        Returns:
            Classification result
        """
        message = _message_of(exception)
        cache_key = (
            _qualified_name(exception),
            hash(message) if message is not None else 0,
            self._discriminator(exception),
        )

        with self._lock:
            cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        classification = self._perform_classification(exception, message)

        with self._lock:
            if len(self._cache) >= self._max_cache_size:
                self._cache.pop(next(iter(self._cache)))
            return self._cache.setdefault(cache_key, classification)

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @staticmethod
    def _discriminator(exception: BaseException) -> Hashable:
        if isinstance(exception, RetryDeadlineExceededError):
            return _qualified_name(exception.last_error)
        if isinstance(exception, AdapterError):
            return exception.category
        if isinstance(exception, HasSQLState):
            return exception.sqlstate
        return None

    def _perform_classification(
        self,
        exception: BaseException,
        message: str | None,
    ) -> ErrorClassification:
        category = self.determine_category(exception, message)
        severity = CATEGORY_SEVERITY.get(category, ErrorSeverity.MEDIUM)

        classification = ErrorClassification(
            exception_class=_qualified_name(exception),
            message=message,
            category=category,
            severity=severity,
            retryable=self._is_retryable(category, message),
            circuit_breaker_candidate=self.is_circuit_breaker_candidate(category, severity),
            recovery_suggestions=RECOVERY_SUGGESTIONS.get(
                category, DEFAULT_RECOVERY_SUGGESTIONS
            ),
            estimated_recovery_time_ms=self._estimate_recovery_time(category, severity),
        )

        logger.debug(
            "error_classified",
            exception_class=classification.exception_class,
            category=category.value,
            severity=severity.value,
            retryable=classification.retryable,
        )
        return classification

    def determine_category(
        self,
        exception: BaseException,
        message: str | None = None,
    ) -> ErrorCategory:
        """
        Determine the category of an exception.

        Rejections raised by this layer and typed adapter errors win, then
        well-known Python exception types, then message patterns, then
        embedded HTTP status codes.

        Args:
            exception: Raised error
            message: Pre-extracted message, derived from the exception if omitted

        Returns:
            Error category
        """
        if message is None:
            message = _message_of(exception)

        # Rejections by the resilience layer itself
        if isinstance(exception, CallNotPermittedError):
            return ErrorCategory.SERVICE_UNAVAILABLE
        if isinstance(exception, BulkheadFullError):
            return ErrorCategory.RESOURCE
        if isinstance(exception, RetryDeadlineExceededError):
            return self.determine_category(exception.last_error)

        if isinstance(exception, AdapterError):
            return exception.category

        # TimeoutError also covers socket.timeout and asyncio/futures timeouts
        if isinstance(exception, TimeoutError):
            return ErrorCategory.TIMEOUT

        if isinstance(exception, (ConnectionError, socket.gaierror, socket.herror)):
            return ErrorCategory.CONNECTION

        if isinstance(exception, ssl.SSLCertVerificationError):
            return ErrorCategory.AUTHENTICATION

        if isinstance(exception, (ValueError, TypeError)):
            return ErrorCategory.VALIDATION

        if isinstance(exception, _FILESYSTEM_ERRORS):
            return ErrorCategory.RESOURCE

        if isinstance(exception, HasSQLState):
            return sqlstate_category(exception.sqlstate)

        if isinstance(exception, OSError):
            return self._analyze_io_error(message)

        if message:
            for pattern, category in _MESSAGE_PATTERNS:
                if pattern.search(message):
                    return category

            if "404" in message:
                return ErrorCategory.NOT_FOUND
            if "500" in message or "502" in message or "503" in message:
                return ErrorCategory.SERVICE_UNAVAILABLE

        return ErrorCategory.UNKNOWN

    @staticmethod
    def _analyze_io_error(message: str | None) -> ErrorCategory:
        if message:
            if "Permission denied" in message or "Access denied" in message:
                return ErrorCategory.PERMISSION
            if "No space" in message or "Disk full" in message:
                return ErrorCategory.RESOURCE
            if "File not found" in message or "No such file" in message:
                return ErrorCategory.NOT_FOUND
        return ErrorCategory.IO

    @staticmethod
    def _is_retryable(category: ErrorCategory, message: str | None) -> bool:
        if category in NON_RETRYABLE_CATEGORIES:
            return False
        if category in RETRYABLE_CATEGORIES:
            return True
        if category == ErrorCategory.RESOURCE:
            return message is not None and "temporary" in message
        return False

    @staticmethod
    def is_circuit_breaker_candidate(
        category: ErrorCategory,
        severity: ErrorSeverity,
    ) -> bool:
        return category in CIRCUIT_BREAKER_CATEGORIES and severity in (
            ErrorSeverity.HIGH,
            ErrorSeverity.CRITICAL,
        )

    @staticmethod
    def _estimate_recovery_time(category: ErrorCategory, severity: ErrorSeverity) -> int:
        base_ms = BASE_RECOVERY_TIME_MS.get(category, DEFAULT_RECOVERY_TIME_MS)
        return int(base_ms * SEVERITY_RECOVERY_MULTIPLIER[severity])
