"""Custom exceptions for tempo-utils.

Every failure the query executor can surface maps to one class here, so
callers can tell a timeout apart from a transport failure or a Tempo-side
rejection. All custom exceptions end in "Error".

Exception Hierarchy:
    TempoUtilsError (base)
    ├── RetriableError (transient errors)
    │   ├── QueryTimeoutError
    │   └── TempoFetchError
    └── NonRetriableError (permanent errors)
        ├── InvalidLimitError
        ├── QueryFailedError
        ├── UnexpectedQueryError
        └── ConfigurationError
"""

from __future__ import annotations

from enum import Enum
from typing import Any


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """Error codes for tempo-utils exceptions.

    These codes identify error types in logs and performance records
    without string-matching on messages.
    """

    # Base error
    TEMPO_UTILS_ERROR = "TEMPO_UTILS_ERROR"

    # Retriable errors
    QUERY_TIMEOUT = "QUERY_TIMEOUT"
    FETCH_ERROR = "FETCH_ERROR"

    # Non-retriable errors
    INVALID_LIMIT = "INVALID_LIMIT"
    QUERY_FAILED = "QUERY_FAILED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# =============================================================================
# Base Exception
# =============================================================================


class TempoUtilsError(Exception):
    """Base exception for all tempo-utils errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.TEMPO_UTILS_ERROR,
        **kwargs: Any,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )

        for key, value in kwargs.items():
            setattr(self, key, value)


# =============================================================================
# Retriable / Non-Retriable Bases
# =============================================================================


class RetriableError(TempoUtilsError):
    """Base class for transient errors that may succeed on retry.

    Attributes:
        retry_after_ms: Suggested retry delay in milliseconds.
    """

    def __init__(
        self,
        message: str,
        retry_after_ms: int = 1000,
        error_code: str | ErrorCode = ErrorCode.TEMPO_UTILS_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.retry_after_ms = retry_after_ms


class NonRetriableError(TempoUtilsError):
    """Base class for permanent errors that should not be retried."""

    pass


# =============================================================================
# Retriable Exceptions
# =============================================================================


class QueryTimeoutError(RetriableError):
    """Tempo did not answer within the query timeout.

    Raised instead of a generic transport error so callers can react to
    slow queries (e.g. narrow the time range) separately.

    Attributes:
        timeout_s: Timeout that was exceeded, in seconds.
    """

    def __init__(
        self,
        message: str,
        timeout_s: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.QUERY_TIMEOUT,
            **kwargs,
        )
        self.timeout_s = timeout_s


class TempoFetchError(RetriableError):
    """Transport-level failure talking to Tempo (DNS, refused connection, ...).

    Attributes:
        url: URL that was being requested.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.FETCH_ERROR,
            **kwargs,
        )
        self.url = url


# =============================================================================
# Non-Retriable Exceptions
# =============================================================================


class InvalidLimitError(NonRetriableError):
    """Query limit outside the range Tempo accepts.

    Raised before any network activity.

    Attributes:
        limit: The rejected limit.
    """

    def __init__(
        self,
        message: str,
        limit: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.INVALID_LIMIT,
            **kwargs,
        )
        self.limit = limit


class QueryFailedError(NonRetriableError):
    """Tempo answered with a non-success status.

    Attributes:
        status_code: HTTP status returned by Tempo.
        response_body: Raw response body, as received.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.QUERY_FAILED,
            **kwargs,
        )
        self.status_code = status_code
        self.response_body = response_body


class UnexpectedQueryError(NonRetriableError):
    """Anything else that went wrong, e.g. a malformed response body."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.UNEXPECTED_ERROR,
            **kwargs,
        )


class ConfigurationError(NonRetriableError):
    """Library configuration is invalid.

    Attributes:
        setting: Name of the problematic setting.
    """

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Error message.
            setting: Name of the problematic setting.
            **kwargs: Additional attributes.
        """
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            **kwargs,
        )
        self.setting = setting
