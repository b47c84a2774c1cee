"""
Exception types and error classification for rangefetch.

Provides:
- ErrorCategory enum for retry decisions
- Typed exception hierarchy for download errors
- Error classification utilities
"""

import asyncio
from enum import Enum
from typing import Optional

import aiohttp


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on another attempt
                   (e.g., connection resets, timeouts, 5xx responses)
        PERMANENT: Failures that will not succeed on retry
                   (e.g., missing Content-Length, range not honoured, disk full)
        CANCELLED: Operation aborted by deadline or explicit cancel
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class RangeFetchError(Exception):
    """
    Base exception for all download errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error should trigger a retry."""
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


class ConfigurationError(RangeFetchError):
    """Invalid configuration."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Metadata Errors
# =============================================================================


class MetadataUnavailableError(RangeFetchError):
    """Metadata request could not be sent or the transport failed."""

    category = ErrorCategory.TRANSIENT


class UnexpectedStatusError(RangeFetchError):
    """Metadata request answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message or f"Server returned non-success status: {status_code}",
            cause,
            {"http_status": status_code},
        )
        self.status_code = status_code
        self.category = classify_http_status(status_code)


class SizeUnknownError(RangeFetchError):
    """Resource does not advertise a usable, positive length."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Part Errors
# =============================================================================


class PartRetrievalFailedError(RangeFetchError):
    """A byte range could not be retrieved within the retry budget."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        index: int,
        last_error: str,
        attempts: int,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            f"part {index}: retrieval failed after {attempts} attempt(s): {last_error}",
            cause,
            {"part_index": index, "attempts": attempts},
        )
        self.index = index
        self.last_error = last_error
        self.attempts = attempts


class PartWriteFailedError(RangeFetchError):
    """Retrieved bytes could not be written to the part store."""

    category = ErrorCategory.PERMANENT

    def __init__(self, index: int, cause: Optional[BaseException] = None):
        super().__init__(
            f"part {index}: failed to write part artifact",
            cause,
            {"part_index": index},
        )
        self.index = index


class ContextCancelledError(RangeFetchError):
    """Download aborted by deadline or explicit cancellation."""

    category = ErrorCategory.CANCELLED


class AssemblyFailedError(RangeFetchError):
    """Part artifacts could not be assembled into the destination file."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """
    Classify HTTP status code into error category.

    Args:
        status_code: HTTP response status

    Returns:
        Appropriate ErrorCategory
    """
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    # Already classified
    if isinstance(exc, RangeFetchError):
        return exc.category

    if isinstance(exc, asyncio.CancelledError):
        return ErrorCategory.CANCELLED

    if isinstance(exc, aiohttp.ClientResponseError):
        return classify_http_status(exc.status)

    if isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError)):
        return ErrorCategory.TRANSIENT

    if isinstance(exc, OSError):
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN
