"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- RangeFetchError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from rangefetch.errors.exceptions import (
    # Enums
    ErrorCategory,
    # Base classes
    RangeFetchError,
    ConfigurationError,
    # Metadata errors
    MetadataUnavailableError,
    UnexpectedStatusError,
    SizeUnknownError,
    # Part errors
    PartRetrievalFailedError,
    PartWriteFailedError,
    # Orchestration errors
    ContextCancelledError,
    AssemblyFailedError,
    # Classification utilities
    classify_http_status,
    classify_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "RangeFetchError",
    "ConfigurationError",
    # Metadata errors
    "MetadataUnavailableError",
    "UnexpectedStatusError",
    "SizeUnknownError",
    # Part errors
    "PartRetrievalFailedError",
    "PartWriteFailedError",
    # Orchestration errors
    "ContextCancelledError",
    "AssemblyFailedError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
]
