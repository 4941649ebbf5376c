"""
Core Module - Cross-cutting error types and async helpers.
"""

from .async_utils import KeyedLock, gather_with_errors, with_deadline
from .exceptions import (
    BackendError,
    ConfigurationError,
    EmbeddingError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ExactSearchError,
    InvalidParameterError,
    SemanticSearchError,
    SessionError,
    SessionNotFoundError,
    ValidationError,
    VehicleSearchError,
    is_retryable_error,
)

__all__ = [
    # Exceptions
    "VehicleSearchError",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "SessionError",
    "SessionNotFoundError",
    "BackendError",
    "ExactSearchError",
    "SemanticSearchError",
    "EmbeddingError",
    "ValidationError",
    "InvalidParameterError",
    "ConfigurationError",
    "is_retryable_error",
    # Async utilities
    "KeyedLock",
    "gather_with_errors",
    "with_deadline",
]
