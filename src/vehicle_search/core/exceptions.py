"""
Unified Exception Hierarchy for the Vehicle Search pipeline.

Exception Hierarchy:
    VehicleSearchError (base)
    ├── SessionError
    │   └── SessionNotFoundError
    ├── BackendError
    │   ├── ExactSearchError
    │   ├── SemanticSearchError
    │   └── EmbeddingError
    ├── ValidationError
    │   └── InvalidParameterError
    └── ConfigurationError

Safety violations, unresolved references and constraint conflicts are NOT
exceptions: they are returned as structured outcomes by the pipeline. Only
conditions that abort an operation are raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = auto()      # Recoverable, can continue
    ERROR = auto()        # Failed but can retry
    CRITICAL = auto()     # Cannot continue
    TRANSIENT = auto()    # Temporary, should retry automatically


class ErrorCategory(Enum):
    """Categories for error classification."""
    SESSION = "session"
    BACKEND = "backend"
    VALIDATION = "validation"
    CONFIGURATION = "config"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """
    Rich context for error messages.

    ``internal_detail`` is meant for logs only and is never included in
    ``to_dict()``.
    """
    operation: str | None = None
    session_id: str | None = None
    input_value: Any = None
    suggestion: str | None = None
    retry_after: float | None = None
    internal_detail: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class VehicleSearchError(Exception):
    """
    Base exception for all vehicle search errors.

    Provides:
    - Structured error context
    - Severity classification
    - Retry guidance
    - User-safe serialization
    """

    __slots__ = ('context', 'severity', 'category', 'retryable')

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.BACKEND,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "category": self.category.value,
            "severity": self.severity.name.lower(),
            "retryable": self.retryable,
        }
        if self.context.operation:
            result["operation"] = self.context.operation
        if self.context.suggestion:
            result["suggestion"] = self.context.suggestion
        if self.context.retry_after:
            result["retry_after_seconds"] = self.context.retry_after
        return result


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(VehicleSearchError):
    """Base class for conversation session errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.SESSION,
            retryable=False,
        )


class SessionNotFoundError(SessionError):
    """Raised when a session does not exist or has been idle past its TTL."""

    def __init__(
        self,
        session_id: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = ErrorContext(
            operation=ctx.operation,
            session_id=session_id,
            input_value=session_id,
            suggestion=ctx.suggestion or "Start a new conversation session",
            retry_after=ctx.retry_after,
            internal_detail=ctx.internal_detail,
            metadata=ctx.metadata,
        )
        super().__init__(f"Session not found: {session_id}", context=ctx)
        self.session_id = session_id


# =============================================================================
# Backend Errors
# =============================================================================

class BackendError(VehicleSearchError):
    """Base class for search backend and embedding provider failures."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.BACKEND,
            retryable=retryable,
        )


class ExactSearchError(BackendError):
    """Exact-filter query failed. Fatal for the current turn."""

    def __init__(
        self,
        message: str = "Vehicle search is temporarily unavailable",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, context=context, retryable=True)


class SemanticSearchError(BackendError):
    """Vector-similarity query failed. The orchestrator degrades to exact-only."""

    def __init__(
        self,
        message: str = "Semantic search is temporarily unavailable",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, context=context, retryable=True)
        self.severity = ErrorSeverity.TRANSIENT


class EmbeddingError(SemanticSearchError):
    """Embedding provider could not vectorize the query text."""

    def __init__(
        self,
        message: str = "Embedding provider is temporarily unavailable",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, context=context)


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(VehicleSearchError):
    """Base class for validation errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(
        self,
        param_name: str,
        value: Any,
        expected: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext()
        ctx = ErrorContext(
            operation=ctx.operation,
            session_id=ctx.session_id,
            input_value=value,
            suggestion=f"Expected {expected}",
            retry_after=ctx.retry_after,
            internal_detail=ctx.internal_detail,
            metadata=ctx.metadata,
        )
        super().__init__(
            f"Invalid parameter '{param_name}': {value!r} (expected {expected})",
            context=ctx
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(VehicleSearchError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error should be retried."""
    if isinstance(error, VehicleSearchError):
        return error.retryable

    # Check for common transient error messages
    error_str = str(error).lower()
    transient_patterns = [
        "rate limit",
        "too many requests",
        "temporarily unavailable",
        "service unavailable",
        "connection reset",
        "timeout",
    ]
    return any(pattern in error_str for pattern in transient_patterns)
