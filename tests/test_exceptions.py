"""Tests for core/exceptions.py - hierarchy, context and serialization."""

from vehicle_search.core.exceptions import (
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


class TestVehicleSearchError:
    def test_defaults(self):
        e = VehicleSearchError("boom")
        assert str(e) == "boom"
        assert e.severity == ErrorSeverity.ERROR
        assert e.category == ErrorCategory.BACKEND
        assert e.retryable is False
        assert e.context == ErrorContext()

    def test_to_dict(self):
        ctx = ErrorContext(operation="exact_search", suggestion="try later", retry_after=2.5)
        d = VehicleSearchError("fail", context=ctx, retryable=True).to_dict()
        assert d == {
            "error": "fail",
            "category": "backend",
            "severity": "error",
            "retryable": True,
            "operation": "exact_search",
            "suggestion": "try later",
            "retry_after_seconds": 2.5,
        }

    def test_to_dict_hides_internal_detail(self):
        ctx = ErrorContext(internal_detail="connection refused by 10.0.0.3")
        d = VehicleSearchError("fail", context=ctx).to_dict()
        assert "10.0.0.3" not in str(d)
        assert "operation" not in d


class TestSessionErrors:
    def test_session_not_found(self):
        e = SessionNotFoundError("abc")
        assert isinstance(e, SessionError)
        assert e.session_id == "abc"
        assert "abc" in str(e)
        assert e.context.suggestion == "Start a new conversation session"
        assert e.category == ErrorCategory.SESSION
        assert e.retryable is False

    def test_session_not_found_keeps_operation(self):
        e = SessionNotFoundError("abc", context=ErrorContext(operation="get_session"))
        assert e.context.operation == "get_session"
        assert e.context.session_id == "abc"


class TestBackendErrors:
    def test_hierarchy(self):
        assert issubclass(ExactSearchError, BackendError)
        assert issubclass(SemanticSearchError, BackendError)
        assert issubclass(EmbeddingError, SemanticSearchError)

    def test_exact_default_message_is_user_safe(self):
        e = ExactSearchError()
        assert str(e) == "Vehicle search is temporarily unavailable"
        assert e.retryable is True

    def test_semantic_is_transient(self):
        assert SemanticSearchError().severity == ErrorSeverity.TRANSIENT
        assert EmbeddingError().severity == ErrorSeverity.TRANSIENT

    def test_backend_not_retryable(self):
        assert BackendError("bad request", retryable=False).retryable is False


class TestValidationErrors:
    def test_invalid_parameter(self):
        e = InvalidParameterError("max_results", 0, "an integer between 1 and 100")
        assert isinstance(e, ValidationError)
        assert "max_results" in str(e)
        assert e.context.input_value == 0
        assert e.context.suggestion == "Expected an integer between 1 and 100"
        assert e.category == ErrorCategory.VALIDATION

    def test_configuration_error_is_critical(self):
        e = ConfigurationError("bad weights")
        assert e.severity == ErrorSeverity.CRITICAL
        assert e.to_dict()["category"] == "config"


class TestIsRetryable:
    def test_vehicle_search_errors(self):
        assert is_retryable_error(ExactSearchError()) is True
        assert is_retryable_error(ConfigurationError("x")) is False

    def test_transient_messages(self):
        assert is_retryable_error(RuntimeError("Read timeout")) is True
        assert is_retryable_error(RuntimeError("429 Too Many Requests")) is True
        assert is_retryable_error(ValueError("bad value")) is False
