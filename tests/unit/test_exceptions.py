"""Unit tests for custom exception hierarchy"""
import logging
from datetime import datetime

from progression.exceptions import (
    AnalysisCancelledError,
    InsufficientDataError,
    InvariantViolationError,
    PersistenceError,
    ProgressionError,
    ValidationError,
    wrap_persistence_exception,
)


class TestProgressionError:
    """Test base exception class"""

    def test_basic_exception(self):
        """Test basic exception creation"""
        error = ProgressionError("Test error")
        assert error.message == "Test error"
        assert str(error) == "Test error"
        assert error.context == {}
        assert isinstance(error.timestamp, datetime)

    def test_exception_with_context(self):
        """Test exception with full context"""
        error = ProgressionError(
            message="Commit failed",
            user_id="123456",
            operation="commit",
            context={"action_id": "abc-123"},
        )
        assert error.user_id == "123456"
        assert error.operation == "commit"
        assert error.context["action_id"] == "abc-123"

    def test_exception_with_cause(self):
        """Test exception wrapping another exception"""
        original_error = ValueError("Invalid value")
        error = ProgressionError(message="Evaluation failed", cause=original_error)
        assert error.cause == original_error

    def test_logged_on_creation(self, caplog):
        """Errors log themselves with their type"""
        with caplog.at_level(logging.ERROR, logger="progression.exceptions"):
            ProgressionError("Something broke", user_id="42")
        assert "ProgressionError: Something broke" in caplog.text

    def test_log_record_carries_context(self, caplog):
        with caplog.at_level(logging.ERROR, logger="progression.exceptions"):
            ProgressionError("Commit failed", user_id="42", operation="commit")
        record = caplog.records[-1]
        assert record.user_id == "42"
        assert record.operation == "commit"
        assert record.error_type == "ProgressionError"


class TestValidationError:
    """Test catalog validation error"""

    def test_validation_error(self):
        """Test validation error with field"""
        error = ValidationError(
            message="Must be positive",
            field="target_value",
            value=-5
        )
        assert error.field == "target_value"
        assert error.value == -5
        assert error.context == {"field": "target_value", "value": -5}
        assert error.message == "Invalid target_value: Must be positive"

    def test_is_progression_error(self):
        assert isinstance(ValidationError("bad"), ProgressionError)


class TestAnalyticsErrors:
    """Test analytics errors"""

    def test_insufficient_data(self):
        error = InsufficientDataError("Too few samples", sample_size=3, minimum_sample_size=14)
        assert error.sample_size == 3
        assert error.minimum_sample_size == 14
        assert error.context == {"sample_size": 3, "minimum_sample_size": 14}

    def test_analysis_cancelled(self):
        error = AnalysisCancelledError(completed=4)
        assert error.message == "Analysis cancelled"
        assert error.completed == 4
        assert error.context["completed"] == 4


class TestInvariantViolationError:
    """Test invariant violation error"""

    def test_invariant_recorded(self):
        error = InvariantViolationError("current > longest", invariant="current_streak <= longest_streak")
        assert error.invariant == "current_streak <= longest_streak"
        assert error.context["invariant"] == "current_streak <= longest_streak"


class TestWrapPersistenceException:
    """Test persistence exception wrapper"""

    def test_wraps_backend_error(self):
        original = RuntimeError("connection reset")
        wrapped = wrap_persistence_exception(original, operation="commit", user_id="123")

        assert isinstance(wrapped, PersistenceError)
        assert wrapped.cause is original
        assert wrapped.operation == "commit"
        assert wrapped.user_id == "123"
        assert "commit failed" in wrapped.message
        assert "connection reset" in str(wrapped)

    def test_passes_through_own_errors(self):
        original = InsufficientDataError("few samples")
        assert wrap_persistence_exception(original, operation="load") is original
