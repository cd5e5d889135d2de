"""
Exception hierarchy for the progression engine

Every error carries the user and operation it concerns plus structured
context, and logs itself once when raised.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


class ProgressionError(Exception):
    """
    Base exception for all progression engine errors

    Args:
        message: What went wrong
        user_id: User whose records were involved
        operation: Engine or gateway operation that failed (e.g. "commit")
        context: Extra fields for the log record
        cause: Underlying exception, if this one wraps it

    Example:
        raise ProgressionError(
            message="Failed to commit progression changes",
            user_id="123456",
            operation="commit",
            context={"action_id": "abc-123"}
        )
    """

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        self._log_error()

    def _log_error(self) -> None:
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # 'message' is reserved on LogRecord
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
        }

        if self.cause:
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data)


# ==========================================
# Catalog Validation
# ==========================================

class ValidationError(ProgressionError):
    """
    Raised when an achievement catalog entry is malformed

    Examples:
    - Target value <= 0
    - Empty or duplicate achievement id
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Persistence Errors
# ==========================================

class PersistenceError(ProgressionError):
    """Persistence gateway failed to load or store progression records"""


# ==========================================
# Analytics Errors
# ==========================================

class InsufficientDataError(ProgressionError):
    """Too few samples for a statistic requested in strict mode"""

    def __init__(
        self,
        message: str,
        sample_size: int = 0,
        minimum_sample_size: int = 0,
        **kwargs
    ):
        self.sample_size = sample_size
        self.minimum_sample_size = minimum_sample_size
        super().__init__(
            message=message,
            context={"sample_size": sample_size, "minimum_sample_size": minimum_sample_size},
            **kwargs
        )


class AnalysisCancelledError(ProgressionError):
    """A long-running analytics computation was cancelled by its caller"""

    def __init__(self, message: str = "Analysis cancelled", completed: int = 0, **kwargs):
        self.completed = completed
        super().__init__(message=message, context={"completed": completed}, **kwargs)


# ==========================================
# Programming Invariants
# ==========================================

class InvariantViolationError(ProgressionError):
    """Internal state broke an invariant (e.g. current streak above longest)"""

    def __init__(self, message: str, invariant: Optional[str] = None, **kwargs):
        self.invariant = invariant
        super().__init__(message=message, context={"invariant": invariant}, **kwargs)


def wrap_persistence_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> ProgressionError:
    """
    Wrap a storage backend exception as PersistenceError

    Errors that are already ProgressionErrors are returned unchanged.

    Example:
        try:
            await gateway.commit(changes)
        except Exception as e:
            raise wrap_persistence_exception(e, operation="commit", user_id="123456")
    """
    if isinstance(error, ProgressionError):
        return error

    return PersistenceError(
        message=f"{operation} failed: {error}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
