# Statify Engine - Custom Exceptions
# Exception hierarchy with error codes, context, and recovery hints

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4


class ErrorCode(str, Enum):
    """Standardized error codes for responses and logging."""

    # General errors (1xxx)
    UNKNOWN_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"

    # Procedure errors (7xxx)
    PROCEDURE_NOT_FOUND = "E7000"
    PROCEDURE_FAILED = "E7001"

    # Worker errors (8xxx)
    COMPUTE_FAILED = "E8000"
    COMPUTE_TIMEOUT = "E8001"
    COMPUTE_CANCELLED = "E8002"
    REQUEST_IN_FLIGHT = "E8003"


@dataclass(frozen=True)
class ErrorContext:
    """Immutable context information for error tracking and debugging."""

    error_id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: str = ""
    operation: str = ""
    request_id: Optional[str] = None
    additional_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_id": str(self.error_id),
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "operation": self.operation,
            "request_id": self.request_id,
            "additional_data": self.additional_data
        }


class BaseApplicationException(Exception):
    """
    Base exception class for all engine exceptions.

    ``message`` is always safe to show to the end user.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        recovery_hint: Optional[str] = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self.recovery_hint = recovery_hint
        self.is_retryable = is_retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for responses."""
        return {
            "error": True,
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "recovery_hint": self.recovery_hint,
            "is_retryable": self.is_retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code={self.error_code}, "
            f"error_id={self.context.error_id})"
        )


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(BaseApplicationException):
    """Precondition failure: bad selection or out-of-range parameter."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[dict[str, list[str]]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            **kwargs
        )
        self.field_errors = field_errors or {}

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field_errors"] = self.field_errors
        return result


# ============================================================================
# Procedure / Compute Exceptions
# ============================================================================

class ProcedureNotFoundException(BaseApplicationException):
    """Exception when no operator is registered under the requested name."""

    def __init__(self, procedure: str, available: Optional[list[str]] = None, **kwargs: Any) -> None:
        super().__init__(
            message=f"Procedure '{procedure}' is not available",
            error_code=ErrorCode.PROCEDURE_NOT_FOUND,
            recovery_hint=f"Available procedures: {', '.join(available)}" if available else None,
            **kwargs
        )
        self.procedure = procedure


class ComputeException(BaseApplicationException):
    """Base exception for worker execution failures."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", ErrorCode.COMPUTE_FAILED)
        super().__init__(message=message, **kwargs)


class ComputeTimeoutException(ComputeException):
    """The caller-side timeout elapsed; the worker unit was abandoned."""

    def __init__(self, timeout_seconds: float, **kwargs: Any) -> None:
        super().__init__(
            message="Analysis timed out. Please try again with fewer variables.",
            error_code=ErrorCode.COMPUTE_TIMEOUT,
            recovery_hint=f"The computation exceeded {timeout_seconds:g} seconds",
            is_retryable=True,
            **kwargs
        )
        self.timeout_seconds = timeout_seconds


class ComputeCancelledException(ComputeException):
    """The request was cancelled before a reply arrived."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            message="Analysis was cancelled.",
            error_code=ErrorCode.COMPUTE_CANCELLED,
            is_retryable=True,
            **kwargs
        )


class RequestInFlightException(ComputeException):
    """A request handle already has a computation running."""

    def __init__(self, request_id: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Request '{request_id}' already has an analysis running",
            error_code=ErrorCode.REQUEST_IN_FLIGHT,
            recovery_hint="Wait for the running analysis to finish or cancel it",
            **kwargs
        )
        self.request_id = request_id
