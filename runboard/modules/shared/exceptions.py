"""
Domain exceptions for the Runboard engine.

Purpose
-------
Structured exceptions for caller mistakes: blank identifiers, unknown scopes,
out-of-range limits. They are raised synchronously, before any store round
trip, and are never retryable.

Design Notes
------------
- All domain exceptions inherit from `RunboardDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`, mirroring the infrastructure hierarchy.
- Absent members are not errors: queries answer rank -1, score 0.0 or an
  empty list instead.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from runboard.core.exceptions import ErrorSeverity


class RunboardDomainException(Exception):
    """
    Base exception for all Runboard domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class ValidationError(RunboardDomainException):
    """
    Raised when a caller-supplied value is missing, blank or out of range.

    Args:
        field: Name of the field that failed validation (e.g. "event_id")
        message: Explanation of why validation failed
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class UnknownScopeError(ValidationError):
    """
    Raised when a scope name is not one of the supported scopes.

    Args:
        scope: The rejected scope name
        allowed: Accepted scope names, for the error message
    """

    def __init__(self, scope: Any, allowed: Iterable[str] = ()) -> None:
        self.scope = scope
        allowed_names = ", ".join(allowed)
        message = f"Unknown scope {scope!r}"
        if allowed_names:
            message += f" (expected one of: {allowed_names})"
        super().__init__("scope", message)
        self.error_code = "UNKNOWN_SCOPE"
        self.details["scope"] = scope
