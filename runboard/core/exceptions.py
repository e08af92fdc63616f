"""
Infrastructure exceptions for the Runboard engine.

Purpose
-------
Structured exception hierarchy for infrastructure-level failures: the
ranking store being unreachable, mutating calls whose outcome is unknown,
and configuration problems.

Design Notes
------------
- All infrastructure exceptions inherit from `RunboardInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the caller may re-deliver the operation
  - `error_code`: short, stable identifier for programmatic use
- The engine never retries on its own. `is_retryable` is a hint for callers:
  re-delivering a submission with the same event id is always safe.
- Store failures fail closed: no fallback or stale data is ever returned.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., open circuit)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class RunboardInfrastructureException(Exception):
    """
    Base exception for all Runboard infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be re-delivered
        error_code: Optional code for programmatic handling

    Example:
        >>> raise RunboardInfrastructureException(
        ...     "Store handshake failed",
        ...     {"url": "redis://localhost:6379/0"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
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

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(RunboardInfrastructureException):
    """
    Raised when a configuration key is invalid or missing at runtime.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class StoreUnavailableError(RunboardInfrastructureException):
    """
    Raised when the ranking store cannot be reached or rejects a call.

    Covers connection failures on reads, script errors, an uninitialized
    client, and an open circuit breaker. Nothing was applied when this is
    raised from a read; for writes it is only raised when the call provably
    never reached the store (see `AmbiguousOutcomeError` otherwise).

    Args:
        operation: Store operation that failed (e.g. "top_n")
        key: Store key involved, when there is one
        original_error: The underlying exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        self.key = key
        self.original_error = original_error
        reason = str(original_error) if original_error else "store unavailable"
        super().__init__(
            f"Store unavailable during {operation}: {reason}",
            details={
                "operation": operation,
                "key": key,
                "error": reason,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="STORE_UNAVAILABLE",
        )


class AmbiguousOutcomeError(RunboardInfrastructureException):
    """
    Raised when a mutating round trip timed out or lost its connection.

    The script may or may not have run. Callers should re-deliver with the
    same event / claim key; the once-only check makes that safe.

    Args:
        operation: Mutating operation (e.g. "increment_once_many")
        key: Primary key of the mutation (the dedup or claim key)
        original_error: The timeout or connection error
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        key: Optional[str],
        original_error: BaseException,
    ) -> None:
        self.operation = operation
        self.key = key
        self.original_error = original_error
        super().__init__(
            f"Outcome of {operation} is unknown: {original_error!s}",
            details={
                "operation": operation,
                "key": key,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="AMBIGUOUS_OUTCOME",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """True if the caller may safely re-deliver the failed operation."""
    if isinstance(exc, RunboardInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity of an exception for logging; ERROR for foreign exceptions."""
    if isinstance(exc, RunboardInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True when severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
