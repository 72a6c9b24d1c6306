"""
Infrastructure exceptions for the Roleplay reference server.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
upstream Engine API failures, push-channel socket failures, configuration
errors, event bus failures and rule evaluation errors.

Design Notes
------------
- All infrastructure exceptions inherit from `ServerInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns.
- Lookup misses are NOT exceptions: cache reads return None or empty
  collections.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., stale deltas)
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class ServerInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Provides structured error information with details for logging and alerting.
    All infrastructure exceptions should inherit from this base class.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise ServerInfrastructureException(
        ...     "Engine API unreachable",
        ...     {"url": "https://engine.example/api"}
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
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(ServerInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        error_message = f"Configuration error for {config_key}: {message}"
        super().__init__(
            error_message,
            details={
                "config_key": config_key,
                "message": message,
            },
            error_code="CONFIG_ERROR",
        )


class EngineApiError(ServerInfrastructureException):
    """
    Raised when a call to the upstream Engine API fails.

    Transport failures and 5xx responses are retryable; 4xx responses are not.

    Args:
        operation: Name of the API operation (e.g. "get_references")
        status_code: HTTP status code, or None for transport failures
        original_error: The underlying exception (if any)
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.original_error = original_error

        if original_error is not None:
            reason = str(original_error)
        else:
            reason = f"HTTP {status_code}"

        retryable = status_code is None or status_code >= 500
        super().__init__(
            f"Engine API error during {operation}: {reason}",
            details={
                "operation": operation,
                "status_code": status_code,
                "error": reason,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="ENGINE_API_ERROR",
            is_retryable=retryable,
        )


class EngineSocketError(ServerInfrastructureException):
    """
    Raised when the push-channel socket cannot be established.

    Args:
        url: Socket URL (without credentials)
        attempts: Number of connection attempts made
        original_error: The last underlying exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(
        self, url: str, attempts: int, original_error: Optional[Exception] = None
    ) -> None:
        self.url = url
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(
            f"Engine socket connection to {url} failed after {attempts} attempts",
            details={
                "url": url,
                "attempts": attempts,
                "error": str(original_error) if original_error else None,
            },
            error_code="ENGINE_SOCKET_ERROR",
        )


class EventBusError(ServerInfrastructureException):
    """
    Raised when event bus operations fail.

    Args:
        operation: Description of the event operation that failed
        event_type: Type of event involved
        original_error: The underlying exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(
        self, operation: str, event_type: str, original_error: Exception
    ) -> None:
        self.operation = operation
        self.event_type = event_type
        self.original_error = original_error
        message = (
            f"Event bus error during {operation} "
            f"for event '{event_type}': {str(original_error)}"
        )
        super().__init__(
            message,
            details={
                "operation": operation,
                "event_type": event_type,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="EVENT_BUS_ERROR",
            is_retryable=True,
        )


class RuleEvaluationError(ServerInfrastructureException):
    """
    Raised when a logic rule cannot be evaluated (unknown operator, bad arity).

    Args:
        operator: The operator being evaluated
        message: Description of the problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, operator: str, message: str) -> None:
        self.operator = operator
        super().__init__(
            f"Cannot evaluate '{operator}': {message}",
            details={"operator": operator, "message": message},
            error_code="RULE_EVALUATION_ERROR",
        )


class MetricValueError(ServerInfrastructureException):
    """
    Raised when a metric value does not match its declared value type.

    Args:
        metric_key: The metric key being constructed
        value_type: Declared value type name
        value: The offending raw value
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, metric_key: str, value_type: str, value: Any) -> None:
        self.metric_key = metric_key
        self.value_type = value_type
        super().__init__(
            f"Metric '{metric_key}' value {value!r} is not a valid {value_type}",
            details={
                "metric_key": metric_key,
                "value_type": value_type,
                "python_type": type(value).__name__,
            },
            error_code="METRIC_VALUE_ERROR",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, ServerInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """
    Get the severity level of an exception for logging.

    Args:
        exc: Exception to check

    Returns:
        ErrorSeverity level.
    """
    if isinstance(exc, ServerInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """
    Determine if an exception should trigger alerting.

    Args:
        exc: Exception to check

    Returns:
        True if severity is ERROR or CRITICAL, False otherwise.
    """
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
