"""
Infrastructure exceptions for the economy engine.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
database lifecycle failures, configuration errors, and other engineering-level
issues that require technical attention rather than a player-facing message.

Compliance
----------
- Infrastructure exceptions only (no economy rules)
- Clear base class (`EconomyInfrastructureException`) with structured metadata
- Severity levels for logging and alerting decisions
- Retry hints and error codes for programmatic handling

Design Notes
------------
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`.
- `ErrorSeverity` is shared with the domain hierarchy in
  `src.modules.shared.exceptions`.
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns for both hierarchies.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., rule rejections)
    WARNING = "warning"  # Concerning but handled
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # Integrity failures requiring immediate action


class EconomyInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise EconomyInfrastructureException(
        ...     "Database connection failed",
        ...     {"host": "localhost", "port": 5432}
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


class ConfigurationError(EconomyInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

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


class ConfigInitializationError(EconomyInfrastructureException):
    """Raised when ConfigManager cannot load its database overrides."""

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="CONFIG_INIT_FAILED")


class ConfigWriteError(EconomyInfrastructureException):
    """Raised when a configuration write fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="CONFIG_WRITE_FAILED")


class DatabaseInitializationError(EconomyInfrastructureException):
    """Raised when the async engine cannot be created or verified."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = True

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.original_error = original_error
        super().__init__(
            message,
            details={
                "error": str(original_error) if original_error else None,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="DATABASE_INIT_FAILED",
        )


class DatabaseNotInitializedError(EconomyInfrastructureException):
    """Raised when a session is requested before `DatabaseService.initialize()`."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self) -> None:
        super().__init__(
            "DatabaseService not initialized. Call initialize() first.",
            error_code="DATABASE_NOT_INITIALIZED",
        )


# Utility functions for exception handling patterns


def _structured(exc: Exception) -> bool:
    return hasattr(exc, "severity") and isinstance(
        getattr(exc, "severity"), ErrorSeverity
    )


def is_transient_error(exc: Exception) -> bool:
    """True if the exception carries a retry hint that allows retrying."""
    if _structured(exc):
        return bool(getattr(exc, "is_retryable", False))
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity for logging; unknown exceptions are treated as ERROR."""
    if _structured(exc):
        return exc.severity  # type: ignore[attr-defined]
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
