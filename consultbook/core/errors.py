"""
Domain error kinds and the error logging helper.

NotFoundError and BusinessRuleViolation are always surfaced to the caller.
ConfigurationError is a server-side failure. Notification failures never
become exceptions for the caller; they go through ``log_error``.
"""
from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels used when logging."""
    LOW = "low"           # not-found, validation, expected failures
    MEDIUM = "medium"     # best-effort side effects that failed
    HIGH = "high"         # configuration problems, data integrity
    CRITICAL = "critical"


class BookingError(Exception):
    """Base class for every error the booking core raises."""

    status_code = 500
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookingError):
    """Referenced appointment, blocked period or time slot does not exist."""

    status_code = 404
    severity = ErrorSeverity.LOW


class BusinessRuleViolation(BookingError):
    """The request conflicts with a booking rule; retrying unchanged won't help."""

    status_code = 409
    severity = ErrorSeverity.LOW


class InvalidRequestError(BusinessRuleViolation):
    """Malformed scheduling input: bad ordering, timezone, duration or range."""

    status_code = 400


class ConfigurationError(BookingError):
    """Deployment configuration is missing something the core needs."""

    status_code = 500
    severity = ErrorSeverity.HIGH


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None,
              severity: Optional[ErrorSeverity] = None) -> None:
    """Log an error with its context; never raises."""
    context = context or {}
    if severity is None:
        severity = getattr(error, "severity", ErrorSeverity.MEDIUM)

    log = logger.warning if severity in (ErrorSeverity.LOW, ErrorSeverity.MEDIUM) else logger.error
    log(
        "error_logged",
        error_type=type(error).__name__,
        error=str(error)[:200],
        severity=severity.value,
        **context,
    )
