"""
Error taxonomy and logging utilities for the CETTPRO integration.
"""

import logging
import traceback
from datetime import datetime
from typing import Dict, Any, Optional, Union


# Integration-wide logger shared by the client and the sync engine
partner_logger = logging.getLogger('cettpro_integration')


class ErrorSeverity:
    """Error severity levels for partner operations."""
    LOW = "low"           # Transient, the next attempt is expected to succeed
    MEDIUM = "medium"     # One call or one record failed
    HIGH = "high"         # Stage cannot make progress until fixed upstream
    CRITICAL = "critical"


class ErrorCategory:
    """Error categories for better classification."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITING = "rate_limiting"
    UPSTREAM = "upstream"
    NETWORK = "network"
    DECODE = "decode"
    DATA_VALIDATION = "data_validation"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


class PartnerError(Exception):
    """Base exception for partner integration errors with metadata."""

    def __init__(
        self,
        message: str,
        category: str = ErrorCategory.UNKNOWN,
        severity: str = ErrorSeverity.MEDIUM,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.endpoint = endpoint
        self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            'message': self.message,
            'category': self.category,
            'severity': self.severity,
            'endpoint': self.endpoint,
            'status_code': self.status_code,
            'details': self.details,
            'retryable': self.retryable,
            'timestamp': self.timestamp.isoformat(),
            'error_type': type(self).__name__,
        }


class AuthenticationError(PartnerError):
    """Credentials rejected or token expired (401)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.HIGH,
            retryable=True,
            **kwargs
        )


class AccessDeniedError(PartnerError):
    """Authenticated but not allowed (403)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.AUTHORIZATION,
            severity=ErrorSeverity.HIGH,
            retryable=False,
            **kwargs
        )


class NotFoundError(PartnerError):
    """Single resource not found (404)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            **kwargs
        )


class InvalidRequestError(PartnerError):
    """Malformed outbound request (400). Carries the partner's response body."""

    def __init__(self, message: str, response_body: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        details['response_body'] = response_body
        super().__init__(
            message,
            category=ErrorCategory.INVALID_REQUEST,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            details=details,
            **kwargs
        )
        self.response_body = response_body


class RateLimitError(PartnerError):
    """Rate limiting errors (429)."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        details['retry_after'] = retry_after
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMITING,
            severity=ErrorSeverity.LOW,
            retryable=True,
            details=details,
            **kwargs
        )
        self.retry_after = retry_after


class UpstreamServerError(PartnerError):
    """Partner-side failure (5xx)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.UPSTREAM,
            severity=ErrorSeverity.MEDIUM,
            retryable=True,
            **kwargs
        )


class PartnerApiError(PartnerError):
    """Any other unexpected status from the partner."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            **kwargs
        )


class DecodeError(PartnerError):
    """Response body does not match the expected shape."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DECODE,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            **kwargs
        )


class PartnerTransportError(PartnerError):
    """Connection failure or request timeout."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            retryable=True,
            **kwargs
        )


class MissingReferenceError(PartnerError):
    """A record points at a related entity that is not synced locally."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DATA_VALIDATION,
            severity=ErrorSeverity.MEDIUM,
            retryable=False,
            **kwargs
        )


class PersistenceError(PartnerError):
    """Local store write failure."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DATABASE_ERROR,
            severity=ErrorSeverity.HIGH,
            retryable=False,
            **kwargs
        )


def log_error(
    error: Union[PartnerError, Exception],
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an error with full context.

    Args:
        error: The error to log
        context: Additional context information (entity type, record id...)
    """
    if isinstance(error, PartnerError):
        error_dict = error.to_dict()
    else:
        error_dict = {
            'message': str(error),
            'category': ErrorCategory.UNKNOWN,
            'severity': ErrorSeverity.MEDIUM,
            'timestamp': datetime.utcnow().isoformat(),
            'error_type': type(error).__name__,
            'traceback': traceback.format_exc(),
        }

    if context:
        error_dict.update(context)

    # Log to appropriate level based on severity
    severity = error_dict.get('severity', ErrorSeverity.MEDIUM)
    log_message = f"CETTPRO Error [{severity.upper()}]: {error_dict['message']}"
    # 'message' is reserved on LogRecord
    extra = {f"partner_{k}": v for k, v in error_dict.items()}

    if severity == ErrorSeverity.CRITICAL:
        partner_logger.critical(log_message, extra=extra)
    elif severity == ErrorSeverity.HIGH:
        partner_logger.error(log_message, extra=extra)
    elif severity == ErrorSeverity.MEDIUM:
        partner_logger.warning(log_message, extra=extra)
    else:
        partner_logger.info(log_message, extra=extra)
