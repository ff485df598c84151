"""
Consolidated exception system with error codes, context, and correlation support.

This module provides a unified exception hierarchy for the exchange core,
with automatic logging and correlation ID tracking. Partner secrets must
never be passed as context: construction sites pass identifiers, URLs and
HTTP status codes only.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Logger is imported lazily in _log_error to avoid a circular import

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONNECTION_ERROR = "1002"
    CONFIGURATION_ERROR = "1003"
    TIMEOUT_ERROR = "1004"
    CANCELLED = "1005"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"
    TYPE_MISMATCH = "2003"
    CONSTRAINT_VIOLATION = "2004"
    INCONSISTENT_BREAKDOWN = "2005"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    DUPLICATE = "3001"
    CONFLICT = "3002"
    EXPIRED = "3004"

    # External service errors (5xxx)
    EXTERNAL_API_ERROR = "5002"
    AUTHENTICATION_FAILED = "5005"
    PROTOCOL_VIOLATION = "5006"
    ENDPOINT_NOT_CONFIGURED = "5007"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP-like status code used for severity
            cause: Original exception that caused this error
            **context: Additional context information
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()

        super().__init__(message)

    def _log_error(self) -> None:
        """Log error with appropriate level based on status code."""
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "context": {k: v for k, v in self.context.items() if k not in ["cause", "traceback"]},
        }

        if self.status_code >= 500:
            logger.error(f"Error {self.error_code.value}: {self.message}", extra=log_data)
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code.value}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code.value}: {self.message}", extra=log_data)

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """
        Convert to dict for API responses and sync reports.

        Args:
            include_cause: Include cause type and message (never the traceback)

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "type": type(self).__name__,
                "code": self.error_code.value,
                "message": self.message,
                "timestamp": self.timestamp,
                "context": {
                    k: v
                    for k, v in self.context.items()
                    if k not in ["cause", "error_id", "correlation_id"]
                },
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """Add additional context to the error (fluent interface)."""
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """Get the full chain of errors."""
        chain: List[Exception] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


class ValidationError(BaseError):
    """Bad identifier, malformed event or footprint, inconsistent breakdown."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[Exception] = None,
        **context,
    ):
        if field:
            context["field"] = field
        super().__init__(message, error_code, 400, cause, **context)


class NotFoundError(BaseError):
    """Local record missing on get, update or delete."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.NOT_FOUND,
        cause: Optional[Exception] = None,
        **context,
    ):
        super().__init__(message, error_code, 404, cause, **context)


class RepositoryError(BaseError):
    """Persistence layer failure."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        cause: Optional[Exception] = None,
        **context,
    ):
        status_code = 409 if error_code in (ErrorCode.DUPLICATE, ErrorCode.CONFLICT) else 500
        super().__init__(message, error_code, status_code, cause, **context)


class ExchangeError(BaseError):
    """Failure talking to a partner data source."""

    def __init__(
        self,
        message: str,
        data_source_id: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.EXTERNAL_API_ERROR,
        cause: Optional[Exception] = None,
        **context,
    ):
        self.data_source_id = data_source_id
        if data_source_id is not None:
            context["data_source_id"] = data_source_id
        super().__init__(message, error_code, 502, cause, **context)


class AuthError(ExchangeError):
    """Credentials rejected or the Authenticate endpoint unusable."""

    def __init__(self, message: str, data_source_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.AUTHENTICATION_FAILED)
        super().__init__(message, data_source_id, **kwargs)


class NetworkError(ExchangeError):
    """Timeout, connection failure or unexpected status on an action call."""

    def __init__(self, message: str, data_source_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.CONNECTION_ERROR)
        super().__init__(message, data_source_id, **kwargs)


class PartnerResponseError(ExchangeError):
    """A successful response whose body violates the action protocol."""

    def __init__(self, message: str, data_source_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.PROTOCOL_VIOLATION)
        super().__init__(message, data_source_id, **kwargs)


class EndpointNotConfiguredError(ExchangeError):
    """The data source has no endpoint registered for the required action."""

    def __init__(self, data_source_id: str, action: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.ENDPOINT_NOT_CONFIGURED)
        super().__init__(
            f"Action {action} is not registered for data source {data_source_id}",
            data_source_id,
            action=action,
            **kwargs,
        )


class SyncCancelledError(ExchangeError):
    """A data source synchronization was cancelled by the caller."""

    def __init__(self, data_source_id: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.CANCELLED)
        super().__init__(f"Synchronization cancelled for {data_source_id}", data_source_id, **kwargs)


# Factory functions for common error patterns
def not_found(resource_type: str, cause: Optional[Exception] = None, **identifiers) -> NotFoundError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'DataSource', 'Footprint')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., data_source_id='123')

    Returns:
        Configured NotFoundError instance
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return NotFoundError(message, cause=cause, resource_type=resource_type, **identifiers)


def duplicate(resource_type: str, cause: Optional[Exception] = None, **identifiers) -> RepositoryError:
    """
    Factory for duplicate resource errors.

    Args:
        resource_type: Type of resource (e.g., 'DataSource', 'Footprint')
        cause: Original exception if any
        **identifiers: Identifiers of the conflicting resource

    Returns:
        Configured RepositoryError instance
    """
    return RepositoryError(
        f"{resource_type} already exists",
        error_code=ErrorCode.DUPLICATE,
        cause=cause,
        resource_type=resource_type,
        **identifiers,
    )


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[Exception] = None
) -> ValidationError:
    """
    Factory for validation errors.

    Args:
        field: Field that failed validation
        value: The invalid value
        reason: Why validation failed
        cause: Original exception if any

    Returns:
        Configured ValidationError instance
    """
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        cause=cause,
        value=str(value),
        reason=reason,
    )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
