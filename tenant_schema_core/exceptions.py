"""
Exception hierarchy with error codes, context, and correlation support.

Every error that crosses the boundary of this package is a BaseError subclass,
so callers never have to interpret raw driver or SQLAlchemy exceptions. Errors
log themselves on construction.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .utils.logger import get_logger

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONNECTION_ERROR = "1002"
    CONFIGURATION_ERROR = "1003"
    TIMEOUT_ERROR = "1004"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    DUPLICATE = "3001"
    CONFLICT = "3002"

    # Business logic errors (4xxx)
    INVALID_STATE_TRANSITION = "4001"
    PRECONDITION_FAILED = "4004"


class BaseError(Exception):
    """
    Root of the package's error hierarchy.

    Carries an ``ErrorCode``, an HTTP-style ``status_code`` for whichever outer
    layer ends up reporting it, free-form ``context`` and the wrapped ``cause``.
    The active correlation id and a fresh ``error_id`` are stamped into the
    context, and the error is logged as soon as it is built.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.error_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc).isoformat()

        self.context: Dict[str, Any] = dict(context, error_id=self.error_id)
        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id
        if cause is not None:
            self.context["cause"] = _describe_cause(cause)

        self._log_error()

    def _log_error(self) -> None:
        extra = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "timestamp": self.timestamp,
            "context": _public_context(self.context, drop=("cause",)),
        }
        if "correlation_id" in self.context:
            extra["correlation_id"] = self.context["correlation_id"]

        logger = get_logger()
        summary = f"{self.error_code.name} ({self.error_code.value}): {self.message}"
        if self.status_code >= 500:
            logger.error(summary, extra=extra, exc_info=self.cause)
        elif self.status_code >= 400:
            logger.warning(summary, extra=extra)
        else:
            logger.info(summary, extra=extra)

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Serializable ``{"error": {...}}`` body.

        The cause is left out unless asked for, and its traceback only when
        ``include_traceback`` is also set.
        """
        body: Dict[str, Any] = {
            "id": self.error_id,
            "code": self.error_code.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": _public_context(
                self.context, drop=("cause", "error_id", "correlation_id")
            ),
        }
        if "correlation_id" in self.context:
            body["correlation_id"] = self.context["correlation_id"]

        cause = self.context.get("cause")
        if include_cause and cause:
            body["cause"] = {"type": cause["type"], "message": cause["message"]}
            if include_traceback:
                body["cause"]["traceback"] = cause["traceback"]

        return {"error": body}

    def add_context(self, **kwargs: Any) -> "BaseError":
        """Merge ``kwargs`` into the context and return self."""
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """This error followed by each wrapped ``cause`` in turn."""
        chain: List[Exception] = []
        current: Optional[Exception] = self
        while current is not None:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


def _describe_cause(cause: Exception) -> Dict[str, Any]:
    return {
        "type": type(cause).__name__,
        "message": str(cause),
        "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
    }


def _public_context(context: Dict[str, Any], drop: Tuple[str, ...]) -> Dict[str, Any]:
    return {key: value for key, value in context.items() if key not in drop}


# ==================== LAYER ERRORS ====================


class RepositoryError(BaseError):
    """Errors raised while reading or writing the tenant registry."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context,
    ):
        super().__init__(message, error_code, status_code, cause, **context)


class ServiceError(BaseError):
    """A provisioning, routing or lifecycle operation could not complete."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ValidationError(BaseError):
    """Rejected input; nothing was executed."""

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


# ==================== SCHEMA NAMING ====================


class InvalidSchemaNameError(ValidationError):
    """Raised when a schema or role identifier fails the identifier grammar."""

    def __init__(
        self,
        value: Any,
        reason: str,
        field: str = "schema_name",
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            f"Invalid {field}: {reason}",
            field=field,
            error_code=ErrorCode.INVALID_FORMAT,
            cause=cause,
            value=str(value),
            reason=reason,
        )


# ==================== PROVISIONING ====================


class ProvisioningError(ServiceError):
    """Base class for failures during a provisioning attempt."""

    def __init__(
        self,
        message: str,
        schema_name: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = "provision",
        cause: Optional[Exception] = None,
        **context,
    ):
        if schema_name:
            context["schema_name"] = schema_name
        super().__init__(message, error_code, operation, cause, **context)
        self.schema_name = schema_name


class SchemaCreationError(ProvisioningError):
    """CREATE SCHEMA failed or the schema was not visible right after commit."""

    def __init__(self, message: str, schema_name: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.DATABASE_ERROR)
        kwargs.setdefault("operation", "create_schema")
        super().__init__(message, schema_name, **kwargs)


class InitializationError(ProvisioningError):
    """A statement in the table, index or seed data unit failed; the unit was rolled back."""

    def __init__(self, message: str, schema_name: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.DATABASE_ERROR)
        kwargs.setdefault("operation", "initialize_schema_with_data")
        super().__init__(message, schema_name, **kwargs)


class VerificationTimeoutError(ProvisioningError):
    """Schema metadata did not show a complete table set within the retry budget."""

    def __init__(
        self,
        schema_name: str,
        attempts: int,
        message: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", ErrorCode.TIMEOUT_ERROR)
        kwargs.setdefault("operation", "verify_with_retry")
        super().__init__(
            message or f"Schema verification failed for {schema_name} after {attempts} attempts",
            schema_name,
            attempts=attempts,
            **kwargs,
        )
        self.attempts = attempts


# ==================== ROUTING ====================


class TenantContextError(BaseError):
    """Raised when a unit of work needs a tenant scope and none is established."""

    def __init__(self, message: str = "No tenant context established", **context):
        super().__init__(
            message, error_code=ErrorCode.PRECONDITION_FAILED, status_code=412, **context
        )


# Factory functions for common error patterns
def not_found(
    resource_type: str, cause: Optional[Exception] = None, **identifiers
) -> RepositoryError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'Tenant')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., tenant_id='123')

    Returns:
        Configured RepositoryError instance with 404 status
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return RepositoryError(
        message,
        error_code=ErrorCode.NOT_FOUND,
        status_code=404,
        cause=cause,
        resource_type=resource_type,
        **identifiers,
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
