from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Standard error codes for sqlbridge operations.

    Each category has its own prefix so callers can branch on the stable
    ``code`` string without importing a class per failure kind.

    Attributes:
        CONFIG_*: Configuration errors
        VALIDATION_*: Caller input and query descriptor errors
        CONNECTION_*: Pool and connectivity errors
        EXECUTION_*: Statement execution errors
        OPERATION_*: Data access operation scoped errors
    """
    # Configuration errors
    INVALID_CONFIG = "CONFIG_001"
    INVALID_SETTING = "CONFIG_002"

    # Validation errors
    INVALID_MODEL = "VALIDATION_001"
    EMPTY_FIELDS = "VALIDATION_002"
    INVALID_DATA = "VALIDATION_003"
    INVALID_QUERY = "VALIDATION_004"
    INVALID_STATEMENT = "VALIDATION_005"

    # Connection errors
    CONNECTION_ERROR = "CONNECTION_001"
    TOO_MANY_CONNECTIONS = "CONNECTION_002"
    POOL_ENDED = "CONNECTION_003"

    # Execution errors
    QUERY_EXECUTION_ERROR = "EXECUTION_001"

    # Operation errors
    INVALID_INSERT = "OPERATION_001"
    INVALID_SAVE = "OPERATION_002"
    INVALID_UPDATE = "OPERATION_003"
    INVALID_GET = "OPERATION_004"
    INVALID_MULTI_INSERT = "OPERATION_005"
    INVALID_REMOVE = "OPERATION_006"
    INVALID_MULTI_REMOVE = "OPERATION_007"


# Errors raised before any statement is issued keep their own code when a
# data access operation re-wraps failures.
PRECONDITION_CODES = frozenset({
    ErrorCode.INVALID_MODEL,
    ErrorCode.EMPTY_FIELDS,
    ErrorCode.INVALID_DATA,
})

_MAX_STATEMENT_LENGTH = 500


def _truncate(statement: str) -> str:
    if len(statement) > _MAX_STATEMENT_LENGTH:
        return statement[:_MAX_STATEMENT_LENGTH] + "..."
    return statement


class SQLBridgeError(Exception):
    """Base exception for all sqlbridge errors.

    The error kind is carried by ``error_code`` instead of a deep class
    hierarchy. ``code`` exposes the stable string value.

    Attributes:
        message: Error message
        error_code: Error code from ErrorCode enum
        details: Additional error details
        cause: Optional underlying exception
        is_retryable: Whether the error is transient and can be retried
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.QUERY_EXECUTION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        is_retryable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.is_retryable = is_retryable

        # Lazy import, the logging package imports the version module only
        from sqlbridge.logging import get_logger
        logger = get_logger(__name__)
        logger.error(
            message,
            extra={
                "error_code": error_code.value,
                "details": self.details,
                "is_retryable": is_retryable,
            },
            exc_info=cause,
        )

    @property
    def code(self) -> str:
        return self.error_code.value

    def __str__(self) -> str:
        msg = f"[{self.error_code.value}] {self.message}"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {self.cause})"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
            "is_retryable": self.is_retryable,
        }

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        message: str,
        **kwargs
    ) -> "SQLBridgeError":
        """Create exception from error code.

        Pool exhaustion is marked retryable unless the caller says otherwise.
        """
        if error_code is ErrorCode.TOO_MANY_CONNECTIONS:
            kwargs.setdefault("is_retryable", True)

        return cls(message=message, error_code=error_code, **kwargs)


class QueryBuilderValidationError(SQLBridgeError):
    """Raised when a query descriptor cannot be compiled."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_QUERY,
            details=details,
            cause=cause,
        )


# Helper functions for common error scenarios
def configuration_error(
    message: str,
    setting: Optional[str] = None,
    **kwargs
) -> SQLBridgeError:
    """Create a configuration error.

    Args:
        message: Error message
        setting: Setting name that failed validation. When present the
            error carries ``INVALID_SETTING`` instead of ``INVALID_CONFIG``.
        **kwargs: Additional error details

    Returns:
        SQLBridgeError with a CONFIG_* code
    """
    details = kwargs.pop("details", {})
    error_code = ErrorCode.INVALID_CONFIG
    if setting:
        details["setting"] = setting
        error_code = ErrorCode.INVALID_SETTING

    return SQLBridgeError(message=message, error_code=error_code, details=details, **kwargs)


def invalid_model_error(operation: Optional[str] = None) -> SQLBridgeError:
    details = {"operation": operation} if operation else {}
    return SQLBridgeError(
        message="Model with table is required",
        error_code=ErrorCode.INVALID_MODEL,
        details=details,
    )


def empty_fields_error(
    message: str = "No fields to insert or update",
    table: Optional[str] = None,
) -> SQLBridgeError:
    details = {"table": table} if table else {}
    return SQLBridgeError(message=message, error_code=ErrorCode.EMPTY_FIELDS, details=details)


def invalid_data_error(
    message: str = "Filters must be a non-empty mapping",
    value: Any = None,
) -> SQLBridgeError:
    details = {"value": repr(value)} if value is not None else {}
    return SQLBridgeError(message=message, error_code=ErrorCode.INVALID_DATA, details=details)


def query_validation_error(
    message: str,
    clause: Optional[str] = None,
    value: Any = None,
) -> QueryBuilderValidationError:
    """Create a query builder validation error.

    Args:
        message: Error message
        clause: Descriptor key that failed validation (fields, joins, ...)
        value: Offending value

    Returns:
        QueryBuilderValidationError with INVALID_QUERY code
    """
    details: Dict[str, Any] = {}
    if clause:
        details["clause"] = clause
    if value is not None:
        details["value"] = repr(value)
    return QueryBuilderValidationError(message=message, details=details)


def connection_error(
    message: str,
    host: Optional[str] = None,
    **kwargs
) -> SQLBridgeError:
    """Create a connection error.

    Args:
        message: Error message
        host: Host that failed
        **kwargs: Additional error details

    Returns:
        SQLBridgeError with CONNECTION_ERROR code
    """
    details = kwargs.pop("details", {})
    if host:
        details["host"] = host

    return SQLBridgeError(
        message=message,
        error_code=ErrorCode.CONNECTION_ERROR,
        details=details,
        **kwargs
    )


def too_many_connections_error(
    host: Optional[str] = None,
    cause: Optional[Exception] = None,
) -> SQLBridgeError:
    details = {"host": host} if host else {}
    return SQLBridgeError.from_error_code(
        ErrorCode.TOO_MANY_CONNECTIONS,
        "Too many connections",
        details=details,
        cause=cause,
    )


def pool_ended_error() -> SQLBridgeError:
    return SQLBridgeError(
        message="Connection pool has been closed",
        error_code=ErrorCode.POOL_ENDED,
    )


def query_execution_error(
    query: str,
    original_error: Exception,
    **kwargs
) -> SQLBridgeError:
    """Create a query execution error.

    Args:
        query: SQL statement that failed
        original_error: The underlying exception
        **kwargs: Additional error details

    Returns:
        SQLBridgeError with QUERY_EXECUTION_ERROR code
    """
    details = kwargs.pop("details", {})
    details["query"] = _truncate(query)

    return SQLBridgeError(
        message=f"Query execution failed: {original_error}",
        error_code=ErrorCode.QUERY_EXECUTION_ERROR,
        details=details,
        cause=original_error,
        **kwargs
    )


def operation_error(
    error_code: ErrorCode,
    original_error: Exception,
    table: Optional[str] = None,
) -> SQLBridgeError:
    """Wrap a failure into a data access operation scoped error.

    The original message is preserved so the root cause stays readable.
    """
    message = getattr(original_error, "message", None) or str(original_error)
    details: Dict[str, Any] = {"cause_type": type(original_error).__name__}
    if isinstance(original_error, SQLBridgeError):
        details["cause_code"] = original_error.code
    if table:
        details["table"] = table

    return SQLBridgeError(
        message=message,
        error_code=error_code,
        details=details,
        cause=original_error,
    )
