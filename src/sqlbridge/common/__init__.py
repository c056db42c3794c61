"""Common exceptions for sqlbridge.

The exception system uses error codes for categorization rather than
numerous specific exception classes. All exceptions inherit from
SQLBridgeError and expose a stable ``code``.
"""

from sqlbridge.common.exceptions import (
    PRECONDITION_CODES,
    ErrorCode,
    QueryBuilderValidationError,
    SQLBridgeError,
    configuration_error,
    connection_error,
    empty_fields_error,
    invalid_data_error,
    invalid_model_error,
    operation_error,
    pool_ended_error,
    query_execution_error,
    query_validation_error,
    too_many_connections_error,
)

__all__ = [
    "PRECONDITION_CODES",
    "ErrorCode",
    "QueryBuilderValidationError",
    "SQLBridgeError",
    "configuration_error",
    "connection_error",
    "empty_fields_error",
    "invalid_data_error",
    "invalid_model_error",
    "operation_error",
    "pool_ended_error",
    "query_execution_error",
    "query_validation_error",
    "too_many_connections_error",
]
