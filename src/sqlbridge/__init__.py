from sqlbridge.__version__ import __version__

from sqlbridge.api import MySQL
from sqlbridge.models import Model
from sqlbridge.query_builder import CompiledQuery, ModelSchema, QueryBuilder
from sqlbridge.pool import ConnectionPool
from sqlbridge.settings import DatabaseSettings, get_settings

from sqlbridge.common.exceptions import (
    ErrorCode,
    QueryBuilderValidationError,
    SQLBridgeError,
)
from sqlbridge.constants.sql import NOW, FilterType, JoinMethod, SortDirection
from sqlbridge.logging import setup_logging
from sqlbridge.types import ExecutionResult, Totals


__all__ = [
    "__version__",

    "MySQL",
    "Model",
    "QueryBuilder",
    "CompiledQuery",
    "ModelSchema",
    "ConnectionPool",

    # Configuration
    "DatabaseSettings",
    "get_settings",

    # Exceptions (public API)
    "ErrorCode",
    "SQLBridgeError",
    "QueryBuilderValidationError",

    "NOW",
    "FilterType",
    "JoinMethod",
    "SortDirection",
    "ExecutionResult",
    "Totals",
    "setup_logging",
]
