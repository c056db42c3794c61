"""Logging infrastructure for sqlbridge.

This module provides structured logging with JSON output and request
context tracking.
"""

from sqlbridge.logging.filters import (
    ContextFilter,
    clear_request_context,
    operation_context,
    set_logging_context,
    set_request_context,
)
from sqlbridge.logging.logger import CustomJsonFormatter, get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "CustomJsonFormatter",
    "ContextFilter",
    "set_logging_context",
    "set_request_context",
    "clear_request_context",
    "operation_context",
]
