"""Logging filters for context injection.

Context variables are copied onto every log record passing through a
handler with :class:`ContextFilter`, so lines emitted by the pool while a
facade call is running carry the call's operation and table.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

from sqlbridge.__version__ import __version__

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
db_operation_var: ContextVar[Optional[str]] = ContextVar("db_operation", default=None)
db_table_var: ContextVar[Optional[str]] = ContextVar("db_table", default=None)

# Process-wide tags, set once at startup
_static_context: Dict[str, Any] = {}


class ContextFilter(logging.Filter):
    """Attach request, operation and process tags to each record. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.user_id = user_id_var.get()
        record.sdk_name = "sqlbridge"
        record.sdk_version = __version__

        operation = db_operation_var.get()
        if operation is not None:
            record.db_operation = operation
            record.db_table = db_table_var.get()

        for key, value in _static_context.items():
            setattr(record, key, value)

        return True


def set_logging_context(
    environment: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Replace the static tags attached to every record."""
    _static_context.clear()
    if environment is not None:
        _static_context["environment"] = environment
    if extra:
        _static_context.update(extra)


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    if request_id is not None:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)


def clear_request_context() -> None:
    request_id_var.set(None)
    user_id_var.set(None)


@contextmanager
def operation_context(operation: str, table: Optional[str] = None) -> Iterator[None]:
    """Tag records logged inside the block with ``db_operation``/``db_table``."""
    operation_token = db_operation_var.set(operation)
    table_token = db_table_var.set(table)
    try:
        yield
    finally:
        db_table_var.reset(table_token)
        db_operation_var.reset(operation_token)
