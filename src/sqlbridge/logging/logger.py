"""Logging setup for sqlbridge.

Records are rendered as one JSON object per line. Anything passed through
``extra=`` (table names, affected rows, the SQL text) becomes a top-level key,
so a query log line reads like::

    {"timestamp": "...", "level": "DEBUG", "logger": "sqlbridge.pool.manager",
     "message": "Query executed", "query": "SELECT ...", "row_count": 3}
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

MAX_LOGGED_QUERY_LENGTH = 2000

_STANDARD_ATTRIBUTES: FrozenSet[str] = frozenset(
    vars(logging.LogRecord("sqlbridge", logging.INFO, __file__, 0, "", (), None))
) | {"asctime", "message"}


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class CustomJsonFormatter(logging.Formatter):
    """Serialize a record and its ``extra`` fields as a single JSON object.

    SQL passed as ``query`` is cut at ``max_query_length`` characters so a
    large multi-row insert does not flood the log.
    """

    def __init__(self, max_query_length: int = MAX_LOGGED_QUERY_LENGTH, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.max_query_length = max_query_length

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRIBUTES
        )

        query = entry.get("query")
        if isinstance(query, str) and len(query) > self.max_query_length:
            entry["query"] = query[: self.max_query_length] + "..."

        # trace correlation set by the OpenTelemetry logging instrumentation
        for source, target in (("otelTraceID", "trace_id"), ("otelSpanID", "span_id")):
            if source in entry:
                entry[target] = entry.pop(source)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", query_level: Optional[str] = None) -> None:
    """Route sqlbridge logs to stdout as JSON.

    Args:
        level: Level for the ``sqlbridge`` logger tree.
        query_level: Separate level for ``sqlbridge.pool``, where every executed
            statement is logged at DEBUG. Defaults to ``level``.
    """
    level = level.upper()
    loggers: Dict[str, Any] = {
        "sqlbridge": {"level": level, "handlers": ["sqlbridge_console"], "propagate": False},
    }
    if query_level:
        loggers["sqlbridge.pool"] = {"level": query_level.upper()}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "sqlbridge_json": {"()": "sqlbridge.logging.logger.CustomJsonFormatter"},
            },
            "filters": {
                "sqlbridge_context": {"()": "sqlbridge.logging.filters.ContextFilter"},
            },
            "handlers": {
                "sqlbridge_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "sqlbridge_json",
                    "filters": ["sqlbridge_context"],
                    "stream": "ext://sys.stdout",
                }
            },
            "loggers": loggers,
        }
    )
