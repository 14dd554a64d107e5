"""Structured logging for sqltable.

Records are rendered as one JSON object per line: the fixed fields first,
then whatever the call site passed through ``extra=``, then the trace and
span ids of the active OpenTelemetry span. ``setup_logging`` installs the
handler on the package logger only, so applications keep control of the
root logger.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

from opentelemetry import trace

if TYPE_CHECKING:
    from sqltable.settings.connection import ConnectionSettings

PACKAGE_LOGGER = "sqltable"

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRIBUTES: FrozenSet[str] = frozenset(
    vars(logging.makeLogRecord({}))
) | {"message", "asctime", "taskName"}


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """Render a record, its ``extra`` payload and the active span as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES
        )

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            entry["trace_id"] = format(span_context.trace_id, "032x")
            entry["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info:
            entry["error.type"] = record.exc_info[0].__name__
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


def setup_logging(
    level: Optional[str] = None,
    settings: Optional[ConnectionSettings] = None,
    propagate: bool = False,
) -> None:
    """Send sqltable logs to stdout as JSON.

    Args:
        level: Log level name. Falls back to ``settings.log_level``, then INFO.
        settings: Connection settings supplying the configured log level
        propagate: Also pass records on to the root logger's handlers
    """
    if level is None:
        level = settings.log_level if settings is not None else "INFO"
    level = level.upper()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "sqltable_json": {"()": JsonFormatter},
        },
        "filters": {
            "sqltable_context": {"()": "sqltable.logging.filters.ContextFilter"},
        },
        "handlers": {
            "sqltable_console": {
                "class": "logging.StreamHandler",
                "formatter": "sqltable_json",
                "filters": ["sqltable_context"],
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            PACKAGE_LOGGER: {
                "level": level,
                "handlers": ["sqltable_console"],
                "propagate": propagate,
            }
        },
    })
