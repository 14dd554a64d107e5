"""Logging infrastructure for sqltable.

This module provides structured logging with JSON output, context tracking,
and OpenTelemetry trace correlation.
"""

from sqltable.logging.filters import ContextFilter
from sqltable.logging.logger import JsonFormatter, get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "JsonFormatter",
    "ContextFilter",
]
