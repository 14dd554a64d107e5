"""Common exceptions for sqltable.

The exception system uses error codes for categorization. Every exception
inherits from SQLTableError and carries structured error information; the
four subclasses map to the failure categories callers are expected to catch.
"""

from sqltable.common.exceptions import (
    SQLTableError,
    ConfigurationError,
    MissingKeyError,
    ConstructionError,
    EngineError,
    ErrorCode,
    # Helper functions
    configuration_error,
    missing_key_error,
    construction_error,
    connection_error,
    query_execution_error,
    staging_error,
)

__all__ = [
    # Base Exception and Error Codes
    "SQLTableError",
    "ErrorCode",
    # Exception classes
    "ConfigurationError",
    "MissingKeyError",
    "ConstructionError",
    "EngineError",
    # Helper functions
    "configuration_error",
    "missing_key_error",
    "construction_error",
    "connection_error",
    "query_execution_error",
    "staging_error",
]
