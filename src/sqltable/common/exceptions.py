from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Standard error codes for sqltable operations.

    Each category has its own prefix so an error can be identified without
    inspecting its class.

    Attributes:
        CONFIG_*: Type metadata and settings errors
        VALIDATION_*: Input validation errors
        CONNECTION_*: Connection errors
        EXECUTION_*: Runtime execution errors
    """
    # Configuration errors
    CONFIG_ERROR = "CONFIG_001"
    CONFIG_MISSING_TABLE = "CONFIG_002"
    CONFIG_MISSING_KEY = "CONFIG_003"
    CONFIG_INVALID = "CONFIG_004"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_001"
    MISSING_KEY_VALUE = "VALIDATION_002"

    # Connection errors
    CONNECTION_ERROR = "CONNECTION_001"

    # Execution errors
    EXECUTION_ERROR = "EXECUTION_001"
    QUERY_EXECUTION_ERROR = "EXECUTION_002"
    CONSTRUCTION_ERROR = "EXECUTION_003"
    STAGING_ERROR = "EXECUTION_004"


class SQLTableError(Exception):
    """Base exception for all sqltable errors.

    Attributes:
        message: Error message
        error_code: Error code from ErrorCode enum
        details: Additional error details
        cause: Optional underlying exception
    """

    default_code: ErrorCode = ErrorCode.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        msg = f"[{self.error_code.value}] {self.message}"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {str(self.cause)})"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
        }


class ConfigurationError(SQLTableError):
    """A type lacks table metadata or a primary key column."""

    default_code = ErrorCode.CONFIG_ERROR


class MissingKeyError(SQLTableError):
    """A primary key value is absent on an entity."""

    default_code = ErrorCode.MISSING_KEY_VALUE


class ConstructionError(SQLTableError):
    """An entity type could not be default-constructed during hydration."""

    default_code = ErrorCode.CONSTRUCTION_ERROR


class EngineError(SQLTableError):
    """Any failure surfaced by the relational engine or its driver."""

    default_code = ErrorCode.QUERY_EXECUTION_ERROR


def _truncate(query: str) -> str:
    return query[:500] + "..." if len(query) > 500 else query


# Helper functions for common error scenarios
def configuration_error(
    message: str,
    entity_type: Optional[type] = None,
    error_code: ErrorCode = ErrorCode.CONFIG_ERROR,
    **kwargs
) -> ConfigurationError:
    """Create a configuration error.

    Args:
        message: Error message
        entity_type: Entity class whose metadata is invalid
        error_code: Specific CONFIG_* code
        **kwargs: Additional error details

    Returns:
        ConfigurationError
    """
    details = kwargs.get('details', {})
    if entity_type is not None:
        details["entity_type"] = entity_type.__qualname__

    return ConfigurationError(
        message=message,
        error_code=error_code,
        details=details,
        **{k: v for k, v in kwargs.items() if k != 'details'}
    )


def missing_key_error(
    entity: Any,
    column_name: str,
    **kwargs
) -> MissingKeyError:
    """Create a missing key value error.

    Args:
        entity: Entity whose key is absent
        column_name: Primary key column with no value

    Returns:
        MissingKeyError
    """
    details = kwargs.get('details', {})
    details["entity_type"] = type(entity).__qualname__
    details["column"] = column_name

    return MissingKeyError(
        message=f"Primary key column '{column_name}' has no value on {type(entity).__qualname__}",
        details=details,
        **{k: v for k, v in kwargs.items() if k != 'details'}
    )


def construction_error(
    entity_type: type,
    original_error: Exception,
    **kwargs
) -> ConstructionError:
    """Create a construction error for an entity type without a usable default constructor."""
    details = kwargs.get('details', {})
    details["entity_type"] = entity_type.__qualname__

    return ConstructionError(
        message=f"No usable default constructor found for {entity_type.__qualname__}",
        details=details,
        cause=original_error,
        **{k: v for k, v in kwargs.items() if k not in ['details', 'cause']}
    )


def connection_error(
    message: str,
    server: Optional[str] = None,
    database: Optional[str] = None,
    **kwargs
) -> EngineError:
    """Create a connection error.

    Args:
        message: Error message
        server: Server that failed to connect
        database: Database that was requested
        **kwargs: Additional error details

    Returns:
        EngineError with CONNECTION_ERROR code
    """
    details = kwargs.get('details', {})
    if server:
        details["server"] = server
    if database:
        details["database"] = database

    return EngineError(
        message=message,
        error_code=ErrorCode.CONNECTION_ERROR,
        details=details,
        **{k: v for k, v in kwargs.items() if k != 'details'}
    )


def query_execution_error(
    query: str,
    original_error: Exception,
    **kwargs
) -> EngineError:
    """Create a query execution error.

    Args:
        query: SQL statement that failed
        original_error: The underlying exception

    Returns:
        EngineError with QUERY_EXECUTION_ERROR code
    """
    details = kwargs.get('details', {})
    details["query"] = _truncate(query)

    return EngineError(
        message=f"Query execution failed: {str(original_error)}",
        error_code=ErrorCode.QUERY_EXECUTION_ERROR,
        details=details,
        cause=original_error,
        **{k: v for k, v in kwargs.items() if k not in ['details', 'cause']}
    )


def staging_error(
    staging_name: str,
    original_error: Exception,
    **kwargs
) -> EngineError:
    """Create an error for a failed bulk transfer into a staging table."""
    details = kwargs.get('details', {})
    details["staging_table"] = staging_name

    return EngineError(
        message=f"Bulk transfer into {staging_name} failed: {str(original_error)}",
        error_code=ErrorCode.STAGING_ERROR,
        details=details,
        cause=original_error,
        **{k: v for k, v in kwargs.items() if k not in ['details', 'cause']}
    )
