"""SQL and query-related constants.

This module contains the statement type enumeration and the naming
constants shared by the query builder, the staging loader and the
manager. It has no dependencies on other sqltable modules.
"""

from enum import Enum


class QueryType(str, Enum):
    """SQL statement type enumeration.

    Categories:
    - Query: SELECT, EXISTS, CLASSIFY
    - Set-based DML: INSERT, UPDATE, DELETE
    - Staging: CREATE_STAGING, LOAD_STAGING, DROP_STAGING
    """

    # Data Query
    SELECT = "SELECT"
    EXISTS = "EXISTS"
    CLASSIFY = "CLASSIFY"

    # Data Manipulation (DML)
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    # Staging
    CREATE_STAGING = "CREATE_STAGING"
    LOAD_STAGING = "LOAD_STAGING"
    DROP_STAGING = "DROP_STAGING"


class CascadeAction(str, Enum):
    """Cascade hook invoked after an operation."""

    LOAD = "load"
    SAVE = "save"
    DELETE = "delete"


DEFAULT_SCHEMA = "dbo"

# Local temp tables are scoped to the session that created them.
STAGING_PREFIX = "#"

DESTINATION_ALIAS = "t1"
STAGING_ALIAS = "t2"

KEY_PARAM_PREFIX = "pk_"

MAX_IDENTIFIER_LENGTH = 128

# SQL Server reserves the remaining characters of a temp table name for a
# session suffix.
MAX_TEMP_TABLE_NAME_LENGTH = 116
