"""Constants module for sqltable.

This module contains all constant values and enumerations used throughout
the package. It has no dependencies on other sqltable modules.
"""

# SQL/Query constants
from sqltable.constants.sql import (
    QueryType,
    CascadeAction,
    DEFAULT_SCHEMA,
    STAGING_PREFIX,
    DESTINATION_ALIAS,
    STAGING_ALIAS,
    KEY_PARAM_PREFIX,
    MAX_IDENTIFIER_LENGTH,
    MAX_TEMP_TABLE_NAME_LENGTH,
)

__all__ = [
    "QueryType",
    "CascadeAction",
    "DEFAULT_SCHEMA",
    "STAGING_PREFIX",
    "DESTINATION_ALIAS",
    "STAGING_ALIAS",
    "KEY_PARAM_PREFIX",
    "MAX_IDENTIFIER_LENGTH",
    "MAX_TEMP_TABLE_NAME_LENGTH",
]
