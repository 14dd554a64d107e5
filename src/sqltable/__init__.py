from sqltable.__version__ import __version__

from sqltable.api import TableManager, UpsertResult
from sqltable.mapping import (
    sql_table,
    sql_column,
    MetadataRegistry,
    get_registry,
)
from sqltable.protocols import SupportsCascade, CascadeMixin
from sqltable.settings import ConnectionSettings
from sqltable.logging import setup_logging

from sqltable.common.exceptions import (
    SQLTableError,
    ConfigurationError,
    MissingKeyError,
    ConstructionError,
    EngineError,
    ErrorCode,
)


__all__ = [
    "__version__",

    "TableManager",
    "UpsertResult",

    # Metadata declaration
    "sql_table",
    "sql_column",
    "MetadataRegistry",
    "get_registry",

    # Cascade contract
    "SupportsCascade",
    "CascadeMixin",

    "ConnectionSettings",
    "setup_logging",

    # Exceptions (public API)
    "SQLTableError",
    "ConfigurationError",
    "MissingKeyError",
    "ConstructionError",
    "EngineError",
    "ErrorCode",
]
