"""Settings module for sqltable.

Configuration is built on Pydantic Settings: values are read from
``SQLTABLE_``-prefixed environment variables or a ``.env`` file and
validated on construction.

Quick Start:
    >>> from sqltable.settings import get_settings
    >>> settings = get_settings()
    >>> settings.get_odbc_string()
"""

from .base import SQLTableBaseSettings
from .connection import ConnectionSettings, force_mars, get_settings

__all__ = [
    "SQLTableBaseSettings",
    "ConnectionSettings",
    "force_mars",
    "get_settings",
]
