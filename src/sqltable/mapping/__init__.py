"""Declarative table mapping.

Classes declare their table with ``@sql_table`` and their columns with
``sql_column``; the registry turns those declarations into immutable table
descriptors.
"""

from sqltable.mapping.columns import Column, sql_column
from sqltable.mapping.decorators import sql_table, get_table_metadata
from sqltable.mapping.registry import MetadataRegistry, get_registry, resolve

__all__ = [
    "Column",
    "sql_column",
    "sql_table",
    "get_table_metadata",
    "MetadataRegistry",
    "get_registry",
    "resolve",
]
