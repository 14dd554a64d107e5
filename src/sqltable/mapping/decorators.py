"""Table declaration decorator.

``@sql_table`` attaches a TableMetadata to a class and registers the class
with the metadata registry, so the table descriptor can be resolved without
further inspection of the class at call time.
"""

from typing import TYPE_CHECKING, Callable, Optional, Type, TypeVar

from sqltable.constants.sql import DEFAULT_SCHEMA
from sqltable.types.metadata import TableMetadata

if TYPE_CHECKING:
    from sqltable.mapping.registry import MetadataRegistry

C = TypeVar('C', bound=type)

TABLE_METADATA_ATTR = "_sql_table"


def sql_table(
    table_name: str,
    schema: str = DEFAULT_SCHEMA,
    registry: Optional["MetadataRegistry"] = None,
) -> Callable[[C], C]:
    """Decorator mapping a class to a SQL table.

    Args:
        table_name: Name of the mapped table.
        schema: Schema of the mapped table. Defaults to "dbo".
        registry: Registry to register the class with. Defaults to the
            process-wide registry.

    Returns:
        Decorated class with TableMetadata attached as ``_sql_table``.

    Example:
        >>> @sql_table("Person", schema="hr")
        ... class Person:
        ...     id: int = sql_column("Id", primary_key=True)
        ...     name: str = sql_column("Name")

    Notes:
        - Metadata is not inherited: a subclass needs its own decorator
          to be mapped, although it inherits the parent's columns.
        - The class must be constructible without arguments so query
          results can be hydrated.
    """
    def decorator(cls: C) -> C:
        metadata = TableMetadata(table_name=table_name, schema_name=schema)
        setattr(cls, TABLE_METADATA_ATTR, metadata)

        from sqltable.mapping.registry import get_registry
        (registry or get_registry()).register(cls)
        return cls

    return decorator


def get_table_metadata(cls: Type) -> Optional[TableMetadata]:
    """Return the table metadata declared directly on ``cls``, if any."""
    return cls.__dict__.get(TABLE_METADATA_ATTR)
