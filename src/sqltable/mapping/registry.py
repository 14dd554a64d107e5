"""Metadata registry resolving mapped classes into table descriptors.

Classes are registered by ``@sql_table`` when they are defined. Descriptors
are built on first resolution and cached, so repeated calls for the same
class return the identical descriptor object.
"""

import inspect
from typing import Any, Dict, List, Optional, Type

from pydantic import ValidationError

from sqltable.common.exceptions import ErrorCode, configuration_error
from sqltable.logging import get_logger
from sqltable.mapping.columns import Column
from sqltable.mapping.decorators import get_table_metadata
from sqltable.types.metadata import ColumnDescriptor, TableDescriptor


logger = get_logger(__name__)


def _annotations(klass: type) -> Dict[str, Any]:
    # Forward references that cannot be evaluated leave the type unknown.
    try:
        return inspect.get_annotations(klass)
    except NameError:
        return {}


class MetadataRegistry:
    """Central registry of mapped entity classes.

    Example:
        >>> registry = MetadataRegistry()
        >>> registry.register(Person)
        >>> descriptor = registry.resolve(Person)
        >>> descriptor.column_names
        ['Id', 'Name']
    """

    def __init__(self):
        """Initialize the registry."""
        self._types: Dict[Type, None] = {}
        self._descriptors: Dict[Type, TableDescriptor] = {}

    def register(self, entity_type: Type) -> None:
        """Register a mapped class.

        Registering a class again drops its cached descriptor so a
        redefinition is picked up on the next resolution.

        Args:
            entity_type: Class decorated with ``@sql_table``
        """
        self._types[entity_type] = None
        self._descriptors.pop(entity_type, None)
        logger.debug(f"Registered table mapping: {entity_type.__qualname__}")

    def resolve(self, entity_type: Type) -> TableDescriptor:
        """Resolve a class into its table descriptor.

        Args:
            entity_type: Mapped class

        Returns:
            The cached TableDescriptor for the class

        Raises:
            ConfigurationError: If the class has no table metadata, declares
                no columns, maps a column twice, has no primary key column, or
                uses a schema, table or column name that cannot be quoted
        """
        descriptor = self._descriptors.get(entity_type)
        if descriptor is None:
            descriptor = self._build(entity_type)
            self._descriptors[entity_type] = descriptor
            self._types.setdefault(entity_type, None)
        return descriptor

    def resolve_entity(self, entity: Any) -> TableDescriptor:
        """Resolve the descriptor for an entity instance's class."""
        return self.resolve(type(entity))

    def is_mapped(self, entity_type: Type) -> bool:
        """Check whether a class carries table metadata of its own."""
        return get_table_metadata(entity_type) is not None

    def get_registered_types(self) -> List[Type]:
        """Get all registered classes in registration order."""
        return list(self._types)

    def clear(self) -> None:
        """Drop all cached descriptors."""
        self._descriptors.clear()

    def _build(self, entity_type: Type) -> TableDescriptor:
        if not isinstance(entity_type, type):
            raise configuration_error(
                f"Expected a mapped class, got {type(entity_type).__qualname__}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

        table = get_table_metadata(entity_type)
        if table is None:
            raise configuration_error(
                f"Entity {entity_type.__qualname__} is missing @sql_table metadata",
                entity_type=entity_type,
                error_code=ErrorCode.CONFIG_MISSING_TABLE,
            )

        columns = self._collect_columns(entity_type)
        if not columns:
            raise configuration_error(
                f"Entity {entity_type.__qualname__} declares no sql_column attributes",
                entity_type=entity_type,
                error_code=ErrorCode.CONFIG_INVALID,
            )

        if not any(column.primary_key for column in columns):
            raise configuration_error(
                f"Entity {entity_type.__qualname__} has no sql_column marked primary_key",
                entity_type=entity_type,
                error_code=ErrorCode.CONFIG_MISSING_KEY,
            )

        try:
            descriptor = TableDescriptor(
                entity_type=entity_type,
                schema_name=table.schema_name,
                table_name=table.table_name,
                columns=tuple(columns),
            )
        except ValidationError as exc:
            raise configuration_error(
                f"Invalid table mapping on {entity_type.__qualname__}: {exc.errors()[0]['msg']}",
                entity_type=entity_type,
                error_code=ErrorCode.CONFIG_INVALID,
                cause=exc,
            ) from exc

        logger.debug(
            "Resolved table descriptor",
            extra={**descriptor.telemetry_fields(), "columns": ",".join(descriptor.column_names)},
        )
        return descriptor

    @staticmethod
    def _collect_columns(entity_type: Type) -> List[ColumnDescriptor]:
        """Collect column descriptors along the MRO, base classes first.

        An attribute redefined in a subclass keeps the position of its
        first declaration.
        """
        found: Dict[str, ColumnDescriptor] = {}
        for klass in reversed(entity_type.__mro__):
            if klass is object:
                continue
            annotations = None
            for attr_name, value in vars(klass).items():
                if not isinstance(value, Column) or value.metadata is None:
                    continue
                python_type = value.metadata.python_type
                if python_type is None:
                    if annotations is None:
                        annotations = _annotations(klass)
                    python_type = annotations.get(attr_name)
                found[attr_name] = ColumnDescriptor(
                    name=value.metadata.column_name,
                    attribute=attr_name,
                    python_type=python_type,
                    primary_key=value.metadata.primary_key,
                )
        return list(found.values())


_registry: Optional[MetadataRegistry] = None


def get_registry() -> MetadataRegistry:
    """Return the process-wide metadata registry."""
    global _registry
    if _registry is None:
        _registry = MetadataRegistry()
    return _registry


def resolve(entity_type: Type) -> TableDescriptor:
    """Resolve a class through the process-wide registry."""
    return get_registry().resolve(entity_type)


__all__ = [
    "MetadataRegistry",
    "get_registry",
    "resolve",
]
