"""Metadata types for table mapping.

Two families live here: the declaration metadata attached to a class by
``@sql_table`` and ``sql_column``, and the resolved descriptors produced by
the metadata registry from those declarations.
"""

import re
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import ConfigDict, Field, field_validator, model_validator

from sqltable.constants.sql import (
    DEFAULT_SCHEMA,
    MAX_IDENTIFIER_LENGTH,
    MAX_TEMP_TABLE_NAME_LENGTH,
    STAGING_PREFIX,
)
from sqltable.types.base import SQLTableBaseModel


# Unicode letters, digits and underscore plus the punctuation SQL Server
# accepts in identifiers. No leading digit.
IDENTIFIER_PATTERN = re.compile(r'^(?:[^\W\d]|#)[\w$#@ \-]*$')


def _validate_identifier(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"{field_name} too long: maximum {MAX_IDENTIFIER_LENGTH} characters")
    return value


def validate_identifier(identifier: str, identifier_type: str = "identifier") -> None:
    """Check that an identifier may be bracket-quoted into a statement.

    Args:
        identifier: The identifier to validate
        identifier_type: Type of identifier for error messages

    Raises:
        ValueError: If the identifier is empty, too long or contains
            disallowed characters
    """
    if not identifier:
        raise ValueError(f"Empty {identifier_type} name")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"{identifier_type} name too long: {identifier}")

    if not IDENTIFIER_PATTERN.match(identifier) or '--' in identifier:
        raise ValueError(f"Invalid {identifier_type} name: {identifier}")


# ============================================================================
# Declaration Metadata
# ============================================================================

class TableMetadata(SQLTableBaseModel):
    """Table mapping declared on a class by ``@sql_table``.

    Attributes:
        table_name: Name of the mapped SQL table.
        schema_name: Schema of the mapped SQL table. Defaults to "dbo".
    """
    table_name: str
    schema_name: str = DEFAULT_SCHEMA

    @field_validator('table_name', 'schema_name')
    @classmethod
    def validate_name(cls, v: str, info) -> str:
        return _validate_identifier(v, info.field_name)


class ColumnMetadata(SQLTableBaseModel):
    """Column mapping declared on a class attribute by ``sql_column``.

    Attributes:
        column_name: Name of the mapped SQL column.
        primary_key: Whether the column is part of the primary key.
        python_type: Declared value type, taken from the class annotation
            when not given explicitly.
    """
    column_name: str
    primary_key: bool = False
    python_type: Optional[Any] = None

    @field_validator('column_name')
    @classmethod
    def validate_name(cls, v: str, info) -> str:
        return _validate_identifier(v, info.field_name)


# ============================================================================
# Resolved Descriptors
# ============================================================================

class ColumnDescriptor(SQLTableBaseModel):
    """A resolved column: name, value type, accessor and key flag.

    The accessor is the attribute name on the entity class; ``get`` and
    ``set`` read and write the value through it.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    attribute: str
    python_type: Optional[Any] = None
    primary_key: bool = False

    def get(self, entity: Any) -> Any:
        return getattr(entity, self.attribute)

    def set(self, entity: Any, value: Any) -> None:
        setattr(entity, self.attribute, value)


class TableDescriptor(SQLTableBaseModel):
    """Resolved structural metadata for one record type.

    Attributes:
        entity_type: The mapped class.
        schema_name: Schema of the table.
        table_name: Name of the table.
        columns: Mapped columns in declaration order. The order defines the
            positional correspondence with staged rows.
    """
    model_config = ConfigDict(frozen=True)

    entity_type: Type[Any]
    schema_name: str
    table_name: str
    columns: Tuple[ColumnDescriptor, ...] = Field(default_factory=tuple)

    @field_validator('schema_name', 'table_name')
    @classmethod
    def validate_name(cls, v: str, info) -> str:
        validate_identifier(v, info.field_name.replace('_name', ''))
        return v

    @model_validator(mode='after')
    def validate_columns(self):
        """Column names must be valid, unique and at least one must be a key."""
        if len(self.staging_name) > MAX_TEMP_TABLE_NAME_LENGTH:
            raise ValueError(
                f"Staging table name for {self.qualified_name} exceeds "
                f"{MAX_TEMP_TABLE_NAME_LENGTH} characters: {self.staging_name}"
            )

        if not self.columns:
            raise ValueError(f"{self.qualified_name} declares no mapped columns")

        seen: Dict[str, str] = {}
        for column in self.columns:
            validate_identifier(column.name, 'column')
            lowered = column.name.lower()
            if lowered in seen:
                raise ValueError(
                    f"Column '{column.name}' is mapped twice on {self.qualified_name} "
                    f"(attributes '{seen[lowered]}' and '{column.attribute}')"
                )
            seen[lowered] = column.attribute

        if not any(column.primary_key for column in self.columns):
            raise ValueError(f"{self.qualified_name} has no primary key column")
        return self

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def staging_name(self) -> str:
        """Unquoted name of the session temp table used to stage rows.

        The name is deterministic so a leftover from a failed call is
        found and replaced by the next one.
        """
        return f"{STAGING_PREFIX}{self.schema_name}_{self.table_name}"

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def key_columns(self) -> Tuple[ColumnDescriptor, ...]:
        return tuple(column for column in self.columns if column.primary_key)

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        """Find a column by name, ignoring case as SQL Server does."""
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered:
                return column
        return None

    def key_values(self, entity: Any) -> Tuple[Any, ...]:
        """Read the primary key values of an entity in key column order."""
        return tuple(column.get(entity) for column in self.key_columns)

    def telemetry_fields(self) -> Dict[str, str]:
        return {
            "operation.schema": self.schema_name,
            "operation.object": self.table_name,
            "operation.entity": self.entity_type.__qualname__,
        }
