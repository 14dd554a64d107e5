"""Column descriptors for mapped entity classes.

``sql_column`` returns a data descriptor that stores its value in the
instance ``__dict__`` and carries the column's declaration metadata. The
metadata registry collects these descriptors to build table descriptors.
"""

from typing import Any, Callable, Generic, Optional, TypeVar

from sqltable.types.metadata import ColumnMetadata

T = TypeVar('T')

_MISSING = object()


class Column(Generic[T]):
    """Descriptor mapping a class attribute to a SQL column.

    Attributes:
        metadata: Column declaration (name, key flag, value type). Built when
            the descriptor is attached to its class.
        attr_name: The attribute name this descriptor is assigned to

    Example:
        >>> @sql_table("Person")
        ... class Person:
        ...     id: int = sql_column("Id", primary_key=True)
        ...     name: str = sql_column("Name")
        >>>
        >>> person = Person()
        >>> person.id is None
        True
    """

    def __init__(
        self,
        column_name: Optional[str] = None,
        primary_key: bool = False,
        type_: Optional[type] = None,
        default: Any = None,
        default_factory: Optional[Callable[[], T]] = None,
    ):
        self._column_name = column_name
        self._primary_key = primary_key
        self._python_type = type_
        self.default = default
        self.default_factory = default_factory
        self.attr_name: Optional[str] = None
        self.metadata: Optional[ColumnMetadata] = None

    def __set_name__(self, owner: type, name: str) -> None:
        """Build the column metadata once the attribute name is known.

        The column name defaults to the attribute name. A missing value type
        is filled in from the class annotations when the table is resolved.
        """
        self.attr_name = name
        self.metadata = ColumnMetadata(
            column_name=self._column_name or name,
            primary_key=self._primary_key,
            python_type=self._python_type,
        )

    def __get__(self, obj: Optional[Any], objtype: Optional[type] = None) -> Any:
        if obj is None:
            return self  # Accessing via class

        value = obj.__dict__.get(self.attr_name, _MISSING)
        if value is _MISSING:
            value = self.default_factory() if self.default_factory else self.default
            obj.__dict__[self.attr_name] = value
        return value

    def __set__(self, obj: Any, value: T) -> None:
        obj.__dict__[self.attr_name] = value

    @property
    def column_name(self) -> str:
        return self.metadata.column_name if self.metadata else (self._column_name or "")

    @property
    def primary_key(self) -> bool:
        return self._primary_key

    def __repr__(self) -> str:
        return f"Column({self.column_name!r}, primary_key={self._primary_key})"


def sql_column(
    column_name: Optional[str] = None,
    *,
    primary_key: bool = False,
    type_: Optional[type] = None,
    default: Any = None,
    default_factory: Optional[Callable[[], Any]] = None,
) -> Any:
    """Declare a class attribute as a mapped SQL column.

    Args:
        column_name: Name of the mapped column. Defaults to the attribute name.
        primary_key: Whether the column is part of the table's primary key.
        type_: Value type. Defaults to the attribute annotation.
        default: Value returned before the attribute is assigned.
        default_factory: Callable producing a per-instance default.

    Returns:
        A Column descriptor. Typed as Any so annotations on the attribute
        describe the value rather than the descriptor.
    """
    return Column(
        column_name,
        primary_key=primary_key,
        type_=type_,
        default=default,
        default_factory=default_factory,
    )
