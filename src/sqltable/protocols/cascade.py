"""Cascade capability protocol.

An entity class opts into cascading by implementing ``load``, ``save`` and
``delete``. The manager checks for the capability with ``isinstance`` and
passes itself to the hook, so the entity can load or persist related data
through further manager calls.
"""

from typing import TYPE_CHECKING, Protocol

from typing_extensions import runtime_checkable

if TYPE_CHECKING:
    from sqltable.api.manager import TableManager


@runtime_checkable
class SupportsCascade(Protocol):
    """Protocol for entities that load, save and delete related entities."""

    def load(self, manager: "TableManager") -> None:
        """Load related entities after this entity was hydrated."""
        ...

    def save(self, manager: "TableManager") -> None:
        """Persist related entities after this entity was inserted or updated."""
        ...

    def delete(self, manager: "TableManager") -> None:
        """Remove related entities after this entity was deleted."""
        ...


class CascadeMixin:
    """No-op implementation of SupportsCascade.

    Subclasses override only the hooks they need.

    Example:
        >>> @sql_table("Order")
        ... class Order(CascadeMixin):
        ...     id: int = sql_column("Id", primary_key=True)
        ...
        ...     def load(self, manager):
        ...         self.lines = manager.query(OrderLine, "OrderId = :id", {"id": self.id})
    """

    def load(self, manager: "TableManager") -> None:
        pass

    def save(self, manager: "TableManager") -> None:
        pass

    def delete(self, manager: "TableManager") -> None:
        pass
