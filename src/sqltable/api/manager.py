"""Table manager: set-based CRUD over mapped entity classes.

Every batch operation follows the same sequence: resolve the table
descriptor, stage the batch into a temp table, run one set-based statement
joined against it, drop the temp table, and finally invoke the entities'
cascade hooks when requested.

A TableManager holds one connection and is not safe for concurrent use;
use one manager per thread.
"""

import time
from collections.abc import Iterable
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple, Type, TypeVar

from sqlalchemy.engine import Connection

from sqltable.common.exceptions import construction_error, missing_key_error
from sqltable.compute.engine import SQLEngine
from sqltable.constants.sql import CascadeAction
from sqltable.logging import get_logger
from sqltable.mapping.decorators import get_table_metadata
from sqltable.mapping.registry import MetadataRegistry, get_registry
from sqltable.operations import Statement
from sqltable.protocols.cascade import SupportsCascade
from sqltable.query_builder.base import BaseQueryBuilder
from sqltable.query_builder.tsql import TSQLQueryBuilder
from sqltable.settings import ConnectionSettings
from sqltable.staging.loader import StagingLoader
from sqltable.types.metadata import TableDescriptor
from sqltable.utils.decorators import traced

logger = get_logger(__name__)

E = TypeVar('E')


class UpsertResult(NamedTuple):
    """Number of entities routed to each side of an upsert."""
    inserted: int
    updated: int


def _batch_size(entities: Any) -> Optional[int]:
    return len(entities) if isinstance(entities, (list, tuple)) else None


def _batch_attributes(operation: str) -> Callable[..., Dict[str, Any]]:
    def getter(self, entities, cascade=True, **kwargs) -> Dict[str, Any]:
        return {
            "sqltable.operation": operation,
            "sqltable.batch.size": _batch_size(entities),
            "sqltable.cascade": cascade,
        }
    return getter


class TableManager:
    """Set-based create, read, update, upsert and delete for mapped entities.

    Entities are classes decorated with ``@sql_table`` whose attributes are
    declared with ``sql_column``. Entities implementing ``SupportsCascade``
    get their ``load``, ``save`` or ``delete`` hook called with the manager
    after each operation, unless ``cascade=False`` is passed.

    Example:
        >>> with TableManager.from_credentials("sql01", "hr", "etl", "secret") as manager:
        ...     manager.upsert([Person(id=1, name="A2"), Person(id=3, name="C")])
        ...     people = manager.query(Person, "Id > :min_id", {"min_id": 1})
    """

    def __init__(
        self,
        engine: SQLEngine,
        registry: Optional[MetadataRegistry] = None,
        builder: Optional[BaseQueryBuilder] = None,
    ):
        """Initialize the manager around an open engine.

        The manager takes ownership of the engine and closes it in ``close``.

        Args:
            engine: Engine wrapping an open connection
            registry: Metadata registry. Defaults to the process-wide registry.
            builder: Statement builder. Defaults to the T-SQL builder.
        """
        self.engine = engine
        self.registry = registry or get_registry()
        self.builder = builder or TSQLQueryBuilder()
        self.staging = StagingLoader(engine, self.builder)
        self._loading: Set[Tuple[type, Tuple[Any, ...]]] = set()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_connection(cls, connection: Connection, **kwargs) -> "TableManager":
        """Wrap an already-open SQLAlchemy connection.

        The manager closes the connection when it is closed.
        """
        return cls(SQLEngine(connection), **kwargs)

    @classmethod
    def from_settings(cls, settings: ConnectionSettings, **kwargs) -> "TableManager":
        """Open a connection described by settings."""
        return cls(SQLEngine.connect(settings), **kwargs)

    @classmethod
    def from_connection_string(cls, connection_string: str, **kwargs) -> "TableManager":
        """Open a connection from an ODBC connection string.

        Multiple active result sets are switched on regardless of the
        string's own setting.
        """
        return cls.from_settings(ConnectionSettings(connection_string=connection_string), **kwargs)

    @classmethod
    def from_credentials(
        cls,
        server: str,
        database: str,
        username: str,
        password: str,
        **kwargs,
    ) -> "TableManager":
        """Open a connection from a server, a database and SQL login credentials."""
        return cls.from_settings(
            ConnectionSettings(server=server, database=database, username=username, password=password),
            **kwargs,
        )

    @classmethod
    def from_credential(cls, server: str, database: str, credential: Any, **kwargs) -> "TableManager":
        """Open a connection from a server, a database and a credential.

        Args:
            credential: A (username, password) pair, or an object exposing
                ``username`` and ``password`` attributes
        """
        return cls.from_settings(ConnectionSettings.from_credential(server, database, credential), **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self.engine.closed

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        self.engine.close()

    def __enter__(self) -> "TableManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    @traced(
        span_name="sqltable.manager.query",
        attribute_getter=lambda self, entity_type, filter=None, params=None, cascade=True, **kw: {
            "sqltable.operation": "query",
            "sqltable.entity": getattr(entity_type, "__qualname__", str(entity_type)),
            "sqltable.filtered": filter is not None,
            "sqltable.cascade": cascade,
        },
    )
    def query(
        self,
        entity_type: Type[E],
        filter: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        cascade: bool = True,
        order_by: Optional[Sequence[str]] = None,
    ) -> List[E]:
        """Read entities from the type's table.

        Args:
            entity_type: Mapped class to hydrate
            filter: Raw predicate used as the WHERE clause, e.g.
                ``"Id > :min_id"``
            params: Values bound to the filter's ``:name`` placeholders
            cascade: Call ``load`` on entities that support cascading
            order_by: Column names to order the result by

        Returns:
            One entity per matching row

        Raises:
            ConfigurationError: If the type is not properly mapped
            ConstructionError: If the type cannot be constructed without arguments
            EngineError: If the query fails
        """
        descriptor = self.registry.resolve(entity_type)
        statement = self.builder.build_select(descriptor, filter, params, order_by)
        start_time = time.time()

        rows = self.engine.fetch_all(statement)

        result: List[E] = []
        for row in rows:
            entity = self._hydrate(descriptor, row)
            if cascade and isinstance(entity, SupportsCascade):
                self._cascade_load(descriptor, entity)
            result.append(entity)

        logger.info(
            "Query completed",
            extra={
                **descriptor.telemetry_fields(),
                "rows": str(len(result)),
                "duration.seconds": f"{time.time() - start_time:.6f}",
            },
        )
        return result

    def entity_exists(self, entity: Any) -> bool:
        """Check whether a row with the entity's primary key exists.

        Raises:
            ConfigurationError: If the entity's type is not properly mapped
            MissingKeyError: If a primary key value is None
            EngineError: If the query fails
        """
        descriptor = self.registry.resolve(type(entity))
        statement = self.builder.build_exists(descriptor, entity)
        return self.engine.fetch_scalar(statement) is not None

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    @traced(span_name="sqltable.manager.insert", attribute_getter=_batch_attributes("insert"))
    def insert(self, entities: Any, cascade: bool = True) -> None:
        """Insert one entity or a batch of entities of the same type.

        Entities supporting cascade get ``save`` called afterwards.
        """
        self._write(entities, cascade, self.builder.build_insert_from_staging, CascadeAction.SAVE, "insert")

    @traced(span_name="sqltable.manager.update", attribute_getter=_batch_attributes("update"))
    def update(self, entities: Any, cascade: bool = True) -> None:
        """Update the rows matching the entities' primary keys.

        Every mapped column is assigned, key columns included. Entities
        supporting cascade get ``save`` called afterwards.
        """
        self._write(entities, cascade, self.builder.build_update_via_join, CascadeAction.SAVE, "update")

    @traced(span_name="sqltable.manager.delete", attribute_getter=_batch_attributes("delete"))
    def delete(self, entities: Any, cascade: bool = True) -> None:
        """Delete the rows matching the entities' primary keys.

        Entities supporting cascade get ``delete`` called afterwards.
        """
        self._write(entities, cascade, self.builder.build_delete_via_join, CascadeAction.DELETE, "delete")

    @traced(span_name="sqltable.manager.upsert", attribute_getter=_batch_attributes("upsert"))
    def upsert(self, entities: Any, cascade: bool = True) -> UpsertResult:
        """Insert entities whose key is new and update the others.

        The batch is staged once and matched against the destination on the
        server: a semi-join counts the keys already present, an UPDATE joins
        the existing rows and an INSERT adds the staged rows with no match.
        Key values never round-trip through the driver. When the batch holds
        several entities with the same key, the last one wins.

        Returns:
            UpsertResult with the number of entities inserted and updated

        Raises:
            MissingKeyError: If an entity has a None primary key value
        """
        batch = self._as_batch(entities)
        if not batch:
            logger.debug("Upsert skipped for empty batch")
            return UpsertResult(0, 0)

        descriptor = self._resolve_batch(batch)

        unique: Dict[Tuple[Any, ...], Any] = {}
        for entity in batch:
            key = descriptor.key_values(entity)
            for column, value in zip(descriptor.key_columns, key):
                if value is None:
                    raise missing_key_error(entity, column.name)
            unique[key] = entity

        if len(unique) < len(batch):
            logger.warning(
                "Duplicate keys in upsert batch; keeping the last entity per key",
                extra={**descriptor.telemetry_fields(), "duplicates": str(len(batch) - len(unique))},
            )

        survivors = list(unique.values())
        start_time = time.time()

        staging = self.staging.materialize(survivors, descriptor)
        with self.staging.transfer(staging) as staged:
            updated = int(self.engine.fetch_scalar(self.builder.build_classify(descriptor)) or 0)
            inserted = len(survivors) - updated
            if updated:
                self.engine.execute(
                    self.builder.build_update_via_join(descriptor, drop_staging=not inserted)
                )
            if inserted:
                self.engine.execute(
                    self.builder.build_insert_from_staging(descriptor, missing_only=True)
                )
            staged.mark_dropped()

        logger.info(
            "Upsert completed",
            extra={
                **descriptor.telemetry_fields(),
                "inserted": str(inserted),
                "updated": str(updated),
                "duration.seconds": f"{time.time() - start_time:.6f}",
            },
        )

        if cascade:
            self._cascade(survivors, CascadeAction.SAVE)

        return UpsertResult(inserted=inserted, updated=updated)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write(
        self,
        entities: Any,
        cascade: bool,
        build: Callable[[TableDescriptor], Statement],
        action: CascadeAction,
        operation: str,
    ) -> None:
        batch = self._as_batch(entities)
        if not batch:
            logger.debug(f"{operation.capitalize()} skipped for empty batch")
            return

        descriptor = self._resolve_batch(batch)
        start_time = time.time()

        staging = self.staging.materialize(batch, descriptor)
        with self.staging.transfer(staging) as staged:
            self.engine.execute(build(descriptor))
            staged.mark_dropped()

        logger.info(
            f"{operation.capitalize()} completed",
            extra={
                **descriptor.telemetry_fields(),
                "rows": str(len(batch)),
                "duration.seconds": f"{time.time() - start_time:.6f}",
            },
        )

        if cascade:
            self._cascade(batch, action)

    def _hydrate(self, descriptor: TableDescriptor, row: Mapping[str, Any]) -> Any:
        entity_type = descriptor.entity_type
        try:
            entity = entity_type()
        except TypeError as exc:
            raise construction_error(entity_type, exc) from exc

        for name, value in row.items():
            column = descriptor.column(name)
            if column is not None:
                column.set(entity, value)
        return entity

    def _cascade_load(self, descriptor: TableDescriptor, entity: Any) -> None:
        # An entity already loading further up the stack is not loaded again.
        identity = (descriptor.entity_type, descriptor.key_values(entity))
        if identity in self._loading:
            logger.debug("Cascade load cycle skipped", extra=descriptor.telemetry_fields())
            return

        self._loading.add(identity)
        try:
            entity.load(self)
        finally:
            self._loading.discard(identity)

    def _cascade(self, batch: List[Any], action: CascadeAction) -> None:
        for entity in batch:
            if isinstance(entity, SupportsCascade):
                getattr(entity, action.value)(self)

    def _as_batch(self, entities: Any) -> List[Any]:
        """Normalize a single entity or an iterable of entities to a list."""
        if entities is None:
            return []
        if get_table_metadata(type(entities)) is not None:
            return [entities]
        if isinstance(entities, (str, bytes)) or not isinstance(entities, Iterable):
            return [entities]
        return list(entities)

    def _resolve_batch(self, batch: List[Any]) -> TableDescriptor:
        types = {type(entity) for entity in batch}
        if len(types) > 1:
            names = ", ".join(sorted(t.__qualname__ for t in types))
            raise ValueError(f"A batch must contain a single entity type, got: {names}")
        return self.registry.resolve(types.pop())
