"""Shared fixtures: sample mapped entities and an in-memory engine.

FakeEngine implements the SQLEngine surface used by TableManager and
StagingLoader. It interprets each Statement by its query type, target and
staging name rather than parsing SQL in full, keeps tables as lists of
dicts and records every statement it receives.
"""

import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import pytest

from sqltable import CascadeMixin, TableManager, sql_column, sql_table
from sqltable.common.exceptions import query_execution_error, staging_error
from sqltable.constants.sql import QueryType
from sqltable.mapping import MetadataRegistry, get_registry
from sqltable.operations import Statement
from sqltable.types.metadata import TableDescriptor


@sql_table("Person")
class Person:
    id: int = sql_column("Id", primary_key=True)
    name: str = sql_column("Name")

    def __init__(self, id: Optional[int] = None, name: Optional[str] = None):
        self.id = id
        self.name = name

    def __repr__(self) -> str:
        return f"Person(id={self.id!r}, name={self.name!r})"


@sql_table("OrderLine", schema="sales")
class OrderLine(CascadeMixin):
    """Composite-key entity recording every cascade hook call."""
    order_id: int = sql_column("OrderId", primary_key=True)
    line_no: int = sql_column("LineNo", primary_key=True)
    sku: str = sql_column("Sku")

    calls: List[Tuple[str, Any, Any]] = []

    def __init__(self, order_id: Optional[int] = None, line_no: Optional[int] = None, sku: Optional[str] = None):
        self.order_id = order_id
        self.line_no = line_no
        self.sku = sku

    def load(self, manager):
        OrderLine.calls.append(("load", self, manager))

    def save(self, manager):
        OrderLine.calls.append(("save", self, manager))

    def delete(self, manager):
        OrderLine.calls.append(("delete", self, manager))


@sql_table("Node")
class Node(CascadeMixin):
    """Entity whose load hook queries its own row again."""
    id: int = sql_column("Id", primary_key=True)
    parent_id: int = sql_column("ParentId")

    loads: List[int] = []

    def load(self, manager):
        Node.loads.append(self.id)
        self.related = manager.query(Node, "Id = :id", {"id": self.id})


@sql_table("Device")
class Device:
    """Entity keyed by a uniqueidentifier column."""
    id: uuid.UUID = sql_column("Id", primary_key=True)
    label: str = sql_column("Label")

    def __init__(self, id: Optional[uuid.UUID] = None, label: Optional[str] = None):
        self.id = id
        self.label = label


Predicate = Callable[[Mapping[str, Any], Mapping[str, Any]], bool]


class FakeEngine:
    """In-memory stand-in for SQLEngine."""

    def __init__(self, registry: Optional[MetadataRegistry] = None):
        self.registry = registry or get_registry()
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.staging: Dict[str, List[Dict[str, Any]]] = {}
        self.descriptors: Dict[str, TableDescriptor] = {}
        self.predicates: Dict[str, Predicate] = {}
        self.statements: List[Statement] = []
        self.fail_on: Set[str] = set()
        self.close_calls = 0
        self._closed = False

    # -- setup helpers -------------------------------------------------

    def create_table(self, entity_type: type, rows: Sequence[Mapping[str, Any]] = ()) -> List[Dict[str, Any]]:
        descriptor = self.registry.resolve(entity_type)
        self.descriptors[descriptor.qualified_name] = descriptor
        self.tables[descriptor.qualified_name] = [dict(row) for row in rows]
        return self.tables[descriptor.qualified_name]

    def rows(self, entity_type: type) -> List[Dict[str, Any]]:
        return self.tables[self.registry.resolve(entity_type).qualified_name]

    @property
    def query_types(self) -> List[str]:
        return [statement.query_type for statement in self.statements]

    # -- SQLEngine surface ---------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def execute(self, statement: Statement) -> int:
        self._record(statement)
        query_type = statement.query_type

        if query_type == QueryType.CREATE_STAGING:
            self.staging[statement.staging_name] = []
            return 0
        if query_type == QueryType.DROP_STAGING:
            self.staging.pop(statement.staging_name, None)
            return 0

        table = self.tables[statement.target]
        keys = self._key_names(statement.target)
        staged = self._staged_rows(statement)

        if query_type == QueryType.INSERT:
            if "WHERE NOT EXISTS" in statement.sql:
                existing = {tuple(row[k] for k in keys) for row in table}
                staged = [row for row in staged if tuple(row[k] for k in keys) not in existing]
            table.extend(dict(row) for row in staged)
            return len(staged)

        if query_type == QueryType.UPDATE:
            affected = 0
            for source in staged:
                for row in table:
                    if all(row[k] == source[k] for k in keys):
                        row.update(source)
                        affected += 1
            return affected

        if query_type == QueryType.DELETE:
            doomed = {tuple(source[k] for k in keys) for source in staged}
            before = len(table)
            table[:] = [row for row in table if tuple(row[k] for k in keys) not in doomed]
            return before - len(table)

        raise AssertionError(f"Unexpected statement for execute: {query_type}")

    def fetch_all(self, statement: Statement) -> List[Mapping[str, Any]]:
        self._record(statement)
        table = self.tables[statement.target]

        if statement.query_type == QueryType.SELECT:
            rows = [dict(row) for row in table]
            for filter_text, predicate in self.predicates.items():
                if f"WHERE ({filter_text})" in statement.sql:
                    rows = [row for row in rows if predicate(row, statement.params)]
            if " ORDER BY " in statement.sql:
                order = [name.strip(" []") for name in statement.sql.split(" ORDER BY ")[1].split(",")]
                rows.sort(key=lambda row: tuple(row[name] for name in order))
            return rows

        raise AssertionError(f"Unexpected statement for fetch_all: {statement.query_type}")

    def fetch_scalar(self, statement: Statement) -> Any:
        self._record(statement)
        keys = self._key_names(statement.target)
        existing = {tuple(row[k] for k in keys) for row in self.tables[statement.target]}

        if statement.query_type == QueryType.CLASSIFY:
            return sum(
                1 for row in self.staging[statement.staging_name]
                if tuple(row[k] for k in keys) in existing
            )

        assert statement.query_type == QueryType.EXISTS
        wanted = tuple(statement.params[f"pk_{index}"] for index in range(len(keys)))
        return 1 if wanted in existing else None

    def bulk_insert(self, statement: Statement, rows: Sequence[Tuple[Any, ...]]) -> None:
        if not rows:
            return
        self._record(statement)
        names = self.descriptors[statement.target].column_names
        self.staging[statement.staging_name].extend(dict(zip(names, row)) for row in rows)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.close_calls += 1

    # -- internals -----------------------------------------------------

    def _record(self, statement: Statement) -> None:
        self.statements.append(statement)
        if any(statement.query_type == failing for failing in self.fail_on):
            error = RuntimeError(f"forced failure for {statement.query_type}")
            if statement.query_type == QueryType.LOAD_STAGING:
                raise staging_error(statement.staging_name, error)
            raise query_execution_error(statement.sql, error)

    def _staged_rows(self, statement: Statement) -> List[Dict[str, Any]]:
        # Statements ending with a DROP TABLE consume the staging table.
        if statement.sql.endswith(f"DROP TABLE [{statement.staging_name}]"):
            return self.staging.pop(statement.staging_name)
        return self.staging[statement.staging_name]

    def _key_names(self, target: str) -> List[str]:
        return [column.name for column in self.descriptors[target].key_columns]


class DecodingEngine(FakeEngine):
    """FakeEngine returning uniqueidentifier values as str, the way pyodbc does."""

    def fetch_all(self, statement: Statement) -> List[Mapping[str, Any]]:
        return [
            {name: str(value) if isinstance(value, uuid.UUID) else value for name, value in row.items()}
            for row in super().fetch_all(statement)
        ]


@pytest.fixture
def fake_engine():
    engine = FakeEngine()
    engine.create_table(Person)
    engine.create_table(OrderLine)
    engine.create_table(Node)
    return engine


@pytest.fixture
def manager(fake_engine):
    return TableManager(fake_engine)


@pytest.fixture(autouse=True)
def reset_hook_calls():
    OrderLine.calls.clear()
    Node.loads.clear()
    yield
    OrderLine.calls.clear()
    Node.loads.clear()


@pytest.fixture
def registry():
    """A registry isolated from the process-wide one."""
    return MetadataRegistry()


@pytest.fixture
def person_type():
    return Person


@pytest.fixture
def order_line_type():
    return OrderLine


@pytest.fixture
def node_type():
    return Node


@pytest.fixture
def device_type():
    return Device


@pytest.fixture
def decoding_engine():
    engine = DecodingEngine()
    engine.create_table(Device)
    return engine
