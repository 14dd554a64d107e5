"""Staging of entity batches for set-based statements.

A batch is first materialized into a columnar frame whose columns match
the table descriptor, then transferred into a session-scoped temp table
that set-based statements join against. The temp table is dropped on
every exit path of the transfer scope.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Tuple

import pandas as pd

from sqltable.compute.engine import SQLEngine
from sqltable.logging import get_logger
from sqltable.query_builder.base import BaseQueryBuilder
from sqltable.types.metadata import TableDescriptor

logger = get_logger(__name__)


class StagingTable:
    """Columnar, ordered rows for one batch of entities.

    Columns and their order match the descriptor exactly. Values are kept
    as Python objects so None reaches the server as NULL.
    """

    def __init__(self, descriptor: TableDescriptor, frame: pd.DataFrame):
        self.descriptor = descriptor
        self.frame = frame

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def columns(self) -> List[str]:
        return list(self.frame.columns)

    def rows(self) -> List[Tuple[Any, ...]]:
        """Rows as positional tuples in descriptor column order."""
        return list(self.frame.itertuples(index=False, name=None))


@dataclass
class StagedTable:
    """Reference to a server-side staging table.

    Attributes:
        name: Unquoted temp table name
        descriptor: Destination table the staging table mirrors
        row_count: Number of rows transferred
        dropped: Set once a statement dropped the table as part of its batch
    """
    name: str
    descriptor: TableDescriptor
    row_count: int = 0
    dropped: bool = False

    def mark_dropped(self) -> None:
        self.dropped = True


class StagingLoader:
    """Materializes entity batches and transfers them to staging tables."""

    def __init__(self, engine: SQLEngine, builder: BaseQueryBuilder):
        self.engine = engine
        self.builder = builder

    @staticmethod
    def materialize(entities: Iterable[Any], descriptor: TableDescriptor) -> StagingTable:
        """Read every mapped column of every entity into a staging frame.

        Args:
            entities: Entities of the descriptor's type
            descriptor: Table whose column order the rows follow

        Returns:
            StagingTable with one row per entity
        """
        records = [
            tuple(column.get(entity) for column in descriptor.columns)
            for entity in entities
        ]
        frame = pd.DataFrame(records, columns=descriptor.column_names, dtype=object)
        return StagingTable(descriptor, frame)

    @contextmanager
    def transfer(self, staging: StagingTable) -> Iterator[StagedTable]:
        """Create the staging table, bulk-load the rows and yield its reference.

        The staging table is dropped when the scope exits, whether it
        exits normally or with an exception, unless a statement inside the
        scope already dropped it and called ``mark_dropped``. When the scope
        fails, a failing drop is logged and the original error propagates.

        Raises:
            EngineError: If the table cannot be created or loaded
        """
        descriptor = staging.descriptor
        staged = StagedTable(
            name=self.builder.staging_name(descriptor),
            descriptor=descriptor,
            row_count=len(staging),
        )

        self.engine.execute(self.builder.build_create_staging(descriptor))
        try:
            self.engine.bulk_insert(self.builder.build_staging_insert(descriptor), staging.rows())
            logger.debug(
                "Staging table loaded",
                extra={**descriptor.telemetry_fields(), "staging": staged.name, "rows": str(staged.row_count)},
            )
            yield staged
        except BaseException:
            self._discard(staged, suppress=True)
            raise
        else:
            self._discard(staged, suppress=False)

    def _discard(self, staged: StagedTable, suppress: bool) -> None:
        if staged.dropped:
            return
        try:
            self.engine.execute(self.builder.build_drop_staging(staged.descriptor))
            staged.mark_dropped()
        except Exception:
            if not suppress:
                raise
            logger.warning(
                "Failed to drop staging table after an error",
                extra={**staged.descriptor.telemetry_fields(), "staging": staged.name},
                exc_info=True,
            )
