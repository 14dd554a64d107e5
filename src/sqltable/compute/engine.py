"""Single-connection SQL engine.

SQLEngine owns one SQLAlchemy connection for the lifetime of a
TableManager. Every call is single-shot: driver failures are wrapped in
EngineError and propagated immediately, without retries.
"""

import time
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib import parse

import pyodbc
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import NullPool

from sqltable.common.exceptions import connection_error, query_execution_error, staging_error
from sqltable.logging import get_logger
from sqltable.operations import Statement
from sqltable.utils.decorators import traced

if TYPE_CHECKING:
    from sqltable.settings import ConnectionSettings

logger = get_logger(__name__)


class SQLEngine:
    """SQLAlchemy-based execution wrapper around one open connection.

    The engine either wraps a connection the caller already acquired, or
    opens its own through ``SQLEngine.connect``; only in the latter case
    does ``close`` also dispose the underlying SQLAlchemy engine.

    Example:
        >>> engine = SQLEngine.connect(ConnectionSettings(server="sql01", database="hr"))
        >>> engine.fetch_scalar(statement)
        >>> engine.close()
    """

    def __init__(
        self,
        connection: Connection,
        engine: Optional[Engine] = None,
        platform: str = "mssql",
    ):
        """Initialize the SQL engine.

        Args:
            connection: An open SQLAlchemy connection
            engine: The SQLAlchemy engine the connection came from, when it
                should be disposed together with the connection
            platform: Name reported in logs and spans
        """
        self._connection = connection
        self._engine = engine
        self._closed = False
        self._connection_info: Dict[str, Any] = {"platform": platform}

    @classmethod
    def connect(cls, settings: "ConnectionSettings") -> "SQLEngine":
        """Open a connection described by the settings.

        Raises:
            ConfigurationError: If the settings do not describe a connection
            EngineError: If the connection cannot be opened. Nothing is left
                to release in that case.
        """
        odbc_str = settings.get_odbc_string()
        url = f"mssql+pyodbc:///?odbc_connect={parse.quote_plus(odbc_str)}"

        # Pooling stays off; the manager holds exactly one connection
        pyodbc.pooling = False

        engine: Optional[Engine] = None
        try:
            engine = create_engine(
                url,
                poolclass=NullPool,
                fast_executemany=settings.fast_executemany,
                echo=settings.echo,
                connect_args={
                    "autocommit": True,
                },
            )
            connection = engine.connect()
        except Exception as e:
            if engine is not None:
                engine.dispose()
            raise connection_error(
                f"Failed to connect to {settings.display_name}",
                server=settings.server,
                database=settings.database,
                cause=e,
            ) from e

        instance = cls(connection, engine)
        instance._connection_info.update({
            "server": settings.server,
            "database": settings.database,
        })
        logger.info(
            "SQL connection opened",
            extra={"db.platform": "mssql", "db.name": settings.display_name},
        )
        return instance

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._closed

    def _span_attributes(self, statement: Statement, *, operation: str) -> Dict[str, Any]:
        """Build OpenTelemetry span attributes for SQL operations."""
        sql = statement.sql.strip()
        if len(sql) > 4096:
            sql = f"{sql[:4093]}..."

        return {
            "db.system": self._connection_info.get("platform", "mssql"),
            "db.operation": operation,
            "db.statement": sql,
            "db.sql.table": statement.target,
            "sqltable.statement.type": str(statement.query_type),
        }

    def _payload(self, statement: Statement) -> Dict[str, str]:
        payload = statement.telemetry_fields()
        payload.setdefault("db.platform", str(self._connection_info.get("platform", "mssql")))
        return payload

    def _require_open(self) -> Connection:
        if self._closed:
            raise connection_error(
                "SQL connection is closed",
                server=self._connection_info.get("server"),
                database=self._connection_info.get("database"),
            )
        return self._connection

    @traced(
        span_name="sqltable.sql.execute",
        attribute_getter=lambda self, statement: self._span_attributes(statement, operation="execute"),
    )
    def execute(self, statement: Statement) -> int:
        """Execute a statement without returning rows.

        Returns:
            Number of rows affected, as reported by the driver
        """
        conn = self._require_open()
        start_time = time.time()
        payload = self._payload(statement)

        try:
            result = conn.execute(text(statement.sql), statement.params)
            rowcount = result.rowcount
            conn.commit()
        except Exception as exc:
            logger.error(
                "SQL statement failed",
                extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "error": str(exc)},
                exc_info=True,
            )
            raise query_execution_error(statement.sql, exc) from exc

        logger.debug(
            "SQL statement executed",
            extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "rows": str(rowcount)},
        )
        return rowcount

    @traced(
        span_name="sqltable.sql.fetch_all",
        attribute_getter=lambda self, statement: self._span_attributes(statement, operation="fetch_all"),
    )
    def fetch_all(self, statement: Statement) -> List[Mapping[str, Any]]:
        """Execute a query and fetch all rows as column-name mappings."""
        conn = self._require_open()
        start_time = time.time()
        payload = self._payload(statement)

        try:
            result = conn.execute(text(statement.sql), statement.params)
            rows = list(result.mappings().all())
        except Exception as exc:
            logger.error(
                "SQL fetch failed",
                extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "error": str(exc)},
                exc_info=True,
            )
            raise query_execution_error(statement.sql, exc) from exc

        logger.debug(
            "Rows fetched",
            extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "row_count": str(len(rows))},
        )
        return rows

    @traced(
        span_name="sqltable.sql.fetch_scalar",
        attribute_getter=lambda self, statement: self._span_attributes(statement, operation="fetch_scalar"),
    )
    def fetch_scalar(self, statement: Statement) -> Any:
        """Execute a query and return the first column of the first row, or None."""
        conn = self._require_open()
        start_time = time.time()
        payload = self._payload(statement)

        try:
            value = conn.execute(text(statement.sql), statement.params).scalar()
        except Exception as exc:
            logger.error(
                "SQL scalar fetch failed",
                extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "error": str(exc)},
                exc_info=True,
            )
            raise query_execution_error(statement.sql, exc) from exc

        logger.debug(
            "Scalar fetched",
            extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "value_is_null": str(value is None)},
        )
        return value

    @traced(
        span_name="sqltable.sql.bulk_insert",
        attribute_getter=lambda self, statement, rows: {
            **self._span_attributes(statement, operation="bulk_insert"),
            "db.batch.count": len(rows),
        },
    )
    def bulk_insert(self, statement: Statement, rows: Sequence[Tuple[Any, ...]]) -> None:
        """Load rows through the driver's executemany channel.

        The statement uses positional ``?`` markers; with
        ``fast_executemany`` pyodbc sends the whole batch as one
        parameter array.
        """
        if not rows:
            return

        conn = self._require_open()
        start_time = time.time()
        payload = self._payload(statement)

        try:
            conn.exec_driver_sql(statement.sql, list(rows))
            conn.commit()
        except Exception as exc:
            logger.error(
                "Bulk transfer failed",
                extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "error": str(exc)},
                exc_info=True,
            )
            raise staging_error(statement.staging_name or statement.target, exc) from exc

        logger.debug(
            "Bulk transfer completed",
            extra={**payload, "duration.seconds": f"{time.time() - start_time:.6f}", "rows": str(len(rows))},
        )

    def get_connection_info(self) -> Dict[str, Any]:
        """Get connection information for debugging/logging."""
        return self._connection_info.copy()

    def close(self) -> None:
        """Release the connection. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        try:
            self._connection.close()
        finally:
            if self._engine is not None:
                self._engine.dispose()
        logger.info("SQL connection closed", extra={"db.platform": self._connection_info.get("platform", "mssql")})
