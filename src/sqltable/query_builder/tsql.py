"""SQL Server (T-SQL) query builder implementation."""

from typing import Any, Mapping, Optional, Sequence

from sqltable.constants.sql import DESTINATION_ALIAS, STAGING_ALIAS, QueryType
from sqltable.operations import Statement
from sqltable.query_builder.base import BaseQueryBuilder
from sqltable.types.metadata import TableDescriptor


class TSQLQueryBuilder(BaseQueryBuilder):
    """Query builder for SQL Server.

    Staging tables are session-scoped temp tables (``#schema_table``),
    created empty from the destination with ``SELECT TOP 0 ... INTO`` so
    their column types match exactly. Set-based statements drop the
    staging table in the same batch.

    Example:
        >>> builder = TSQLQueryBuilder()
        >>> builder.build_update_via_join(descriptor).sql
        'UPDATE t1 SET t1.[Id] = t2.[Id], t1.[Name] = t2.[Name] FROM [dbo].[Person] AS t1 ...'
    """

    def build_select(
        self,
        descriptor: TableDescriptor,
        filter: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> Statement:
        columns = self.format_column_list(descriptor.column_names)
        sql = f"SELECT {columns} FROM {self.table_name(descriptor)}"

        if filter:
            self._validate_sql_expression(filter, "filter")
            sql += f" WHERE ({filter})"

        if order_by:
            unknown = [name for name in order_by if descriptor.column(name) is None]
            if unknown:
                raise ValueError(
                    f"Cannot order {descriptor.qualified_name} by unmapped columns: {', '.join(unknown)}"
                )
            sql += f" ORDER BY {self.format_column_list(order_by)}"

        return Statement(
            query_type=QueryType.SELECT,
            sql=sql,
            params=dict(params or {}),
            target=descriptor.qualified_name,
        )

    def build_exists(self, descriptor: TableDescriptor, entity: Any) -> Statement:
        predicate = self.build_key_predicate(descriptor, entity)
        return Statement(
            query_type=QueryType.EXISTS,
            sql=f"SELECT TOP 1 1 FROM {self.table_name(descriptor)} WHERE {predicate.sql}",
            params=predicate.params,
            target=descriptor.qualified_name,
        )

    def build_create_staging(self, descriptor: TableDescriptor) -> Statement:
        staging = self.staging_name(descriptor)
        columns = self.format_column_list(descriptor.column_names)
        sql = (
            f"{self._drop_if_exists(staging)};\n"
            f"SELECT TOP 0 {columns} INTO {self.quote_identifier(staging, 'staging table')} "
            f"FROM {self.table_name(descriptor)}"
        )
        return self._staging_statement(QueryType.CREATE_STAGING, sql, descriptor)

    def build_staging_insert(self, descriptor: TableDescriptor) -> Statement:
        staging = self.staging_name(descriptor)
        columns = self.format_column_list(descriptor.column_names)
        markers = ", ".join("?" for _ in descriptor.columns)
        sql = f"INSERT INTO {self.quote_identifier(staging, 'staging table')} ({columns}) VALUES ({markers})"
        return self._staging_statement(QueryType.LOAD_STAGING, sql, descriptor)

    def build_insert_from_staging(
        self,
        descriptor: TableDescriptor,
        drop_staging: bool = True,
        missing_only: bool = False,
    ) -> Statement:
        staging = self.staging_name(descriptor)
        columns = self.format_column_list(descriptor.column_names)
        if not missing_only:
            sql = (
                f"INSERT INTO {self.table_name(descriptor)} ({columns}) "
                f"SELECT {columns} FROM {self.quote_identifier(staging, 'staging table')}"
            )
        else:
            sql = (
                f"INSERT INTO {self.table_name(descriptor)} ({columns}) "
                f"SELECT {self.format_column_list(descriptor.column_names, alias=STAGING_ALIAS)} "
                f"FROM {self.quote_identifier(staging, 'staging table')} AS {STAGING_ALIAS} "
                f"WHERE NOT EXISTS ({self._matching_destination_row(descriptor)})"
            )
        return self._staging_statement(QueryType.INSERT, self._with_drop(sql, staging, drop_staging), descriptor)

    def build_update_via_join(self, descriptor: TableDescriptor, drop_staging: bool = True) -> Statement:
        staging = self.staging_name(descriptor)
        sql = (
            f"UPDATE {DESTINATION_ALIAS} SET {self.format_set_clause(descriptor)} "
            f"FROM {self.table_name(descriptor)} AS {DESTINATION_ALIAS} "
            f"INNER JOIN {self.quote_identifier(staging, 'staging table')} AS {STAGING_ALIAS} "
            f"ON {self.format_join_condition(descriptor)}"
        )
        return self._staging_statement(QueryType.UPDATE, self._with_drop(sql, staging, drop_staging), descriptor)

    def build_delete_via_join(self, descriptor: TableDescriptor, drop_staging: bool = True) -> Statement:
        staging = self.staging_name(descriptor)
        sql = (
            f"DELETE {DESTINATION_ALIAS} FROM {self.table_name(descriptor)} AS {DESTINATION_ALIAS} "
            f"INNER JOIN {self.quote_identifier(staging, 'staging table')} AS {STAGING_ALIAS} "
            f"ON {self.format_join_condition(descriptor)}"
        )
        return self._staging_statement(QueryType.DELETE, self._with_drop(sql, staging, drop_staging), descriptor)

    def build_classify(self, descriptor: TableDescriptor) -> Statement:
        staging = self.staging_name(descriptor)
        sql = (
            f"SELECT COUNT(*) FROM {self.quote_identifier(staging, 'staging table')} AS {STAGING_ALIAS} "
            f"WHERE EXISTS ({self._matching_destination_row(descriptor)})"
        )
        return self._staging_statement(QueryType.CLASSIFY, sql, descriptor)

    def build_drop_staging(self, descriptor: TableDescriptor) -> Statement:
        sql = self._drop_if_exists(self.staging_name(descriptor))
        return self._staging_statement(QueryType.DROP_STAGING, sql, descriptor)

    def _matching_destination_row(self, descriptor: TableDescriptor) -> str:
        return (
            f"SELECT 1 FROM {self.table_name(descriptor)} AS {DESTINATION_ALIAS} "
            f"WHERE {self.format_join_condition(descriptor)}"
        )

    def _drop_if_exists(self, staging: str) -> str:
        quoted = self.quote_identifier(staging, 'staging table')
        literal = quoted.replace("'", "''")
        return f"IF OBJECT_ID(N'tempdb..{literal}') IS NOT NULL DROP TABLE {quoted}"

    def _with_drop(self, sql: str, staging: str, drop_staging: bool) -> str:
        if not drop_staging:
            return sql
        return f"{sql};\nDROP TABLE {self.quote_identifier(staging, 'staging table')}"

    def _staging_statement(self, query_type: QueryType, sql: str, descriptor: TableDescriptor) -> Statement:
        return Statement(
            query_type=query_type,
            sql=sql,
            target=descriptor.qualified_name,
            staging_name=self.staging_name(descriptor),
        )
