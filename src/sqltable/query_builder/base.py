import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

from sqltable.common.exceptions import missing_key_error
from sqltable.constants.sql import (
    DESTINATION_ALIAS,
    KEY_PARAM_PREFIX,
    STAGING_ALIAS,
)
from sqltable.operations import Statement
from sqltable.types.metadata import TableDescriptor, validate_identifier


class KeyPredicate(NamedTuple):
    """Primary key comparison with its bound values."""
    sql: str
    params: Dict[str, Any]


class BaseQueryBuilder(ABC):
    """Base interface for statement builders with SQL injection protection.

    Query builders render statements from table descriptors. They do NOT
    execute anything; that belongs to the SQL engine.

    Security Principles:
        1. **Input Validation**: Identifiers are validated before they are quoted
        2. **Parameter Binding**: Values never appear in statement text; they
           travel as bound parameters
        3. **Length Limits**: Identifiers are limited to 128 characters
        4. **Filter Screening**: Raw filter predicates are screened for
           statement-chaining patterns
    """

    _DANGEROUS_FILTER_PATTERNS = [
        r';\s*DROP\s+TABLE',
        r';\s*DROP\s+DATABASE',
        r';\s*DELETE\s+FROM',
        r';\s*TRUNCATE',
        r';\s*INSERT\s+INTO',
        r';\s*UPDATE\s',
        r'EXEC\s*\(',
        r'EXECUTE\s+IMMEDIATE',
        r'xp_cmdshell',
    ]

    @abstractmethod
    def build_select(
        self,
        descriptor: TableDescriptor,
        filter: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> Statement:
        """Build a SELECT of every mapped column, optionally filtered.

        Args:
            descriptor: Table to read
            filter: Raw predicate appended as the WHERE clause. Values
                should be passed as ``:name`` placeholders.
            params: Values bound to the filter's placeholders
            order_by: Column names to order by

        Returns:
            SELECT statement
        """
        pass

    @abstractmethod
    def build_exists(self, descriptor: TableDescriptor, entity: Any) -> Statement:
        """Build a statement returning a row iff the entity's key exists.

        Raises:
            MissingKeyError: If a primary key value is None
        """
        pass

    @abstractmethod
    def build_create_staging(self, descriptor: TableDescriptor) -> Statement:
        """Build the statement creating an empty staging table shaped like the destination."""
        pass

    @abstractmethod
    def build_staging_insert(self, descriptor: TableDescriptor) -> Statement:
        """Build the positional INSERT used to bulk-load the staging table."""
        pass

    @abstractmethod
    def build_insert_from_staging(
        self,
        descriptor: TableDescriptor,
        drop_staging: bool = True,
        missing_only: bool = False,
    ) -> Statement:
        """Build a set-based INSERT from the staging table into the destination.

        With ``missing_only`` the staged rows whose key already exists in the
        destination are skipped.
        """
        pass

    @abstractmethod
    def build_update_via_join(self, descriptor: TableDescriptor, drop_staging: bool = True) -> Statement:
        """Build a set-based UPDATE of destination rows joined to the staging table."""
        pass

    @abstractmethod
    def build_delete_via_join(self, descriptor: TableDescriptor, drop_staging: bool = True) -> Statement:
        """Build a set-based DELETE of destination rows joined to the staging table."""
        pass

    @abstractmethod
    def build_classify(self, descriptor: TableDescriptor) -> Statement:
        """Build a semi-join counting the staged rows whose key is already in the destination."""
        pass

    @abstractmethod
    def build_drop_staging(self, descriptor: TableDescriptor) -> Statement:
        """Build an idempotent drop of the staging table."""
        pass

    def build_key_predicate(self, descriptor: TableDescriptor, entity: Any) -> KeyPredicate:
        """Build the conjunction of primary key equality comparisons.

        Args:
            descriptor: Table the entity maps to
            entity: Entity providing the key values

        Returns:
            KeyPredicate with ``:pk_<n>`` placeholders and their values

        Raises:
            MissingKeyError: If a primary key value is None
        """
        clauses: List[str] = []
        params: Dict[str, Any] = {}
        for index, column in enumerate(descriptor.key_columns):
            value = column.get(entity)
            if value is None:
                raise missing_key_error(entity, column.name)

            param_name = f"{KEY_PARAM_PREFIX}{index}"
            clauses.append(f"{self.quote_identifier(column.name, 'column')} = :{param_name}")
            params[param_name] = value

        return KeyPredicate(" AND ".join(clauses), params)

    def fully_qualified_name(self, schema: str, object_name: str) -> str:
        """Get the quoted, schema-qualified name of a table."""
        return f"{self.quote_identifier(schema, 'schema')}.{self.quote_identifier(object_name, 'table')}"

    def table_name(self, descriptor: TableDescriptor) -> str:
        return self.fully_qualified_name(descriptor.schema_name, descriptor.table_name)

    def staging_name(self, descriptor: TableDescriptor) -> str:
        """Get the unquoted staging table name of the destination."""
        return descriptor.staging_name

    def quote_identifier(self, identifier: str, identifier_type: str = "identifier") -> str:
        """Quote an identifier after validating it.

        Raises:
            ValueError: If the identifier is empty, too long or contains
                disallowed characters
        """
        self._validate_identifier(identifier, identifier_type)
        return f"[{identifier.replace(']', ']]')}]"

    def format_column_list(self, columns: Sequence[str], alias: Optional[str] = None) -> str:
        """Format a comma-separated list of quoted, optionally aliased columns."""
        prefix = f"{alias}." if alias else ""
        return ", ".join(f"{prefix}{self.quote_identifier(col, 'column')}" for col in columns)

    def format_join_condition(self, descriptor: TableDescriptor) -> str:
        """Match destination and staging rows on every primary key column."""
        return " AND ".join(
            f"{DESTINATION_ALIAS}.{self.quote_identifier(col.name, 'column')} = "
            f"{STAGING_ALIAS}.{self.quote_identifier(col.name, 'column')}"
            for col in descriptor.key_columns
        )

    def format_set_clause(self, descriptor: TableDescriptor) -> str:
        """Assign every mapped column, key columns included, from the staging row."""
        return ", ".join(
            f"{DESTINATION_ALIAS}.{self.quote_identifier(col.name, 'column')} = "
            f"{STAGING_ALIAS}.{self.quote_identifier(col.name, 'column')}"
            for col in descriptor.columns
        )

    def _validate_identifier(self, identifier: str, identifier_type: str = "identifier") -> None:
        """Validate an identifier for SQL injection protection.

        Args:
            identifier: The identifier to validate
            identifier_type: Type of identifier for error messages

        Raises:
            ValueError: If identifier is invalid
        """
        validate_identifier(identifier, identifier_type)

    def _validate_sql_expression(self, expression: str, expression_type: str = "expression") -> None:
        """Validate a raw SQL expression for injection.

        Less strict than identifier validation since expressions can contain
        SQL keywords, but still checks for dangerous patterns.

        Raises:
            ValueError: If expression contains dangerous patterns
        """
        if not expression:
            return

        expression_upper = expression.upper()
        for pattern in self._DANGEROUS_FILTER_PATTERNS:
            if re.search(pattern, expression_upper, re.IGNORECASE):
                raise ValueError(f"Potentially dangerous {expression_type}: {expression}")
