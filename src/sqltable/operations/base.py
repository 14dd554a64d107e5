"""Statement definitions.

A Statement describes one round trip to the engine: rendered SQL text, the
values bound to its named parameters, and the table it targets. Statements
are produced by query builders and executed by the SQL engine; they carry
no connection state of their own.
"""

from typing import Any, Dict, Optional

from pydantic import Field

from sqltable.constants.sql import QueryType
from sqltable.types.base import SQLTableBaseModel


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class Statement(SQLTableBaseModel):
    """A rendered SQL statement with bound parameters.

    Attributes:
        query_type: The kind of statement
        sql: Statement text. Named parameters use ``:name`` placeholders;
            bulk staging inserts use positional ``?`` markers.
        params: Values bound to the named parameters
        target: Schema-qualified destination table, unquoted
        staging_name: Staging table the statement reads from or manages
    """
    query_type: QueryType
    sql: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    target: str = Field(..., min_length=1)
    staging_name: Optional[str] = Field(default=None)

    def telemetry_fields(self) -> Dict[str, str]:
        """Return flattened telemetry fields describing this statement."""
        payload: Dict[str, str] = {
            "operation.type": str(self.query_type),
            "operation.object": self.target,
        }
        if self.staging_name:
            payload["operation.staging"] = self.staging_name
        if self.params:
            payload["operation.param_count"] = _stringify(len(self.params))
        return payload
