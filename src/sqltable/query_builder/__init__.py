"""Query builders rendering statements from table descriptors."""

from sqltable.query_builder.base import BaseQueryBuilder, KeyPredicate
from sqltable.query_builder.tsql import TSQLQueryBuilder

__all__ = [
    "BaseQueryBuilder",
    "KeyPredicate",
    "TSQLQueryBuilder",
]
