"""Statement data structures.

Statements describe what the engine should run independent of how it is
executed. They are rendered by query builders and executed by the SQL engine.
"""

from sqltable.operations.base import Statement

__all__ = [
    "Statement",
]
