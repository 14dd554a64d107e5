"""Execution layer: the single-connection SQL engine."""

from sqltable.compute.engine import SQLEngine

__all__ = [
    "SQLEngine",
]
