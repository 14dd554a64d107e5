"""Staging of entity batches into transient server-side tables."""

from sqltable.staging.loader import StagedTable, StagingLoader, StagingTable

__all__ = [
    "StagingTable",
    "StagedTable",
    "StagingLoader",
]
