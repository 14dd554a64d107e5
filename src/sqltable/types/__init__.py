"""Type definitions for sqltable.

This module provides the base model and the metadata types used to
describe mapped tables.
"""

from .base import SQLTableBaseModel
from .metadata import (
    # Declaration metadata
    TableMetadata,
    ColumnMetadata,
    # Resolved descriptors
    ColumnDescriptor,
    TableDescriptor,
)

__all__ = [
    # Base model
    'SQLTableBaseModel',
    # Declaration metadata
    'TableMetadata',
    'ColumnMetadata',
    # Resolved descriptors
    'ColumnDescriptor',
    'TableDescriptor',
]
