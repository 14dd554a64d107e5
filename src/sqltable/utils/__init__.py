"""Utility functions and helpers for sqltable."""

from sqltable.utils.decorators import traced

__all__ = [
    "traced",
]
