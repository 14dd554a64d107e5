"""Protocol definitions for sqltable.

Protocols provide type-safe interfaces without requiring inheritance,
following Python's structural subtyping (duck typing with type hints).
"""

from .cascade import CascadeMixin, SupportsCascade

__all__ = [
    "SupportsCascade",
    "CascadeMixin",
]
