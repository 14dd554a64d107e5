from .manager import TableManager, UpsertResult

__all__ = [
    "TableManager",
    "UpsertResult",
]
