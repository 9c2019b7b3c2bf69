# storage - Interchangeable persistence backends
from storage.base import Filters, Record, Storage, StorageTransaction
from storage.memory import MemoryStorage


def build_storage(settings) -> Storage:
    """Pick the backend for this process: relational in production, in-memory otherwise."""
    if settings.resolved_backend == "sql":
        from storage.sql import SqlStorage

        return SqlStorage(settings)
    return MemoryStorage()


__all__ = [
    "Filters",
    "MemoryStorage",
    "Record",
    "Storage",
    "StorageTransaction",
    "build_storage",
]
