from __future__ import annotations

from .backend import MemoryStorageBackend, SQLiteStorageBackend, StorageBackend

__all__ = [
    "StorageBackend",
    "MemoryStorageBackend",
    "SQLiteStorageBackend",
]
