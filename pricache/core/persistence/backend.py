from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from ..errors import StorageError, StorageQuotaExceededError


class StorageBackend(Protocol):
    """Synchronous string-keyed storage the cache layers write through."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def clear(self) -> None: ...


def _record_bytes(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


@dataclass(slots=True)
class MemoryStorageBackend:
    """In-memory storage for development and tests.

    With ``quota_bytes`` set, writes that would push the summed key and value
    sizes past the quota raise ``StorageQuotaExceededError``.
    """

    quota_bytes: int | None = None
    _entries: dict[str, str] = field(default_factory=dict)
    _used_bytes: int = 0

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        new_size = _record_bytes(key, value)
        old = self._entries.get(key)
        old_size = _record_bytes(key, old) if old is not None else 0
        projected = self._used_bytes - old_size + new_size
        if self.quota_bytes is not None and projected > self.quota_bytes:
            raise StorageQuotaExceededError(
                f"Writing {key!r} needs {projected} bytes, quota is {self.quota_bytes}"
            )
        self._entries[key] = value
        self._used_bytes = projected

    def delete(self, key: str) -> None:
        old = self._entries.pop(key, None)
        if old is not None:
            self._used_bytes -= _record_bytes(key, old)

    def keys(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._used_bytes = 0

    @property
    def used_bytes(self) -> int:
        return self._used_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


@dataclass(slots=True)
class SQLiteStorageBackend:
    """SQLite-backed storage with WAL support, for caches that outlive the process."""

    db_path: Path
    table: str = "cache_store"
    wal_mode: bool = True
    synchronous_mode: str = "NORMAL"
    _conn: sqlite3.Connection | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        if not self.table.isidentifier():
            raise ValueError(f"Invalid table name: {self.table!r}")

    def open(self) -> None:
        if self._conn is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._execute(
            "PRAGMA journal_mode=WAL" if self.wal_mode else "PRAGMA journal_mode=DELETE"
        )
        self._execute(f"PRAGMA synchronous={self.synchronous_mode}")
        self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        logger.debug(f"Opened SQLite storage at {self.db_path}")

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    def __enter__(self) -> SQLiteStorageBackend:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, key: str) -> str | None:
        row = self._fetch_one(f"SELECT value FROM {self.table} WHERE key=?", (key,))
        if row is None:
            return None
        return str(row[0])

    def set(self, key: str, value: str) -> None:
        self._execute(
            f"INSERT OR REPLACE INTO {self.table} (key, value) VALUES (?, ?)",
            (key, value),
        )

    def delete(self, key: str) -> None:
        self._execute(f"DELETE FROM {self.table} WHERE key=?", (key,))

    def keys(self) -> list[str]:
        return [row[0] for row in self._fetch_all(f"SELECT key FROM {self.table}")]

    def clear(self) -> None:
        self._execute(f"DELETE FROM {self.table}")

    def iter_items(self) -> Iterator[tuple[str, str]]:
        for key, value in self._fetch_all(f"SELECT key, value FROM {self.table}"):
            yield key, value

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("SQLite backend not opened")
        return self._conn

    def _execute(self, query: str, params: tuple[Any, ...] = ()) -> None:
        conn = self._connection()
        try:
            cursor = conn.cursor()
            cursor.execute(query, params)
            conn.commit()
            cursor.close()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite write failed: {e}") from e

    def _fetch_one(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> tuple[Any, ...] | None:
        conn = self._connection()
        try:
            cursor = conn.cursor()
            cursor.execute(query, params)
            row = cursor.fetchone()
            cursor.close()
            return row
        except sqlite3.Error as e:
            raise StorageError(f"SQLite read failed: {e}") from e

    def _fetch_all(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> list[tuple[Any, ...]]:
        conn = self._connection()
        try:
            cursor = conn.cursor()
            cursor.execute(query, params)
            rows = cursor.fetchall()
            cursor.close()
            return rows
        except sqlite3.Error as e:
            raise StorageError(f"SQLite read failed: {e}") from e
