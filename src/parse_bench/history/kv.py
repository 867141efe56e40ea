"""Key-value backends for locally persisted JSON blobs."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        """Return the stored blob or None."""

    def set(self, key: str, value: str) -> None:
        """Store a blob under `key`, replacing any previous value."""

    def delete(self, key: str) -> None:
        """Remove `key` if present."""


class InMemoryKeyValueStore:
    """Process-local store used for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteKeyValueStore:
    """Single-table SQLite store that survives process restarts."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            conn.commit()

    def get(self, key: str) -> str | None:
        with sqlite3.connect(self.path) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                "INSERT INTO kv(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
