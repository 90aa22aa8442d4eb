from __future__ import annotations

import copy
import json
import sqlite3
from pathlib import Path
from typing import Any, Protocol

from chat_core.utils import utc_timestamp


class KeyValueStore(Protocol):
    """Generic load/save store used for session persistence."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store; values are deep-copied to mimic a serialization boundary."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        """Return a copy of the stored value, or None."""
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        """Store a copy of ``value`` under ``key``."""
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        self._data.pop(key, None)


class SQLiteKeyValueStore:
    """SQLite-backed store holding one JSON document per key."""

    def __init__(self, db_path: str | Path) -> None:
        """Initialize storage and ensure the table exists."""
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    def get(self, key: str) -> Any | None:
        """Return the decoded JSON value stored under ``key``."""
        rows = self._fetch_all("SELECT value FROM kv WHERE key = ?", (key,))
        if not rows:
            return None
        return json.loads(rows[0][0])

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` (JSON-encoded) under ``key``."""
        self._execute(
            """INSERT OR REPLACE INTO kv (key, value, updated_at)
               VALUES (?, ?, ?)""",
            (key, json.dumps(value, ensure_ascii=False), utc_timestamp()),
        )

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        self._execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        """Return stored keys ordered by most recent update."""
        rows = self._fetch_all("SELECT key FROM kv ORDER BY updated_at DESC")
        return [row[0] for row in rows]

    def _init_db(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def _fetch_all(self, query: str, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        with sqlite3.connect(self._db_path) as conn:
            cursor = conn.execute(query, params)
            return cursor.fetchall()

    def _execute(self, query: str, params: tuple[Any, ...]) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(query, params)
            conn.commit()
