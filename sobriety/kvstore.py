from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("SOBRIETY_TRACKER_DB") or Path(__file__).resolve().parent.parent / "data.sqlite3")


class KeyValueStore:
    """Async string-keyed, string-valued store."""

    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError


def get_conn(path: Path | None = None) -> sqlite3.Connection:
    db_path = Path(path or DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path: Path | None = None) -> None:
    conn = get_conn(path)
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()


class SqliteKeyValueStore(KeyValueStore):
    """One table, one row per key. Every write is a single committed statement.

    With no explicit ``path`` the module-level ``DB_PATH`` is read on each call,
    so it can be repointed at runtime.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else None
        self._ready_for: Path | None = None

    def _db_path(self) -> Path:
        return self.path or DB_PATH

    def _conn(self) -> sqlite3.Connection:
        db_path = self._db_path()
        if self._ready_for != db_path:
            init_db(db_path)
            self._ready_for = db_path
        return get_conn(db_path)

    def _get(self, key: str) -> str | None:
        conn = self._conn()
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def _set(self, key: str, value: str) -> None:
        conn = self._conn()
        try:
            conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def _remove(self, key: str) -> None:
        conn = self._conn()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"kv_store values must be str, got {type(value).__name__}")
        await asyncio.to_thread(self._set, key, value)
        logger.debug("Stored %s (%d chars)", key, len(value))

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    def dump(self) -> dict[str, str]:
        conn = self._conn()
        try:
            return {row["key"]: row["value"] for row in conn.execute("SELECT key, value FROM kv_store ORDER BY key")}
        finally:
            conn.close()
