"""SQLite storage backend.

Stores payloads in a single SQLite database file using the Python standard
library ``sqlite3`` module.

Classes
-------
- SQLiteBackend  — SQLite-backed snapshot storage
"""
from __future__ import annotations

import sqlite3
from pathlib import Path

from buildmode.storage.base import StorageBackend

_DEFAULT_DB_PATH: Path = Path.home() / ".buildmode" / "snapshots.db"
_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS snapshots (
    key      TEXT PRIMARY KEY,
    payload  TEXT NOT NULL,
    saved_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""
_UPSERT_SQL = """
INSERT INTO snapshots (key, payload, saved_at)
VALUES (?, ?, datetime('now'))
ON CONFLICT(key) DO UPDATE SET
    payload  = excluded.payload,
    saved_at = excluded.saved_at
"""


class SQLiteBackend(StorageBackend):
    """Persists payloads in a local SQLite database.

    Each key occupies one row with the raw payload stored as TEXT.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Defaults to ``~/.buildmode/snapshots.db``.
        The parent directory and table are created on first use.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._db_path: Path = (
            Path(db_path) if db_path is not None else _DEFAULT_DB_PATH
        )

    def _get_connection(self) -> sqlite3.Connection:
        """Open a connection and ensure the table exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        conn.execute(_CREATE_TABLE_SQL)
        conn.commit()
        return conn

    # ------------------------------------------------------------------
    # StorageBackend interface
    # ------------------------------------------------------------------

    def save(self, key: str, payload: str) -> None:
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(_UPSERT_SQL, (key, payload))
        finally:
            conn.close()

    def load(self, key: str) -> str:
        """Return the payload row for ``key``.

        Raises
        ------
        KeyError
            If no row exists for ``key``.
        """
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT payload FROM snapshots WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise KeyError(f"Key {key!r} not found in SQLiteBackend.")
        return str(row["payload"])

    def list(self) -> list[str]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT key FROM snapshots ORDER BY saved_at DESC"
            ).fetchall()
        finally:
            conn.close()
        return [str(row["key"]) for row in rows]

    def delete(self, key: str) -> None:
        conn = self._get_connection()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM snapshots WHERE key = ?", (key,))
        finally:
            conn.close()
        if cursor.rowcount == 0:
            raise KeyError(f"Key {key!r} not found in SQLiteBackend.")

    def exists(self, key: str) -> bool:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT 1 FROM snapshots WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        return row is not None

    def __repr__(self) -> str:
        return f"SQLiteBackend(db_path={str(self._db_path)!r})"
