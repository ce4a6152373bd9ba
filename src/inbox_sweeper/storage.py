"""SQLite-backed key-value storage for presets, run state and the deletion log."""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

from inbox_sweeper import constants

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class Storage:
    """Persistent key-value store. Values are JSON-serialisable structures."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path or constants.STORAGE_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Shared between the sync worker and the state poller.
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.executescript(_CREATE_TABLES_SQL)

    # --- public API ---

    def get(self, key: str, default=None):
        with self._lock:
            row = self._conn.execute(
                "SELECT value_json FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        return json.loads(row["value_json"])

    def set(self, key: str, value) -> None:
        payload = json.dumps(value)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO kv_store (key, value_json, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, "
                "updated_at = excluded.updated_at",
                (key, payload),
            )

    def delete(self, key: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    def clear(self) -> None:
        """Drop and recreate all tables."""
        with self._lock:
            self._conn.executescript("DROP TABLE IF EXISTS kv_store;")
            self._conn.executescript(_CREATE_TABLES_SQL)

    def get_info(self) -> dict:
        """Return storage statistics."""
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        with self._lock:
            key_count = self._conn.execute("SELECT COUNT(*) AS c FROM kv_store").fetchone()["c"]
        return {"db_file_size": file_size, "key_count": key_count}

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # --- context manager ---

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
