"""SQLite-backed local persistence for Tabi.

The snapshot cache and the offline mutation queue share a single database
file. Each store performs its reads and writes inside one short transaction,
which makes every individual call atomic even when several threads use the
same file.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from tabi import app_paths

logger = logging.getLogger(__name__)

DB_FILENAME = "tabi.db"


def default_database_path() -> Path:
    override = os.environ.get("TABI_DB_PATH")
    if override:
        return Path(override).expanduser().resolve()
    return app_paths.data_path(DB_FILENAME).resolve()


CACHE_COLUMN_DEFINITIONS: Dict[str, str] = {
    "key": "TEXT PRIMARY KEY",
    "value": "TEXT NOT NULL",
    "updated_at": "TEXT NOT NULL",
}

QUEUE_COLUMN_DEFINITIONS: Dict[str, str] = {
    "seq": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "id": "TEXT NOT NULL UNIQUE",
    "type": "TEXT NOT NULL",
    "table_name": "TEXT NOT NULL",
    "payload": "TEXT NOT NULL",
    "timestamp": "INTEGER NOT NULL",
}


class LocalStoreError(RuntimeError):
    """Raised when the local database cannot be read or written."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _ensure_schema(conn: sqlite3.Connection) -> None:
    for table, definitions in (
        ("cache_snapshots", CACHE_COLUMN_DEFINITIONS),
        ("mutation_queue", QUEUE_COLUMN_DEFINITIONS),
    ):
        columns = ",\n        ".join(
            f"{column} {definition}" for column, definition in definitions.items()
        )
        conn.execute(f"CREATE TABLE IF NOT EXISTS {table} (\n        {columns}\n    )")


class LocalDatabase:
    """Own the SQLite file backing the cache and queue stores."""

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self._path = Path(path).resolve() if path is not None else default_database_path()
        self._schema_lock = threading.Lock()
        self._schema_ready = False

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_database(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            if self._path.parent:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._path)
            try:
                _ensure_schema(conn)
                conn.commit()
            finally:
                conn.close()
            self._schema_ready = True
            logger.debug("Local database ready at %s", self._path)

    def get_connection(self) -> sqlite3.Connection:
        try:
            self._ensure_database()
            conn = sqlite3.connect(self._path, timeout=10)
        except (sqlite3.Error, OSError) as exc:
            raise LocalStoreError(f"Local database unavailable: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


__all__ = [
    "DB_FILENAME",
    "LocalDatabase",
    "LocalStoreError",
    "default_database_path",
    "utc_now_iso",
]
