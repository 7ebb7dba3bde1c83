"""Snapshot cache mirroring the last records fetched from the server."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from typing import Any, List, Optional

from db import LocalDatabase, LocalStoreError, utc_now_iso

logger = logging.getLogger(__name__)

CACHE_PREFIX = "tabi_"


class CacheStoreError(LocalStoreError):
    """Raised when a snapshot cannot be persisted or loaded."""


def days_key(trip_id: str) -> str:
    return f"days_{trip_id}"


def items_key(day_id: str) -> str:
    return f"items_{day_id}"


def trips_key(user_id: str) -> str:
    return f"trips_{user_id}"


class LocalCacheStore:
    """Persist full snapshots keyed by ``"<kind>_<entityId>"``.

    Writes always replace the stored value wholesale; there is no merge, TTL
    or partial invalidation. The most recent ``write`` wins.
    """

    def __init__(self, database: LocalDatabase) -> None:
        self._database = database
        self._lock = threading.Lock()

    def write(self, key: str, snapshot: List[Any]) -> None:
        try:
            serialised = json.dumps(snapshot, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise CacheStoreError(f"Snapshot for {key!r} is not serialisable: {exc}") from exc
        try:
            with self._lock, self._database.transaction() as conn:
                conn.execute(
                    "INSERT INTO cache_snapshots (key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "updated_at = excluded.updated_at",
                    (CACHE_PREFIX + key, serialised, utc_now_iso()),
                )
        except (sqlite3.Error, LocalStoreError) as exc:
            raise CacheStoreError(f"Failed to cache snapshot {key!r}: {exc}") from exc

    def read(self, key: str) -> Optional[List[Any]]:
        try:
            with self._lock:
                conn = self._database.get_connection()
                try:
                    row = conn.execute(
                        "SELECT value FROM cache_snapshots WHERE key = ?",
                        (CACHE_PREFIX + key,),
                    ).fetchone()
                finally:
                    conn.close()
        except (sqlite3.Error, LocalStoreError) as exc:
            raise CacheStoreError(f"Failed to read snapshot {key!r}: {exc}") from exc
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt cached snapshot %s", key)
            return None

    def clear_all(self) -> int:
        """Remove every cached snapshot, returning the number deleted."""

        try:
            with self._lock, self._database.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM cache_snapshots WHERE key LIKE ?",
                    (CACHE_PREFIX + "%",),
                )
                return cursor.rowcount
        except (sqlite3.Error, LocalStoreError) as exc:
            raise CacheStoreError(f"Failed to clear cached snapshots: {exc}") from exc


__all__ = [
    "CacheStoreError",
    "LocalCacheStore",
    "days_key",
    "items_key",
    "trips_key",
]
