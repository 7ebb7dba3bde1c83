"""Durable FIFO queue of writes made while the server is unreachable."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from db import LocalDatabase, LocalStoreError
from tabi.mutations import Mutation, MutationFormatError, QueuedMutation, mutation_from_payload

logger = logging.getLogger(__name__)


class QueuePersistenceError(LocalStoreError):
    """Raised when a queued mutation could not be stored durably."""


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class UnreadableEntry:
    id: str
    timestamp: int
    type: str
    table: str
    reason: str


def _decode(row: sqlite3.Row) -> QueuedMutation:
    payload = json.loads(row["payload"])
    mutation = mutation_from_payload(row["type"], row["table_name"], payload)
    return QueuedMutation(id=row["id"], timestamp=int(row["timestamp"]), mutation=mutation)


class MutationQueueStore:
    """Persist pending mutations so offline edits survive a restart.

    Entries are kept in insertion order. ``enqueue`` raises
    :class:`QueuePersistenceError` when the write does not reach disk so that
    callers never report an edit as saved when it was lost.
    """

    def __init__(
        self,
        database: LocalDatabase,
        *,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._database = database
        self._lock = threading.Lock()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._clock = clock or _timestamp_ms

    def enqueue(self, mutation: Mutation) -> None:
        entry = QueuedMutation(id=self._id_factory(), timestamp=self._clock(), mutation=mutation)
        try:
            payload = json.dumps(mutation.payload(), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise QueuePersistenceError(f"Mutation payload is not serialisable: {exc}") from exc

        try:
            with self._lock, self._database.transaction() as conn:
                conn.execute(
                    "INSERT INTO mutation_queue (id, type, table_name, payload, timestamp) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (entry.id, entry.type.value, entry.table, payload, entry.timestamp),
                )
        except (sqlite3.Error, LocalStoreError) as exc:
            raise QueuePersistenceError(f"Failed to queue {entry.type.value} on {entry.table}: {exc}") from exc
        logger.info("Queued offline %s on %s (%s)", entry.type.value, entry.table, entry.id)

    def list_all(self) -> List[QueuedMutation]:
        entries: List[QueuedMutation] = []
        for row in self._rows():
            try:
                entries.append(_decode(row))
            except (json.JSONDecodeError, MutationFormatError) as exc:
                # Left in place; see list_unreadable().
                logger.warning("Skipping unreadable queued mutation %s: %s", row["id"], exc)
        return entries

    def list_unreadable(self) -> List[UnreadableEntry]:
        """Return stored rows that can no longer be decoded into a mutation.

        They still count towards :meth:`count` and can be dropped one by one
        with :meth:`remove`.
        """

        unreadable: List[UnreadableEntry] = []
        for row in self._rows():
            try:
                _decode(row)
            except (json.JSONDecodeError, MutationFormatError) as exc:
                unreadable.append(
                    UnreadableEntry(
                        id=row["id"],
                        timestamp=int(row["timestamp"]),
                        type=str(row["type"]),
                        table=str(row["table_name"]),
                        reason=str(exc),
                    )
                )
        return unreadable

    def remove(self, mutation_id: str) -> None:
        try:
            with self._lock, self._database.transaction() as conn:
                conn.execute("DELETE FROM mutation_queue WHERE id = ?", (mutation_id,))
        except (sqlite3.Error, LocalStoreError) as exc:
            raise LocalStoreError(f"Failed to remove queued mutation {mutation_id}: {exc}") from exc

    def clear(self) -> int:
        """Drop every pending mutation, returning how many were discarded."""

        try:
            with self._lock, self._database.transaction() as conn:
                cursor = conn.execute("DELETE FROM mutation_queue")
                removed = cursor.rowcount
        except (sqlite3.Error, LocalStoreError) as exc:
            raise LocalStoreError(f"Failed to clear the mutation queue: {exc}") from exc
        if removed:
            logger.warning("Mutation queue cleared; %d pending change(s) discarded", removed)
        return removed

    def count(self) -> int:
        try:
            with self._lock:
                conn = self._database.get_connection()
                try:
                    row = conn.execute("SELECT COUNT(*) AS total FROM mutation_queue").fetchone()
                finally:
                    conn.close()
        except (sqlite3.Error, LocalStoreError) as exc:
            raise LocalStoreError(f"Failed to count queued mutations: {exc}") from exc
        return int(row["total"])

    def _rows(self) -> List[sqlite3.Row]:
        try:
            with self._lock:
                conn = self._database.get_connection()
                try:
                    return conn.execute(
                        "SELECT id, type, table_name, payload, timestamp "
                        "FROM mutation_queue ORDER BY seq"
                    ).fetchall()
                finally:
                    conn.close()
        except (sqlite3.Error, LocalStoreError) as exc:
            raise LocalStoreError(f"Failed to read the mutation queue: {exc}") from exc


__all__ = ["MutationQueueStore", "QueuePersistenceError", "UnreadableEntry"]
