from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest

from db import LocalDatabase
from tabi.mutations import DeleteMutation, InsertMutation, MutationType, ReorderMutation, UpdateMutation
from tabi.offline_queue import MutationQueueStore, QueuePersistenceError


def test_list_all_returns_entries_in_enqueue_order(queue: MutationQueueStore) -> None:
    queue.enqueue(InsertMutation(table="itinerary_items", record={"title": "Lunch"}))
    queue.enqueue(UpdateMutation(table="trips", record_id="trip-1", fields={"name": "Kyoto"}))
    queue.enqueue(DeleteMutation(table="itinerary_items", record_id="item-9"))

    entries = queue.list_all()

    assert [entry.type for entry in entries] == [
        MutationType.INSERT,
        MutationType.UPDATE,
        MutationType.DELETE,
    ]
    assert [entry.table for entry in entries] == ["itinerary_items", "trips", "itinerary_items"]
    assert len({entry.id for entry in entries}) == 3
    assert entries[1].mutation == UpdateMutation(table="trips", record_id="trip-1", fields={"name": "Kyoto"})


def test_enqueue_assigns_id_and_timestamp(database: LocalDatabase) -> None:
    ids = iter(["first", "second"])
    store = MutationQueueStore(database, id_factory=lambda: next(ids), clock=lambda: 1700000000000)

    store.enqueue(DeleteMutation(table="trips", record_id="t1"))
    store.enqueue(DeleteMutation(table="trips", record_id="t2"))

    entries = store.list_all()
    assert [entry.id for entry in entries] == ["first", "second"]
    assert all(entry.timestamp == 1700000000000 for entry in entries)
    assert entries[0].to_record() == {
        "id": "first",
        "type": "delete",
        "table": "trips",
        "payload": {"id": "t1"},
        "timestamp": 1700000000000,
    }


def test_queue_survives_a_new_store_instance(tmp_path: Path) -> None:
    path = tmp_path / "restart.db"
    MutationQueueStore(LocalDatabase(path)).enqueue(
        ReorderMutation(table="itinerary_items", positions=(("a", 0), ("b", 1)))
    )

    reopened = MutationQueueStore(LocalDatabase(path)).list_all()

    assert len(reopened) == 1
    assert reopened[0].mutation.payload() == {
        "items": [{"id": "a", "sort_order": 0}, {"id": "b", "sort_order": 1}]
    }


def test_remove_is_idempotent(queue: MutationQueueStore) -> None:
    queue.enqueue(DeleteMutation(table="trips", record_id="t1"))
    queue.enqueue(DeleteMutation(table="trips", record_id="t2"))
    first = queue.list_all()[0]

    queue.remove(first.id)
    after_first = queue.list_all()
    queue.remove(first.id)
    queue.remove("never-queued")

    assert queue.list_all() == after_first
    assert [entry.mutation.record_id for entry in after_first] == ["t2"]


def test_clear_empties_queue(queue: MutationQueueStore) -> None:
    for index in range(3):
        queue.enqueue(DeleteMutation(table="trips", record_id=f"t{index}"))

    assert queue.clear() == 3
    assert queue.list_all() == []
    assert queue.count() == 0
    assert queue.clear() == 0


def test_enqueue_failure_is_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied", encoding="utf-8")
    store = MutationQueueStore(LocalDatabase(blocker / "tabi.db"))

    with pytest.raises(QueuePersistenceError):
        store.enqueue(DeleteMutation(table="trips", record_id="t1"))


def test_unserialisable_payload_is_rejected(queue: MutationQueueStore) -> None:
    with pytest.raises(QueuePersistenceError):
        queue.enqueue(InsertMutation(table="trips", record={"when": object()}))
    assert queue.count() == 0


def test_concurrent_enqueue_keeps_every_entry(queue: MutationQueueStore) -> None:
    def worker(prefix: str) -> None:
        for index in range(20):
            queue.enqueue(DeleteMutation(table="trips", record_id=f"{prefix}-{index}"))

    threads = [threading.Thread(target=worker, args=(f"w{n}",)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    entries = queue.list_all()
    assert len(entries) == 80
    assert len({entry.id for entry in entries}) == 80
    for prefix in ("w0", "w1", "w2", "w3"):
        own = [e.mutation.record_id for e in entries if e.mutation.record_id.startswith(prefix + "-")]
        assert own == [f"{prefix}-{index}" for index in range(20)]


def test_unreadable_rows_are_skipped(database: LocalDatabase, queue: MutationQueueStore) -> None:
    queue.enqueue(DeleteMutation(table="trips", record_id="t1"))
    conn = sqlite3.connect(database.path)
    try:
        conn.execute(
            "INSERT INTO mutation_queue (id, type, table_name, payload, timestamp) VALUES (?, ?, ?, ?, ?)",
            ("bad", "upsert", "trips", "{}", 0),
        )
        conn.commit()
    finally:
        conn.close()

    entries = queue.list_all()

    assert [entry.mutation.record_id for entry in entries] == ["t1"]
    assert queue.count() == 2

    unreadable = queue.list_unreadable()
    assert [(entry.id, entry.type, entry.table) for entry in unreadable] == [("bad", "upsert", "trips")]
    assert len(entries) + len(unreadable) == queue.count()

    queue.remove("bad")
    assert queue.list_unreadable() == []
    assert queue.count() == 1
