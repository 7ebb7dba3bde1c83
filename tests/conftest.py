from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import pytest

from db import LocalDatabase
from tabi.connectivity import ConnectivityObserver
from tabi.local_cache import LocalCacheStore
from tabi.offline_queue import MutationQueueStore
from tabi.remote_store import RecordNotFoundError, RemoteStoreError


class FakeRemote:
    """In-memory stand-in for :class:`tabi.remote_store.RemoteStore`."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.failures: Set[Tuple[str, str, Optional[str]]] = set()
        self.fail_all = False
        self.online = True
        self._ids = itertools.count(1)

    # Test helpers -----------------------------------------------------
    def seed(self, table: str, *rows: Mapping[str, Any]) -> None:
        bucket = self.tables.setdefault(table, {})
        for row in rows:
            bucket[str(row["id"])] = dict(row)

    def fail(self, operation: str, table: str, record_id: Optional[str] = None) -> None:
        self.failures.add((operation, table, record_id))

    def _check(self, operation: str, table: str, record_id: Optional[str]) -> None:
        self.calls.append((operation, table, record_id))
        if self.fail_all or (operation, table, record_id) in self.failures:
            raise RemoteStoreError(f"{operation} on {table} rejected", code="PGRST000")

    # RemoteStore surface ----------------------------------------------
    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        self._check("insert", table, None)
        row = {**record, "id": f"srv-{next(self._ids)}"}
        self.tables.setdefault(table, {})[row["id"]] = row
        return dict(row)

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> None:
        self._check("update", table, record_id)
        row = self.tables.get(table, {}).get(record_id)
        if row is not None:
            row.update(fields)

    def delete(self, table: str, record_id: str) -> None:
        self._check("delete", table, record_id)
        self.tables.get(table, {}).pop(record_id, None)

    def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order: Sequence[str] = (),
        columns: str = "*",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._check("select", table, None)
        rows = [dict(row) for row in self.tables.get(table, {}).values()]
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                rows = [row for row in rows if row.get(column) in value]
            else:
                rows = [row for row in rows if row.get(column) == value]
        for clause in reversed(list(order)):
            column, _, direction = clause.partition(".")
            rows.sort(
                key=lambda row: (row.get(column) is None, row.get(column) or 0),
                reverse=direction.startswith("desc"),
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    def get(self, table: str, record_id: str) -> Dict[str, Any]:
        row = self.tables.get(table, {}).get(record_id)
        if row is None:
            raise RecordNotFoundError(f"{table} row {record_id} not found", status=404)
        return dict(row)

    def ping(self) -> bool:
        return self.online


@pytest.fixture
def database(tmp_path: Path) -> LocalDatabase:
    return LocalDatabase(tmp_path / "tabi.db")


@pytest.fixture
def queue(database: LocalDatabase) -> MutationQueueStore:
    return MutationQueueStore(database)


@pytest.fixture
def cache(database: LocalDatabase) -> LocalCacheStore:
    return LocalCacheStore(database)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def connectivity() -> ConnectivityObserver:
    return ConnectivityObserver(initial_online=True)
