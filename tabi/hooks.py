"""Data-access entry points for trips, days and itinerary items.

Each hook owns the in-memory list of records a screen displays. Writes go
straight to the server while online. While offline the hook applies the
change to its list immediately, records it as tentative and queues an
equivalent mutation; the tentative state is reconciled on the next
successful :meth:`refresh`, or rolled back if the mutation could not be
queued. Reads paint from the snapshot cache, with pending edits laid back
on top, before the server answers.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from tabi import models
from tabi.connectivity import ConnectivityObserver
from tabi.local_cache import CacheStoreError, LocalCacheStore, days_key, items_key, trips_key
from tabi.mutations import (
    DeleteMutation,
    InsertMutation,
    Mutation,
    ReorderMutation,
    UpdateMutation,
    reorder_positions,
)
from tabi.offline_queue import MutationQueueStore
from tabi.remote_store import RemoteStore, RemoteStoreError, format_error_message

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
RecordsListener = Callable[[List[Record]], None]


def new_local_id() -> str:
    return f"{models.LOCAL_ID_PREFIX}{uuid.uuid4()}"


def _pick_fields(updates: Mapping[str, Any], allowed: Iterable[str]) -> Record:
    allowed_set = set(allowed)
    unknown = sorted(key for key in updates if key not in allowed_set)
    if unknown:
        raise ValueError(f"Unsupported field(s): {', '.join(unknown)}")
    return dict(updates)


RecordsTransform = Callable[[List[Record]], List[Record]]


def _replaced(records: List[Record], record_id: str, fields: Mapping[str, Any]) -> List[Record]:
    return [{**record, **fields} if record.get("id") == record_id else dict(record) for record in records]


def _without(records: List[Record], record_id: str) -> List[Record]:
    return [dict(record) for record in records if record.get("id") != record_id]


def _reordered(records: List[Record], positions: Sequence[Tuple[str, int]]) -> List[Record]:
    by_id = {record.get("id"): record for record in records}
    return [
        {**by_id.get(record_id, {"id": record_id}), "sort_order": sort_order}
        for record_id, sort_order in positions
    ]


@dataclass(eq=False)
class TentativeChange:
    """An optimistic edit awaiting confirmation from the server.

    ``apply`` rebuilds the edit over any list of records, so pending edits can
    be laid over a cached snapshot again.
    """

    description: str
    previous: List[Record]
    apply: RecordsTransform


class _RecordsHook:
    table: str = ""
    order_key: str = "sort_order"

    def __init__(
        self,
        remote: RemoteStore,
        queue: MutationQueueStore,
        cache: LocalCacheStore,
        connectivity: ConnectivityObserver,
    ) -> None:
        self._remote = remote
        self._queue = queue
        self._cache = cache
        self._connectivity = connectivity
        self._lock = threading.RLock()
        self._records: List[Record] = []
        self._tentative: List[TentativeChange] = []
        self._listeners: List[RecordsListener] = []
        self.loading = False
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------
    @property
    def records(self) -> List[Record]:
        with self._lock:
            return [dict(record) for record in self._records]

    @property
    def pending_changes(self) -> List[str]:
        with self._lock:
            return [change.description for change in self._tentative]

    def find(self, record_id: str) -> Optional[Record]:
        with self._lock:
            for record in self._records:
                if record.get("id") == record_id:
                    return dict(record)
        return None

    def add_listener(self, listener: RecordsListener) -> None:
        if not callable(listener):
            raise TypeError("listener must be callable")
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: RecordsListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def cache_key(self) -> Optional[str]:
        raise NotImplementedError

    def fetch(self) -> List[Record]:
        raise NotImplementedError

    def refresh(self) -> List[Record]:
        """Paint from the cache, then replace state with the server's rows."""

        key = self.cache_key()
        if key is None:
            self._set_records([])
            return []

        self.loading = True
        try:
            cached = self._cache.read(key)
        except CacheStoreError:
            logger.warning("Cached snapshot %s could not be read", key, exc_info=True)
            cached = None
        if cached is not None:
            self._set_records(self._with_tentative(cached))
            self.loading = False

        try:
            fresh = self.fetch()
        except RemoteStoreError as exc:
            self.error = format_error_message(exc)
            logger.warning("Fetching %s failed: %s", self.table, self.error)
            self.loading = False
            return self.records

        self.error = None
        with self._lock:
            self._tentative.clear()
        self._set_records(fresh)
        self._cache.write(key, fresh)
        self.loading = False
        return self.records

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------
    def _is_online(self) -> bool:
        return self._connectivity.is_online()

    def _sorted(self, records: List[Record]) -> List[Record]:
        key = self.order_key
        return sorted(records, key=lambda record: (record.get(key) is None, record.get(key) or 0))

    def _set_records(self, records: Iterable[Mapping[str, Any]]) -> None:
        with self._lock:
            self._records = [dict(record) for record in records]
            snapshot = [dict(record) for record in self._records]
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Records listener raised an exception")

    def _with_tentative(self, records: List[Record]) -> List[Record]:
        with self._lock:
            changes = list(self._tentative)
        rows = [dict(record) for record in records]
        for change in changes:
            rows = change.apply(rows)
        return rows

    def _apply_tentative(self, description: str, apply: RecordsTransform) -> TentativeChange:
        with self._lock:
            previous = [dict(record) for record in self._records]
            change = TentativeChange(description=description, previous=previous, apply=apply)
            self._tentative.append(change)
        self._set_records(apply(previous))
        return change

    def _rollback(self, change: TentativeChange) -> None:
        with self._lock:
            if change in self._tentative:
                self._tentative.remove(change)
        self._set_records(change.previous)

    def _warn_if_placeholder(self, record_id: str) -> None:
        if models.is_local_id(record_id):
            logger.warning(
                "Queued change targets %s, which was created offline; the server does not know this id",
                record_id,
            )

    def _enqueue_optimistic(self, description: str, apply: RecordsTransform, mutation: Mutation) -> None:
        change = self._apply_tentative(description, apply)
        try:
            self._queue.enqueue(mutation)
        except Exception:
            logger.error("Offline change '%s' could not be saved; reverting", description)
            self._rollback(change)
            raise

    def _replace_record(self, record_id: str, fields: Mapping[str, Any]) -> List[Record]:
        with self._lock:
            return _replaced(self._records, record_id, fields)

    def _without_record(self, record_id: str) -> List[Record]:
        with self._lock:
            return _without(self._records, record_id)

    def _update(self, record_id: str, fields: Record) -> None:
        if not fields:
            return
        if not self._is_online():
            self._warn_if_placeholder(record_id)
            self._enqueue_optimistic(
                f"update {self.table} {record_id}",
                lambda records: _replaced(records, record_id, fields),
                UpdateMutation(table=self.table, record_id=record_id, fields=fields),
            )
            return
        self._remote.update(self.table, record_id, fields)
        self._set_records(self._replace_record(record_id, fields))

    def _delete(self, record_id: str) -> None:
        if not self._is_online():
            self._warn_if_placeholder(record_id)
            self._enqueue_optimistic(
                f"delete {self.table} {record_id}",
                lambda records: _without(records, record_id),
                DeleteMutation(table=self.table, record_id=record_id),
            )
            return
        self._remote.delete(self.table, record_id)
        self._set_records(self._without_record(record_id))

    def _create(self, payload: Record) -> Optional[Record]:
        """Insert ``payload``. Returns the stored row, or the placeholder offline."""

        if not self._is_online():
            placeholder = {**payload, "id": new_local_id()}
            self._enqueue_optimistic(
                f"insert {self.table}",
                lambda records: self._sorted([*records, dict(placeholder)]),
                InsertMutation(table=self.table, record=dict(payload)),
            )
            return dict(placeholder)

        created = self._remote.insert(self.table, payload)
        with self._lock:
            records = self._sorted([*self._records, created])
        self._set_records(records)
        return created


class TripsHook(_RecordsHook):
    table = models.TRIPS_TABLE
    order_key = "start_date"

    def __init__(self, *args: Any, user_id: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.user_id = user_id

    def cache_key(self) -> Optional[str]:
        return trips_key(self.user_id) if self.user_id else None

    def fetch(self) -> List[Record]:
        return self._remote.select(self.table, order=("start_date.asc",))

    def create(
        self,
        name: str,
        start_date: str,
        end_date: str,
        *,
        destination: Optional[str] = None,
        timezone: Optional[str] = None,
        cover_emoji: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Optional[Record]:
        if not self.user_id:
            return None
        payload: Record = {
            "name": name,
            "start_date": start_date,
            "end_date": end_date,
            "timezone": timezone or models.DEFAULT_TIMEZONE,
            "created_by": self.user_id,
        }
        for key, value in (("destination", destination), ("cover_emoji", cover_emoji), ("currency", currency)):
            if value is not None:
                payload[key] = value
        return self._create(payload)

    def update(self, trip_id: str, **updates: Any) -> None:
        self._update(trip_id, _pick_fields(updates, models.TRIP_UPDATABLE_FIELDS))

    def delete(self, trip_id: str) -> None:
        self._delete(trip_id)


class TripDaysHook(_RecordsHook):
    table = models.DAYS_TABLE
    order_key = "date"

    def __init__(self, *args: Any, trip_id: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.trip_id = trip_id

    def cache_key(self) -> Optional[str]:
        return days_key(self.trip_id) if self.trip_id else None

    def fetch(self) -> List[Record]:
        return self._remote.select(
            self.table, filters={"trip_id": self.trip_id}, order=("date.asc",)
        )

    def create(self, date: str, *, title: Optional[str] = None, notes: Optional[str] = None) -> Optional[Record]:
        if not self.trip_id:
            return None
        with self._lock:
            sort_order = len(self._records)
        payload: Record = {"trip_id": self.trip_id, "date": date, "sort_order": sort_order}
        if title is not None:
            payload["title"] = title
        if notes is not None:
            payload["notes"] = notes
        return self._create(payload)

    def update(self, day_id: str, **updates: Any) -> None:
        self._update(day_id, _pick_fields(updates, models.DAY_UPDATABLE_FIELDS))

    def delete(self, day_id: str) -> None:
        self._delete(day_id)


class ItemsHook(_RecordsHook):
    table = models.ITEMS_TABLE
    order_key = "sort_order"

    def __init__(self, *args: Any, day_id: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.day_id = day_id

    def cache_key(self) -> Optional[str]:
        return items_key(self.day_id) if self.day_id else None

    def fetch(self) -> List[Record]:
        return self._remote.select(
            self.table,
            filters={"day_id": self.day_id},
            order=("sort_order.asc", "start_time.asc.nullslast"),
        )

    def next_sort_order(self) -> int:
        with self._lock:
            orders = [int(record.get("sort_order") or 0) for record in self._records]
        return max(orders) + 1 if orders else 0

    def create(self, **fields: Any) -> Optional[Record]:
        if not self.day_id:
            return None
        _pick_fields(fields, models.ITEM_UPDATABLE_FIELDS)
        payload: Record = {
            "day_id": self.day_id,
            "title": fields.get("title") or models.DEFAULT_ITEM_TITLE,
            "category": models.validate_category(fields.get("category") or models.DEFAULT_CATEGORY),
            "status": models.validate_status(fields.get("status") or models.DEFAULT_STATUS),
            "sort_order": fields["sort_order"] if fields.get("sort_order") is not None else self.next_sort_order(),
            "currency": fields.get("currency") or models.DEFAULT_CURRENCY,
        }
        for key, value in fields.items():
            if key not in payload and value is not None:
                payload[key] = value
        return self._create(payload)

    def update(self, item_id: str, **updates: Any) -> None:
        fields = _pick_fields(updates, models.ITEM_UPDATABLE_FIELDS)
        if "category" in fields:
            models.validate_category(fields["category"])
        if "status" in fields:
            models.validate_status(fields["status"])
        self._update(item_id, fields)

    def delete(self, item_id: str) -> None:
        self._delete(item_id)

    def move_to_day(self, item_id: str, target_day_id: str, sort_order: int) -> None:
        """Move an item to another day; it disappears from this hook's list."""

        fields = {"day_id": target_day_id, "sort_order": sort_order}
        if not self._is_online():
            self._warn_if_placeholder(item_id)
            self._enqueue_optimistic(
                f"move {self.table} {item_id}",
                lambda records: _without(records, item_id),
                UpdateMutation(table=self.table, record_id=item_id, fields=fields),
            )
            return
        self._remote.update(self.table, item_id, fields)
        self._set_records(self._without_record(item_id))

    def reorder(self, ordered: Sequence[Any]) -> None:
        """Persist a new order given item records or ids in display order.

        The new order is shown before anything is persisted.
        """

        ordered_ids = [entry["id"] if isinstance(entry, Mapping) else str(entry) for entry in ordered]
        positions = reorder_positions(ordered_ids)
        description = f"reorder {self.table}"
        mutation = ReorderMutation(table=self.table, positions=positions)

        if not self._is_online():
            self._enqueue_optimistic(description, lambda records: _reordered(records, positions), mutation)
            return

        change = self._apply_tentative(description, lambda records: _reordered(records, positions))
        try:
            for record_id, sort_order in positions:
                self._remote.update(self.table, record_id, {"sort_order": sort_order})
        except RemoteStoreError:
            logger.warning("Reorder of %d items failed; restoring previous order", len(positions))
            self._rollback(change)
            raise
        with self._lock:
            if change in self._tentative:
                self._tentative.remove(change)


__all__ = [
    "ItemsHook",
    "TentativeChange",
    "TripDaysHook",
    "TripsHook",
    "new_local_id",
]
