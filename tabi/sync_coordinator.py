"""Replay queued offline mutations once the server is reachable again."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from tabi.connectivity import ConnectivityObserver
from tabi.mutations import (
    DeleteMutation,
    InsertMutation,
    Mutation,
    ReorderMutation,
    UpdateMutation,
)
from tabi.offline_queue import MutationQueueStore
from tabi.remote_store import RemoteStore, format_error_message

logger = logging.getLogger(__name__)


@dataclass
class DrainSummary:
    flushed: int = 0
    failed: int = 0
    skipped: bool = False

    @property
    def message(self) -> str:
        if self.skipped:
            return "Sync already in progress"
        if self.failed:
            return f"Synced {self.flushed} changes, {self.failed} failed"
        return f"Synced {self.flushed} changes"


StatusCallback = Callable[[str, DrainSummary], None]


def apply_mutation(remote: RemoteStore, mutation: Mutation) -> None:
    """Send ``mutation`` to the server, raising on any failure."""

    if isinstance(mutation, InsertMutation):
        remote.insert(mutation.table, mutation.record)
    elif isinstance(mutation, UpdateMutation):
        remote.update(mutation.table, mutation.record_id, mutation.fields)
    elif isinstance(mutation, DeleteMutation):
        remote.delete(mutation.table, mutation.record_id)
    elif isinstance(mutation, ReorderMutation):
        for record_id, sort_order in mutation.positions:
            remote.update(mutation.table, record_id, {"sort_order": sort_order})
    else:
        raise TypeError(f"Unsupported mutation: {mutation!r}")


class SyncCoordinator:
    """Drain the mutation queue against the remote store in FIFO order."""

    def __init__(
        self,
        queue: MutationQueueStore,
        remote: RemoteStore,
        *,
        status_callback: Optional[StatusCallback] = None,
    ) -> None:
        self._queue = queue
        self._remote = remote
        self._status_callback = status_callback
        self._drain_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def drain(self) -> DrainSummary:
        if not self._drain_lock.acquire(blocking=False):
            logger.info("Drain requested while another drain is running; skipped")
            return DrainSummary(skipped=True)
        try:
            summary = self._drain_locked()
        finally:
            self._drain_lock.release()

        if summary.flushed or summary.failed:
            logger.info("Offline queue drained: %s", summary.message)
            self._notify_status(summary)
        return summary

    def attach(self, observer: ConnectivityObserver) -> Callable[[], None]:
        """Drain whenever ``observer`` reports an offline→online transition."""

        def on_change(online: bool) -> None:
            if online:
                self.drain()

        return observer.subscribe(on_change)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _drain_locked(self) -> DrainSummary:
        pending = self._queue.list_all()
        summary = DrainSummary()
        if not pending:
            return summary

        for entry in pending:
            try:
                apply_mutation(self._remote, entry.mutation)
            except Exception as exc:
                summary.failed += 1
                logger.warning(
                    "Replay of %s on %s (%s) failed: %s",
                    entry.type.value,
                    entry.table,
                    entry.id,
                    format_error_message(exc),
                )
                continue
            self._queue.remove(entry.id)
            summary.flushed += 1
        return summary

    def _notify_status(self, summary: DrainSummary) -> None:
        if self._status_callback:
            try:
                self._status_callback(summary.message, summary)
            except Exception:  # pragma: no cover - UI callback guard
                logger.debug("Sync status callback failed", exc_info=True)


__all__ = ["DrainSummary", "SyncCoordinator", "apply_mutation"]
