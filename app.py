"""Wiring for a Tabi client session: local stores, server client and sync."""
from __future__ import annotations

import logging
import sys
import threading
from typing import Callable, Optional

import httpx

from db import LocalDatabase
from settings import SettingsError, TabiSettings, load_settings
from tabi.connectivity import ConnectivityMonitor, ConnectivityObserver
from tabi.hooks import ItemsHook, TripDaysHook, TripsHook
from tabi.itinerary import ItineraryService
from tabi.local_cache import LocalCacheStore
from tabi.logging_config import configure_logging
from tabi.offline_queue import MutationQueueStore
from tabi.remote_store import RemoteStore
from tabi.sync_coordinator import DrainSummary, StatusCallback, SyncCoordinator
from tabi.version import __version__

logger = logging.getLogger(__name__)


class TabiSession:
    """Own the process-wide stores and keep the offline queue flowing.

    The session is constructed once at start-up and handed to whatever needs
    data access; hooks created through it share the same queue, cache and
    connectivity signal.
    """

    def __init__(
        self,
        settings: TabiSettings,
        *,
        database: Optional[LocalDatabase] = None,
        transport: Optional[httpx.BaseTransport] = None,
        status_callback: Optional[StatusCallback] = None,
        initial_online: bool = True,
    ) -> None:
        self.settings = settings
        self.database = database or LocalDatabase()
        self.cache = LocalCacheStore(self.database)
        self.queue = MutationQueueStore(self.database)
        self.connectivity = ConnectivityObserver(initial_online=initial_online)
        self.remote = RemoteStore.from_settings(settings, transport=transport)
        self.coordinator = SyncCoordinator(self.queue, self.remote, status_callback=status_callback)
        self.monitor = ConnectivityMonitor(
            self.connectivity,
            self.remote.ping,
            interval_seconds=settings.probe_interval_seconds,
        )
        self.itinerary = ItineraryService(self.remote, default_trip_id=settings.default_trip_id)
        self._detach: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, *, monitor: bool = True) -> None:
        if self._detach is None:
            self._detach = self.coordinator.attach(self.connectivity)
        if monitor:
            self.monitor.start()
        if self.connectivity.is_online() and self.queue.count():
            # Edits left over from a previous run.
            self.coordinator.drain()

    def stop(self) -> None:
        self.monitor.stop()
        if self._detach is not None:
            self._detach()
            self._detach = None
        self.remote.close()

    def logout(self) -> int:
        """Drop every cached snapshot and return how many were removed.

        Queued edits are kept; they replay once someone signs in again.
        """

        removed = self.cache.clear_all()
        pending = self.queue.count()
        if pending:
            logger.warning("Signed out with %d pending change(s) still queued", pending)
        logger.info("Cleared %d cached snapshot(s) on sign-out", removed)
        return removed

    def __enter__(self) -> "TabiSession":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    def trips(self, user_id: Optional[str]) -> TripsHook:
        return TripsHook(self.remote, self.queue, self.cache, self.connectivity, user_id=user_id)

    def days(self, trip_id: Optional[str]) -> TripDaysHook:
        return TripDaysHook(self.remote, self.queue, self.cache, self.connectivity, trip_id=trip_id)

    def items(self, day_id: Optional[str]) -> ItemsHook:
        return ItemsHook(self.remote, self.queue, self.cache, self.connectivity, day_id=day_id)


def _log_drain(message: str, summary: DrainSummary) -> None:
    print(message)


def main() -> int:
    """Run a foreground sync agent until interrupted."""

    configure_logging()
    try:
        settings = load_settings()
        settings.require_configured()
    except SettingsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.info("Starting Tabi sync agent v%s", __version__)
    session = TabiSession(settings, status_callback=_log_drain, initial_online=False)
    session.start()
    print(f"Tabi sync agent v{__version__} running. Press Ctrl+C to stop.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
