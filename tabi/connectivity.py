"""Online/offline signal shared by the data hooks and the sync coordinator."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]
Probe = Callable[[], bool]


class ConnectivityObserver:
    """Hold the process-wide connectivity flag and notify on transitions.

    Listeners are invoked once per genuine change of state; repeated reports
    of the current state are ignored.
    """

    def __init__(self, initial_online: bool = True) -> None:
        self._online = bool(initial_online)
        self._lock = threading.Lock()
        self._listeners: List[ConnectivityCallback] = []

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """Record the platform signal. Returns ``True`` if the state changed."""

        online = bool(online)
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            listeners = list(self._listeners)

        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in listeners:
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener raised an exception")
        return True


class ConnectivityMonitor:
    """Poll ``probe`` on a daemon thread and feed the observer."""

    def __init__(
        self,
        observer: ConnectivityObserver,
        probe: Probe,
        *,
        interval_seconds: float = 30,
    ) -> None:
        self._observer = observer
        self._probe = probe
        self._interval = max(1.0, float(interval_seconds))
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="tabi-connectivity", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None

    def check_now(self) -> bool:
        """Probe once, update the observer and return the observed state."""

        try:
            online = bool(self._probe())
        except Exception:
            logger.debug("Connectivity probe failed", exc_info=True)
            online = False
        self._observer.set_online(online)
        return online

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.check_now()
            if self._stop_event.wait(self._interval):
                break


__all__ = ["ConnectivityCallback", "ConnectivityMonitor", "ConnectivityObserver"]
