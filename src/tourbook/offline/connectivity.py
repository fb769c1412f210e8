"""
Connectivity tracking and background replay.

ConnectivityMonitor is a small observable: listeners subscribe to
online/offline transitions and dispose of their subscription when done.
ReplayWorker runs the offline queue's replay on its own thread whenever
connectivity comes back and on a fixed interval. It shares nothing with
the interactive side except the draft store.
"""

import threading
from typing import Callable, Optional

import requests
import structlog

from .queue import OfflineQueue, ReplayReport
from .store import DraftStoreError


LOGGER = structlog.get_logger(__name__)

Listener = Callable[[bool], None]


class Subscription:
    """Handle returned by ConnectivityMonitor.subscribe()."""

    def __init__(self, monitor: "ConnectivityMonitor", listener: Listener):
        self._monitor = monitor
        self._listener = listener
        self.disposed = False

    def dispose(self) -> None:
        if not self.disposed:
            self._monitor._remove(self._listener)
            self.disposed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()


class ConnectivityMonitor:
    def __init__(
        self,
        probe_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 3.0,
        online: bool = True,
    ):
        self.probe_url = probe_url
        self.session = session or requests.Session()
        self.timeout = timeout
        self._online = online
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Subscription:
        """Call ``listener(online)`` on every transition until disposed."""
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def set_online(self, online: bool) -> None:
        with self._lock:
            if online == self._online:
                return
            self._online = online
            listeners = list(self._listeners)

        LOGGER.info("connectivity.changed", online=online)
        for listener in listeners:
            try:
                listener(online)
            except Exception:
                LOGGER.exception("connectivity.listener.failed")

    def probe(self) -> bool:
        """Check reachability of probe_url and update the state accordingly."""
        if not self.probe_url:
            return self._online

        try:
            self.session.head(self.probe_url, timeout=self.timeout)
        except requests.RequestException as e:
            LOGGER.debug("connectivity.probe.failed", url=self.probe_url, error=str(e))
            self.set_online(False)
        else:
            self.set_online(True)
        return self._online


class ReplayWorker:
    """Replays pending drafts on reconnect and every ``interval_seconds``."""

    def __init__(
        self,
        queue: OfflineQueue,
        connectivity: ConnectivityMonitor,
        interval_seconds: float = 300.0,
    ):
        self.queue = queue
        self.connectivity = connectivity
        self.interval_seconds = interval_seconds
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._subscription: Optional[Subscription] = None

    def _on_connectivity(self, online: bool) -> None:
        if online:
            self._wake.set()

    def run_once(self) -> Optional[ReplayReport]:
        """One replay pass; skipped while offline."""
        self.connectivity.probe()
        if not self.connectivity.online:
            LOGGER.debug("drafts.replay.skipped", reason="offline")
            return None

        try:
            return self.queue.replay()
        except DraftStoreError as e:
            LOGGER.error("drafts.replay.store_failed", error=str(e))
            return None

    def _run(self) -> None:
        while not self._stopping.is_set():
            self._wake.wait(self.interval_seconds)
            self._wake.clear()
            if self._stopping.is_set():
                break
            try:
                self.run_once()
            except Exception:
                # Keep the thread alive; the next wake-up tries again
                LOGGER.exception("drafts.replay.crashed")

    def start(self) -> None:
        if self._thread is not None:
            return
        self._subscription = self.connectivity.subscribe(self._on_connectivity)
        self._thread = threading.Thread(target=self._run, name="draft-replay", daemon=True)
        self._thread.start()

    def trigger(self) -> None:
        """Ask the worker to replay now instead of waiting for the interval."""
        self._wake.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopping.set()
        self._wake.set()
        if self._subscription is not None:
            self._subscription.dispose()
            self._subscription = None
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
