import logging
import threading

from tracker.core.errors import StateError
from tracker.services.context import Tracker

logger = logging.getLogger(__name__)


class SyncWorker:
    """Background thread that replays the queue whenever the remote is reachable."""

    def __init__(self, tracker: Tracker, interval: float):
        self.tracker = tracker
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._was_online: bool | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="tracker-sync", daemon=True)
        self._thread.start()
        logger.info("Sync worker started (every %ss)", self.interval)

    def stop(self, timeout: float = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.tick()

    def tick(self) -> bool | None:
        """One replay attempt. None means nothing was attempted."""
        remote = self.tracker.remote
        if remote is None:
            return None

        online = remote.is_online()
        if online and self._was_online is False:
            logger.info("Remote reachable again")
        self._was_online = online
        if not online or self.tracker.queue.count() == 0:
            return None

        try:
            return self.tracker.queue.drain()
        except StateError:
            logger.info("Drain already running; skipping this tick")
            return None
