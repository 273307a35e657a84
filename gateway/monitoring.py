"""
Background monitoring threads.

- HealthMonitor polls the document store and logs healthy/unhealthy
  transitions
- SessionJanitor periodically drops sessions with no recent activity

Both run as daemon threads started and stopped by the application
lifespan; ``stop()`` wakes the loop immediately.
"""

import logging
import threading
from datetime import timedelta
from typing import Optional

from gateway.memory import SessionStore
from gateway.vector_store import BaseDocumentStore

logger = logging.getLogger(__name__)


class _PeriodicWorker:
    """Runs ``tick()`` every ``interval`` seconds on a daemon thread."""

    name = "periodic-worker"

    def __init__(self, interval: float):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> None:
        raise NotImplementedError

    def _run(self) -> None:
        self.tick()
        while not self._stop_event.wait(self.interval):
            self.tick()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Started {self.name} (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info(f"Stopped {self.name}")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class HealthMonitor(_PeriodicWorker):
    """
    Liveness monitor for the document store.

    Example:
        monitor = HealthMonitor(store, interval=10)
        monitor.start()
        monitor.healthy  # last observed state
    """

    name = "document-store-health"

    def __init__(self, store: BaseDocumentStore, interval: float = 10.0):
        super().__init__(interval)
        self.store = store
        self._healthy: Optional[bool] = None

    def tick(self) -> None:
        """Run one health check and log state changes."""
        try:
            healthy = self.store.health_check()
        except Exception as e:
            logger.error(f"Document store health check raised: {e}")
            healthy = False

        if healthy != self._healthy:
            if healthy:
                logger.info("Document store is now healthy")
            else:
                logger.warning("Document store is unhealthy or unreachable")
        self._healthy = healthy

    @property
    def healthy(self) -> bool:
        """Last observed state; False until the first check completes."""
        return bool(self._healthy)


class SessionJanitor(_PeriodicWorker):
    """Removes sessions idle for longer than ``max_age``."""

    name = "session-janitor"

    def __init__(self, sessions: SessionStore, max_age: timedelta, interval: float = 300.0):
        super().__init__(interval)
        self.sessions = sessions
        self.max_age = max_age

    def tick(self) -> None:
        removed = self.sessions.cleanup_old_sessions(self.max_age)
        if removed:
            logger.debug(f"Session janitor removed {removed} sessions")
