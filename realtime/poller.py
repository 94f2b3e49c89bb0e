"""
Optional periodic snapshot refresh
"""

import threading
from typing import Callable, Optional

from core.logging_config import get_logger


class PeriodicRefresher:
    """Calls a refresh function on a fixed interval from a background thread"""

    def __init__(self, refresh: Callable[[], object], interval_seconds: float = 30.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.logger = get_logger(__name__)
        self.refresh = refresh
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="SnapshotPoller")
        self._thread.start()
        self.logger.info(f"Periodic refresh every {self.interval_seconds}s")

    def stop(self, timeout: float = 2.0):
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _loop(self):
        # wait() returns True as soon as stop() is called
        while not self._stop_event.wait(self.interval_seconds):
            self.runs += 1
            try:
                self.refresh()
            except Exception as e:
                self.logger.error(f"Periodic refresh failed: {e}")
