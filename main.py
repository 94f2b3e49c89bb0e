#!/usr/bin/env python3
"""
Main application - Follows the dashboard through snapshot and push updates and logs every change
"""

import signal
import sys
import threading

from config import API_BASE_URL, DISPLAY_CONFIG, LOGGING_CONFIG
from core.config_validator import validate_startup_config, ConfigValidationError
from core.logging_config import setup_logging, get_logger
from realtime import DashboardSession, DashboardState


class DashboardMonitor:
    def __init__(self, base_url: str = API_BASE_URL):
        self.logger = get_logger(__name__)
        self.session = DashboardSession(base_url=base_url)
        self.stop_event = threading.Event()
        self._last_state = None
        self._unsubscribe = self.session.subscribe(self._on_state_change)

    def _on_state_change(self, state: DashboardState):
        """Log a one-line summary of what changed"""
        previous = self._last_state
        self._last_state = state
        colors = DISPLAY_CONFIG["colors"]

        if previous is None or state.connection != previous.connection:
            self.logger.info(f"{colors['info']}Push channel: {state.connection}{colors['reset']}")

        if state.error and (previous is None or state.error != previous.error):
            self.logger.error(f"{colors['error']}Dashboard error: {state.error}{colors['reset']}")

        if previous is not None and state.activities and (
                not previous.activities or state.activities[0] is not previous.activities[0]):
            latest = state.activities[0]
            self.logger.info(f"Activity: {latest.type} {latest.filename} [{latest.status}]")

        if previous is None or state.stats is not previous.stats:
            stats = state.stats
            self.logger.info(
                f"{colors['success']}Stats: {stats.total_files} files "
                f"({stats.files_today} today), {stats.total_redactions} redactions, "
                f"avg {stats.average_processing_time:.2f}s{colors['reset']}"
            )

    def run(self):
        self.logger.info(f"Following dashboard at {self.session.base_url}")
        self.session.start()

        # Wait until a signal handler asks us to stop
        while not self.stop_event.wait(1.0):
            pass

    def stop(self):
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        self._unsubscribe()
        self.session.shutdown()
        self.logger.info("Dashboard monitor stopped")


def main():
    setup_logging(LOGGING_CONFIG)
    logger = get_logger(__name__)

    try:
        validate_startup_config()
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(1)

    monitor = DashboardMonitor()

    def signal_handler(sig, frame):
        logger.info("Stopping...")
        monitor.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        monitor.run()
    finally:
        monitor.stop()


if __name__ == "__main__":
    main()
