"""
Reconnection supervisor that keeps the push channel alive
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from events import event_bus as default_event_bus, EventBus, EventTypes
from .logging_config import get_logger, log_sync_event
from .retry_policy import FixedDelayPolicy, RetryPolicy, RetryReason
from .state_manager import ConnectionState, StateManager


class _AttemptObserver:
    """Routes transport callbacks for one connection attempt back to the supervisor"""

    def __init__(self, supervisor: 'ReconnectionSupervisor', generation: int):
        self.supervisor = supervisor
        self.generation = generation

    def on_message(self, payload: Dict[str, Any]):
        self.supervisor._handle_message(self.generation, payload)

    def on_stream_error(self, error: Exception):
        self.supervisor._handle_stream_error(self.generation, error)

    def on_connection_lost(self, error: Exception):
        self.supervisor._handle_connection_lost(self.generation, error)


class ReconnectionSupervisor:
    """Owns the push connection and reopens it according to a retry policy"""

    def __init__(self,
                 connection_factory: Callable[[Any], Any],
                 retry_policy: Optional[RetryPolicy] = None,
                 on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
                 on_stream_error: Optional[Callable[[Exception], None]] = None,
                 state_manager: Optional[StateManager] = None,
                 timer_factory: Callable[..., Any] = threading.Timer,
                 event_bus: Optional[EventBus] = None):
        """
        Initialize reconnection supervisor

        Args:
            connection_factory: Called with an observer, returns an unopened
                connection exposing open() and close()
            retry_policy: Delay strategy, defaults to the fixed 5s/3s policy
            on_message: Called with every decoded push message
            on_stream_error: Called when a push message cannot be decoded
            state_manager: Connection state machine, created if omitted
            timer_factory: threading.Timer compatible factory for retries
            event_bus: Bus for diagnostic events
        """
        self.logger = get_logger(__name__)
        self.connection_factory = connection_factory
        self.retry_policy = retry_policy or FixedDelayPolicy()
        self.on_message = on_message
        self.on_stream_error = on_stream_error
        self.event_bus = event_bus or default_event_bus
        self.state_manager = state_manager or StateManager(event_bus=self.event_bus)
        self.timer_factory = timer_factory

        self._lock = threading.RLock()
        self._connection = None
        self._generation = 0
        self._pending_retry = None
        self._pending_delay: Optional[float] = None

        # Stats
        self.attempts = 0
        self.consecutive_failures = 0
        self.retries_scheduled = 0
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self.state_manager.get_state()

    def start(self, wait: bool = False):
        """
        Begin connecting if currently disconnected

        Args:
            wait: Run the first attempt on the calling thread instead of a
                background thread
        """
        with self._lock:
            if self.state != ConnectionState.DISCONNECTED or self._pending_retry is not None:
                return

        if wait:
            self._attempt()
        else:
            threading.Thread(target=self._attempt, daemon=True, name="PushConnect").start()

    def reconnect_now(self):
        """Cancel any pending retry and attempt a connection immediately"""
        with self._lock:
            if self.state != ConnectionState.DISCONNECTED:
                return
            self._cancel_pending_retry()
            self.consecutive_failures = 0
        self._attempt()

    def shutdown(self):
        """Stop for good: cancel retries, close the connection, never reconnect"""
        with self._lock:
            if self.state_manager.is_stopped():
                return
            self._cancel_pending_retry()
            connection = self._connection
            self._connection = None
            self._generation += 1
            self.state_manager.transition_to(ConnectionState.STOPPED, "shutdown", notify=False)
        self.state_manager.deliver_pending()

        if connection is not None:
            try:
                connection.close()
            except Exception as e:
                self.logger.error(f"Error closing push connection: {e}")

        self.logger.info("Reconnection supervisor stopped")

    def _attempt(self):
        with self._lock:
            if self.state != ConnectionState.DISCONNECTED:
                return
            self._pending_retry = None
            self._pending_delay = None
            self._generation += 1
            generation = self._generation
            self.attempts += 1
            self.state_manager.transition_to(ConnectionState.CONNECTING, f"attempt #{self.attempts}", notify=False)
            try:
                connection = self.connection_factory(_AttemptObserver(self, generation))
            except Exception as e:
                self._fail_attempt(generation, e)
                connection = None
            else:
                self._connection = connection
        self.state_manager.deliver_pending()

        if connection is None:
            return

        # Opening blocks, so it runs outside the lock to keep shutdown responsive
        try:
            connection.open()
        except Exception as e:
            with self._lock:
                self._fail_attempt(generation, e)
            self.state_manager.deliver_pending()
            return

        with self._lock:
            superseded = generation != self._generation or self.state != ConnectionState.CONNECTING
            if not superseded:
                self._cancel_pending_retry()
                self.consecutive_failures = 0
                self.state_manager.transition_to(ConnectionState.CONNECTED, "handshake complete", notify=False)
            stopped = self.state_manager.is_stopped()
        self.state_manager.deliver_pending()

        # Shut down or lost while the handshake was completing
        if superseded and stopped:
            connection.close()

    def _fail_attempt(self, generation: int, error: Exception):
        # Lock held; the caller delivers the transition after releasing it
        if generation != self._generation or self.state != ConnectionState.CONNECTING:
            return
        self._connection = None
        self.last_error = str(error)
        log_sync_event(self.logger, logging.WARNING, f"Push connection failed: {error}",
                       attempt=self.attempts, error_type=type(error).__name__)
        self._schedule_retry(RetryReason.CONNECT_FAILED)
        self.state_manager.transition_to(ConnectionState.DISCONNECTED, f"connect failed: {error}", notify=False)

    def _handle_connection_lost(self, generation: int, error: Exception):
        with self._lock:
            if generation != self._generation:
                return
            if self.state not in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                return
            self._connection = None
            self.last_error = str(error)
            log_sync_event(self.logger, logging.WARNING, f"Push connection lost: {error}",
                           attempt=self.attempts, error_type=type(error).__name__)
            self._schedule_retry(RetryReason.CONNECTION_LOST)
            self.state_manager.transition_to(ConnectionState.DISCONNECTED, f"connection lost: {error}", notify=False)
        self.state_manager.deliver_pending()

    def _handle_message(self, generation: int, payload: Dict[str, Any]):
        if generation != self._generation or self.on_message is None:
            return
        try:
            self.on_message(payload)
        except Exception as e:
            self.logger.error(f"Error handling push message: {e}", exc_info=True)

    def _handle_stream_error(self, generation: int, error: Exception):
        if generation != self._generation or self.on_stream_error is None:
            return
        try:
            self.on_stream_error(error)
        except Exception as e:
            self.logger.error(f"Error handling stream error: {e}")

    def _schedule_retry(self, reason: RetryReason):
        self._cancel_pending_retry()
        self.consecutive_failures += 1
        delay = self.retry_policy.next_delay(reason, self.consecutive_failures)

        if delay is None:
            self.logger.error(
                f"Giving up on push connection after {self.consecutive_failures} consecutive failures"
            )
            self.event_bus.emit(EventTypes.CONNECTION_RETRY_EXHAUSTED, {
                "consecutive_failures": self.consecutive_failures,
                "last_error": self.last_error
            }, source="reconnect_supervisor")
            return

        timer = self.timer_factory(delay, self._retry_fired)
        timer.daemon = True
        self._pending_retry = timer
        self._pending_delay = delay
        self.retries_scheduled += 1
        log_sync_event(self.logger, logging.INFO, f"Reconnecting in {delay:.1f}s ({reason.value})",
                       delay=delay, reason=reason.value, consecutive_failures=self.consecutive_failures)
        self.event_bus.emit(EventTypes.CONNECTION_RETRY_SCHEDULED, {
            "delay": delay,
            "reason": reason.value,
            "attempt": self.consecutive_failures
        }, source="reconnect_supervisor")
        timer.start()

    def _retry_fired(self):
        with self._lock:
            if self._pending_retry is None:
                return
            self._pending_retry = None
            self._pending_delay = None
        self._attempt()

    def _cancel_pending_retry(self):
        if self._pending_retry is not None:
            self._pending_retry.cancel()
            self._pending_retry = None
            self._pending_delay = None

    def has_pending_retry(self) -> bool:
        with self._lock:
            return self._pending_retry is not None

    def get_stats(self) -> Dict[str, Any]:
        """Get supervisor statistics"""
        with self._lock:
            return {
                "state": self.state.value,
                "attempts": self.attempts,
                "consecutive_failures": self.consecutive_failures,
                "retries_scheduled": self.retries_scheduled,
                "pending_retry_delay": self._pending_delay,
                "last_error": self.last_error,
                "retry_policy": self.retry_policy.describe()
            }
