"""
Push channel transport built on a websocket connection
"""

import json
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

import websocket

from core.logging_config import get_logger, log_sync_event
from .exceptions import CloseError, ConnectError, StreamError


class TransportState(Enum):
    """Lifecycle of a single push connection"""
    IDLE = "idle"
    OPENING = "opening"
    OPEN = "open"
    CLOSED = "closed"   # graceful end or client close
    FAILED = "failed"   # error before or during the connection


class PushConnection:
    """
    One websocket connection to the push channel.

    Inbound frames are decoded as JSON objects and handed to the observer's
    ``on_message``. Frames that do not decode are reported through
    ``on_stream_error`` and the stream keeps going. When an open connection
    ends without a client ``close()``, ``on_connection_lost`` is called once
    with a CloseError. A connection is single-use; the supervisor creates a
    new one for every attempt.
    """

    def __init__(self,
                 url: str,
                 observer: Any,
                 open_timeout: float = 10.0,
                 headers: Optional[Dict[str, str]] = None,
                 ping_interval: float = 0,
                 close_timeout: float = 2.0,
                 app_factory: Optional[Callable[..., Any]] = None):
        """
        Initialize push connection

        Args:
            url: Websocket URL of the push channel
            observer: Object with on_message, on_stream_error and
                on_connection_lost callbacks
            open_timeout: Seconds to wait for the handshake in open()
            headers: Extra handshake headers
            ping_interval: Seconds between websocket pings, 0 disables them
            close_timeout: Seconds close() waits for the reader thread
            app_factory: websocket.WebSocketApp compatible factory
        """
        self.logger = get_logger(__name__)
        self.url = url
        self.observer = observer
        self.open_timeout = open_timeout
        self.headers = headers or {}
        self.ping_interval = ping_interval
        self.close_timeout = close_timeout
        self.app_factory = app_factory or websocket.WebSocketApp

        self.state = TransportState.IDLE
        self._lock = threading.RLock()
        self._opened = threading.Event()
        self._closing = False
        self._app = None
        self._thread: Optional[threading.Thread] = None

        self._last_error: Optional[BaseException] = None
        self._close_code: Optional[int] = None
        self._close_reason: Optional[str] = None

        # Stats
        self.messages_received = 0
        self.stream_errors = 0

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self.state == TransportState.OPEN

    def open(self) -> 'PushConnection':
        """
        Open the connection and wait for the handshake

        Returns:
            self, once the connection is open

        Raises:
            ConnectError: If the handshake fails, times out, or the
                connection was already used
        """
        with self._lock:
            if self.state == TransportState.OPEN:
                return self
            if self.state != TransportState.IDLE:
                raise ConnectError(self.url, f"connection is {self.state.value}")

            self.state = TransportState.OPENING
            self._app = self.app_factory(
                self.url,
                header=dict(self.headers),
                on_open=self._on_open,
                on_message=self._on_message,
                on_error=self._on_error,
                on_close=self._on_close
            )
            self._thread = threading.Thread(target=self._run, daemon=True, name="PushConnection")
            self._thread.start()

        if not self._opened.wait(self.open_timeout):
            self.close()
            raise ConnectError(self.url, f"timed out after {self.open_timeout}s")

        with self._lock:
            if self.state == TransportState.OPEN:
                return self
            error = self._last_error

        raise ConnectError(self.url, str(error) if error else "closed during handshake")

    def close(self):
        """Close the connection; safe to call repeatedly and before open()"""
        with self._lock:
            if self._closing:
                return
            self._closing = True
            if self.state == TransportState.IDLE:
                self.state = TransportState.CLOSED
                return
            app = self._app
            thread = self._thread

        if app is not None:
            try:
                app.close()
            except Exception as e:
                self.logger.warning(f"Error closing websocket: {e}")

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.close_timeout)
            if thread.is_alive():
                self.logger.warning("Push connection thread did not stop in time")

    def _run(self):
        try:
            self._app.run_forever(ping_interval=self.ping_interval)
        except Exception as e:
            self._last_error = e
        finally:
            self._handle_terminated()

    def _handle_terminated(self):
        with self._lock:
            was_open = self.state == TransportState.OPEN
            if self._closing:
                self.state = TransportState.CLOSED
            elif was_open and self._last_error is None:
                self.state = TransportState.CLOSED
            else:
                self.state = TransportState.FAILED
            notify = was_open and not self._closing

        self._opened.set()

        if notify:
            log_sync_event(self.logger, logging.INFO, f"Push connection to {self.url} ended ({self.state.value})",
                           url=self.url, close_code=self._close_code, close_reason=self._close_reason)
            self._deliver(
                self.observer.on_connection_lost,
                CloseError(self._close_code, self._close_reason, self._last_error)
            )

    def _on_open(self, ws):
        with self._lock:
            if self._closing:
                closing = True
            else:
                closing = False
                self.state = TransportState.OPEN

        if closing:
            ws.close()
            return

        log_sync_event(self.logger, logging.INFO, f"Push channel connected: {self.url}", url=self.url)
        self._opened.set()

    def _on_message(self, ws, message):
        if self._closing:
            return

        self.messages_received += 1

        if isinstance(message, bytes):
            try:
                message = message.decode("utf-8")
            except UnicodeDecodeError as e:
                self._report_stream_error(StreamError(f"Push frame is not UTF-8: {e}", raw=message))
                return

        try:
            payload = json.loads(message)
        except json.JSONDecodeError as e:
            self._report_stream_error(StreamError(f"Push message is not valid JSON: {e}", raw=message))
            return

        if not isinstance(payload, dict):
            self._report_stream_error(
                StreamError(f"Push message is a JSON {type(payload).__name__}, not an object", raw=message)
            )
            return

        self._deliver(self.observer.on_message, payload)

    def _on_error(self, ws, error):
        self._last_error = error
        self.logger.debug(f"Websocket error on {self.url}: {error}")

    def _on_close(self, ws, close_status_code=None, close_msg=None):
        self._close_code = close_status_code
        self._close_reason = close_msg

    def _report_stream_error(self, error: StreamError):
        self.stream_errors += 1
        self._deliver(self.observer.on_stream_error, error)

    def _deliver(self, callback: Callable[[Any], None], value: Any):
        try:
            callback(value)
        except Exception as e:
            self.logger.error(f"Error in push connection observer: {e}", exc_info=True)
