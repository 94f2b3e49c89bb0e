"""
Dashboard session: the handle consumers use to read and follow the dashboard state
"""

import threading
from typing import Any, Callable, Dict, Optional

from config import (
    API_BASE_URL,
    API_HEADERS,
    FEED_CONFIG,
    POLLING_CONFIG,
    PUSH_CONFIG,
    RECONNECT_CONFIG,
    SNAPSHOT_CONFIG,
    get_push_url,
    get_snapshot_url,
)
from core.logging_config import get_logger, log_error_with_context
from core.reconnect_supervisor import ReconnectionSupervisor
from core.retry_policy import RetryPolicy, build_retry_policy
from core.state_manager import ConnectionState
from events import event_bus as default_event_bus, EventBus, EventTypes
from .exceptions import FetchError
from .models import DashboardState
from .poller import PeriodicRefresher
from .reconciler import StateReconciler
from .snapshot_fetcher import SnapshotFetcher
from .transport import PushConnection


class DashboardSession:
    """
    One synchronized view of the server's dashboard data.

    Construct one per session, call start() to load the initial snapshot
    and open the push channel, and shutdown() when done. The session can
    also be used as a context manager.
    """

    def __init__(self,
                 base_url: Optional[str] = None,
                 fetcher: Optional[SnapshotFetcher] = None,
                 reconciler: Optional[StateReconciler] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 connection_factory: Optional[Callable[[Any], Any]] = None,
                 timer_factory: Optional[Callable[..., Any]] = None,
                 poll_interval: Optional[float] = None,
                 event_bus: Optional[EventBus] = None):
        """
        Initialize dashboard session

        Args:
            base_url: Server base URL, defaults to config.API_BASE_URL
            fetcher: Snapshot fetcher, built from config if omitted
            reconciler: State reconciler, built from config if omitted
            retry_policy: Reconnect policy, built from RECONNECT_CONFIG if omitted
            connection_factory: Builds a push connection for an observer
            timer_factory: threading.Timer compatible factory for retries
            poll_interval: Seconds between periodic refreshes; None uses
                POLLING_CONFIG, which is off by default
            event_bus: Bus for diagnostic events
        """
        self.logger = get_logger(__name__)
        self.base_url = base_url or API_BASE_URL
        self.push_url = get_push_url(self.base_url)
        self.event_bus = event_bus or default_event_bus

        self.fetcher = fetcher or SnapshotFetcher(
            get_snapshot_url(self.base_url),
            timeout=SNAPSHOT_CONFIG["timeout"],
            headers=API_HEADERS
        )
        self.reconciler = reconciler or StateReconciler(
            activity_limit=FEED_CONFIG["activity_limit"],
            event_bus=self.event_bus
        )
        self.supervisor = ReconnectionSupervisor(
            connection_factory=connection_factory or self._create_connection,
            retry_policy=retry_policy or build_retry_policy(RECONNECT_CONFIG),
            on_message=self.reconciler.apply_message,
            on_stream_error=self.reconciler.record_stream_error,
            timer_factory=timer_factory or threading.Timer,
            event_bus=self.event_bus
        )
        self.supervisor.state_manager.add_listener(self._on_connection_state)

        if poll_interval is None and POLLING_CONFIG.get("enabled"):
            poll_interval = POLLING_CONFIG["interval_seconds"]
        self.poller = PeriodicRefresher(self.refresh, poll_interval) if poll_interval else None

        self._started = False
        self._closed = False

    @property
    def state(self) -> DashboardState:
        """Current dashboard state"""
        return self.reconciler.state

    @property
    def connection_state(self) -> ConnectionState:
        return self.supervisor.state

    def subscribe(self, listener: Callable[[DashboardState], None]) -> Callable[[], None]:
        """
        Follow state changes

        Args:
            listener: Called with the new state after every change, in order.
                It may read the session, including get_stats(), from inside
                the callback.

        Returns:
            Callable that removes the listener
        """
        return self.reconciler.subscribe(listener)

    def start(self, fetch_snapshot: Optional[bool] = None, connect_in_background: bool = True) -> 'DashboardSession':
        """
        Load the initial snapshot and open the push channel

        Args:
            fetch_snapshot: Fetch before connecting, defaults to
                SNAPSHOT_CONFIG["fetch_on_start"]
            connect_in_background: Open the push channel on a background
                thread instead of blocking
        """
        if self._started or self._closed:
            return self
        self._started = True

        self.logger.info(f"Starting dashboard session for {self.base_url}")
        self.event_bus.emit(EventTypes.SYSTEM_START, {"base_url": self.base_url}, source="session")

        if fetch_snapshot is None:
            fetch_snapshot = SNAPSHOT_CONFIG.get("fetch_on_start", True)
        if fetch_snapshot:
            self.refresh()

        self.supervisor.start(wait=not connect_in_background)

        if self.poller:
            self.poller.start()

        return self

    def refresh(self, background: bool = False) -> bool:
        """
        Fetch a fresh snapshot and apply it

        Only the most recent refresh can land; an older one that completes
        later is discarded.

        Args:
            background: Run the fetch on a background thread

        Returns:
            True if the snapshot was applied (or the background fetch started)
        """
        if self._closed:
            return False

        token = self.reconciler.begin_fetch()

        if background:
            threading.Thread(
                target=self._run_fetch, args=(token,), daemon=True, name="SnapshotFetch"
            ).start()
            return True

        return self._run_fetch(token)

    def _run_fetch(self, token: int) -> bool:
        try:
            snapshot = self.fetcher.fetch()
        except FetchError as e:
            self.reconciler.fail_fetch(e, token)
            return False
        except Exception as e:
            log_error_with_context(self.logger, e, "snapshot fetch", url=getattr(self.fetcher, "url", None))
            self.reconciler.fail_fetch(FetchError(f"Unexpected error: {e}"), token)
            return False

        return self.reconciler.apply_snapshot(snapshot, token)

    def shutdown(self):
        """Stop polling, close the push channel and never reconnect"""
        if self._closed:
            return
        self._closed = True

        if self.poller:
            self.poller.stop()

        self.supervisor.shutdown()

        self.logger.info("Dashboard session stopped")
        self.event_bus.emit(EventTypes.SYSTEM_STOP, {"base_url": self.base_url}, source="session")

    def _create_connection(self, observer: Any) -> PushConnection:
        return PushConnection(
            self.push_url,
            observer,
            open_timeout=PUSH_CONFIG["open_timeout"],
            headers=API_HEADERS,
            ping_interval=PUSH_CONFIG["ping_interval"]
        )

    def _on_connection_state(self, old_state: ConnectionState, new_state: ConnectionState):
        self.reconciler.set_connection_state(new_state.value)

    def get_stats(self) -> Dict[str, Any]:
        """Get combined session diagnostics"""
        return {
            "base_url": self.base_url,
            "push_url": self.push_url,
            "started": self._started,
            "closed": self._closed,
            "connection": self.supervisor.get_stats(),
            "reconciler": self.reconciler.get_stats(),
            "polling": {
                "enabled": self.poller is not None,
                "runs": self.poller.runs if self.poller else 0
            }
        }

    def __enter__(self) -> 'DashboardSession':
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
