"""
State reconciler that merges snapshots and push events into one dashboard state
"""

import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from core.logging_config import get_logger
from events import event_bus as default_event_bus, EventBus, EventTypes
from .exceptions import FetchError, StreamError
from .models import (
    ActivityEntry,
    DashboardState,
    DashboardStats,
    HistoryEntry,
    PushEvent,
    PushEventTypes,
    Snapshot,
)

ACTIVITY_FEED_LIMIT = 20

StateListener = Callable[[DashboardState], None]


class StateReconciler:
    """
    Owns the canonical dashboard state and the rules for changing it.

    Every mutation goes through one lock, so snapshots and push events are
    applied strictly one at a time in arrival order. Listeners are called
    outside that lock, in commit order, by whichever thread is delivering. Lists are newest-first:
    push entries are prepended, the activity feed is clipped to
    ``activity_limit`` and a snapshot replaces everything at once.
    """

    def __init__(self, activity_limit: int = ACTIVITY_FEED_LIMIT, event_bus: Optional[EventBus] = None):
        """
        Initialize state reconciler

        Args:
            activity_limit: Maximum length of the activity feed
            event_bus: Bus for diagnostic events
        """
        if activity_limit < 1:
            raise ValueError("activity_limit must be at least 1")

        self.logger = get_logger(__name__)
        self.activity_limit = activity_limit
        self.event_bus = event_bus or default_event_bus

        self._lock = threading.RLock()
        self._state = DashboardState()
        self._listeners: List[StateListener] = []
        self._undelivered: Deque[DashboardState] = deque()
        self._delivering = False
        self._latest_token = 0

        self._handlers = {
            PushEventTypes.REDACTION_COMPLETED: self._apply_redaction_completed,
            PushEventTypes.ACTIVITY_UPDATE: self._apply_activity_update,
        }

        # Stats
        self.snapshots_applied = 0
        self.snapshots_discarded = 0
        self.fetch_failures = 0
        self.events_applied = 0
        self.events_ignored = 0
        self.stream_errors = 0

    @property
    def state(self) -> DashboardState:
        with self._lock:
            return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called with the new state after every change

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def begin_fetch(self) -> int:
        """
        Mark a snapshot fetch as in flight

        Returns:
            Token identifying this fetch; only the latest token may land
        """
        with self._lock:
            self._latest_token += 1
            token = self._latest_token
            self._commit(self._state.evolve(loading=True))
        self._deliver()

        self.event_bus.emit(EventTypes.SNAPSHOT_FETCH_START, {"token": token}, source="reconciler")
        return token

    def is_current(self, token: Optional[int]) -> bool:
        with self._lock:
            return token is None or token == self._latest_token

    def apply_snapshot(self, snapshot: Snapshot, token: Optional[int] = None) -> bool:
        """
        Replace statistics, activity and history with a snapshot

        Args:
            snapshot: Full server state
            token: Token from begin_fetch(); a superseded token is discarded

        Returns:
            True if applied, False if the snapshot was stale
        """
        with self._lock:
            if not self.is_current(token):
                self.snapshots_discarded += 1
                self.logger.info(f"Discarding stale snapshot (token {token}, latest {self._latest_token})")
                self.event_bus.emit(EventTypes.SNAPSHOT_DISCARDED, {
                    "token": token,
                    "latest_token": self._latest_token
                }, source="reconciler")
                return False

            self._commit(self._state.evolve(
                stats=snapshot.stats,
                activities=tuple(snapshot.activity[:self.activity_limit]),
                history=tuple(snapshot.history),
                loading=False,
                error=None
            ))
            self.snapshots_applied += 1
        self._deliver()

        self.event_bus.emit(EventTypes.SNAPSHOT_APPLIED, {
            "token": token,
            "activity_count": len(snapshot.activity),
            "history_count": len(snapshot.history)
        }, source="reconciler")
        return True

    def fail_fetch(self, error: FetchError, token: Optional[int] = None) -> bool:
        """
        Record a failed fetch, keeping the last good data

        Returns:
            True if the failure was recorded, False if the token was stale
        """
        with self._lock:
            if not self.is_current(token):
                self.logger.debug(f"Ignoring failure of superseded fetch {token}: {error}")
                return False

            self.fetch_failures += 1
            self._commit(self._state.evolve(loading=False, error=error.reason))
        self._deliver()

        self.logger.warning(f"Snapshot fetch failed: {error.reason}")
        self.event_bus.emit(EventTypes.SNAPSHOT_FETCH_ERROR, {
            "token": token,
            "reason": error.reason,
            "status": error.status
        }, source="reconciler")
        return True

    def apply_message(self, payload: Mapping[str, Any]) -> bool:
        """
        Apply a decoded push message

        Structural problems are recorded as stream errors and leave the
        state untouched.

        Returns:
            True if the state changed
        """
        try:
            event = PushEvent.from_message(payload)
        except StreamError as e:
            self.record_stream_error(e)
            return False
        return self.apply_push_event(event)

    def apply_push_event(self, event: PushEvent) -> bool:
        """
        Merge one push event into the state

        Unknown event types are ignored so the server can add new ones.

        Returns:
            True if the state changed
        """
        handler = self._handlers.get(event.type)
        if handler is None:
            with self._lock:
                self.events_ignored += 1
            self.logger.debug(f"Ignoring push event of unknown type: {event.type}")
            self.event_bus.emit(EventTypes.PUSH_EVENT_IGNORED, {"type": event.type}, source="reconciler")
            return False

        try:
            with self._lock:
                changed = handler(event.payload())
                if changed:
                    self.events_applied += 1
        except StreamError as e:
            self.record_stream_error(e)
            return False
        self._deliver()

        if changed:
            self.event_bus.emit(EventTypes.PUSH_EVENT_APPLIED, {"type": event.type}, source="reconciler")
        return changed

    def record_stream_error(self, error: StreamError):
        """Log a malformed push message; state and error flag are unaffected"""
        with self._lock:
            self.stream_errors += 1
        self.logger.warning(f"Dropped malformed push message: {error}")
        self.event_bus.emit(EventTypes.PUSH_PARSE_ERROR, {
            "error": str(error),
            "raw": error.raw if isinstance(error.raw, str) else repr(error.raw)
        }, source="reconciler")

    def set_connection_state(self, connection: str):
        """Mirror the push channel state into the dashboard state"""
        with self._lock:
            if self._state.connection == connection:
                return
            self._commit(self._state.evolve(connection=connection))
        self._deliver()

    def _apply_redaction_completed(self, data: Mapping[str, Any]) -> bool:
        # Each part is optional; parse all of them before touching state
        stats = DashboardStats.from_dict(data["stats"]) if data.get("stats") is not None else None
        history_entry = (HistoryEntry.from_dict(data["history_entry"])
                         if data.get("history_entry") is not None else None)
        activity = ActivityEntry.from_dict(data["activity"]) if data.get("activity") is not None else None

        if stats is None and history_entry is None and activity is None:
            return False

        changes: Dict[str, Any] = {}
        if stats is not None:
            changes["stats"] = stats
        if history_entry is not None:
            changes["history"] = (history_entry,) + self._state.history
        if activity is not None:
            changes["activities"] = self._prepend_activity(activity)

        self._commit(self._state.evolve(**changes))
        return True

    def _apply_activity_update(self, data: Mapping[str, Any]) -> bool:
        activity = ActivityEntry.from_dict(data)
        self._commit(self._state.evolve(activities=self._prepend_activity(activity)))
        return True

    def _prepend_activity(self, entry: ActivityEntry) -> Tuple[ActivityEntry, ...]:
        return ((entry,) + self._state.activities)[:self.activity_limit]

    def _commit(self, new_state: DashboardState):
        # Lock held; the caller runs _deliver() once it has released it
        self._state = new_state
        self._undelivered.append(new_state)

    def _deliver(self):
        with self._lock:
            if self._delivering:
                return
            self._delivering = True

        while True:
            with self._lock:
                if not self._undelivered:
                    self._delivering = False
                    return
                state = self._undelivered.popleft()
                listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(state)
                except Exception as e:
                    self.logger.error(f"Error in state listener: {e}", exc_info=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get reconciler statistics"""
        with self._lock:
            return {
                "snapshots_applied": self.snapshots_applied,
                "snapshots_discarded": self.snapshots_discarded,
                "fetch_failures": self.fetch_failures,
                "events_applied": self.events_applied,
                "events_ignored": self.events_ignored,
                "stream_errors": self.stream_errors,
                "listeners": len(self._listeners),
                "activity_count": len(self._state.activities),
                "history_count": len(self._state.history)
            }
