"""
Connection state manager for tracking push channel state and transitions
"""

import threading
import time
from collections import deque
from enum import Enum
from typing import Deque, Dict, Any, Optional, Callable, List, Tuple
from datetime import datetime
from events import event_bus as default_event_bus, EventBus, EventTypes
from .logging_config import get_logger


class ConnectionState(Enum):
    """Push channel states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPED = "stopped"  # Terminal, only reached through shutdown


class StateTransition:
    """Represents a state transition"""
    def __init__(self, from_state: ConnectionState, to_state: ConnectionState, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.timestamp = time.time()
        self.datetime = datetime.now()

    def __str__(self):
        return f"{self.from_state.value} → {self.to_state.value} ({self.reason})"


class StateManager:
    """Manages connection state and enforces valid transitions"""

    VALID_TRANSITIONS = {
        ConnectionState.DISCONNECTED: [ConnectionState.CONNECTING, ConnectionState.STOPPED],
        ConnectionState.CONNECTING: [ConnectionState.CONNECTED, ConnectionState.DISCONNECTED, ConnectionState.STOPPED],
        ConnectionState.CONNECTED: [ConnectionState.DISCONNECTED, ConnectionState.STOPPED],
        ConnectionState.STOPPED: []  # Terminal state
    }

    def __init__(self, event_bus: Optional[EventBus] = None, max_history: int = 100):
        """
        Initialize state manager

        Args:
            event_bus: Bus for state change events, defaults to the global bus
            max_history: Number of transitions to keep
        """
        self.logger = get_logger(__name__)
        self.event_bus = event_bus or default_event_bus
        self.current_state = ConnectionState.DISCONNECTED
        self.state_lock = threading.RLock()

        self.transitions: List[StateTransition] = []
        self.max_history = max_history

        self.state_listeners: List[Callable[[ConnectionState, ConnectionState], None]] = []
        self._undelivered: Deque[Tuple[ConnectionState, ConnectionState]] = deque()
        self._delivering = False

        self.state_start_time = time.time()

        self.failure_count = 0
        self.last_failure: Optional[str] = None

    def get_state(self) -> ConnectionState:
        """Get current state"""
        with self.state_lock:
            return self.current_state

    def transition_to(self, new_state: ConnectionState, reason: str = "", notify: bool = True) -> bool:
        """
        Transition to a new state

        Args:
            new_state: Target state
            reason: Reason for transition
            notify: Deliver the change to listeners before returning. Callers
                holding their own lock pass False and call deliver_pending()
                once they have released it.

        Returns:
            True if transition successful, False if invalid
        """
        with self.state_lock:
            if not self._is_valid_transition(self.current_state, new_state):
                self.logger.warning(
                    f"Invalid state transition: {self.current_state.value} → {new_state.value}"
                )
                return False

            transition = StateTransition(self.current_state, new_state, reason)
            self.transitions.append(transition)

            if len(self.transitions) > self.max_history:
                self.transitions = self.transitions[-self.max_history:]

            old_state = self.current_state
            self.current_state = new_state
            self.state_start_time = time.time()

            if old_state == ConnectionState.CONNECTING and new_state == ConnectionState.DISCONNECTED:
                self.failure_count += 1
                self.last_failure = reason

            self.logger.info(f"State transition: {transition}")

            self.event_bus.emit(EventTypes.CONNECTION_STATE_CHANGE, {
                "from_state": old_state.value,
                "to_state": new_state.value,
                "reason": reason
            }, source="state_manager")

            self._undelivered.append((old_state, new_state))

        if notify:
            self.deliver_pending()
        return True

    def deliver_pending(self):
        """
        Call listeners for every queued transition, oldest first.

        Listeners never run under state_lock. One thread delivers at a time;
        a thread that finds delivery already running leaves its transitions
        to that thread, so order is kept without waiting on listener code.
        """
        with self.state_lock:
            if self._delivering:
                return
            self._delivering = True

        while True:
            with self.state_lock:
                if not self._undelivered:
                    self._delivering = False
                    return
                old_state, new_state = self._undelivered.popleft()
            self._notify_listeners(old_state, new_state)

    def add_listener(self, listener: Callable[[ConnectionState, ConnectionState], None]):
        """Add state change listener"""
        self.state_listeners.append(listener)

    def remove_listener(self, listener: Callable[[ConnectionState, ConnectionState], None]):
        """Remove state change listener"""
        if listener in self.state_listeners:
            self.state_listeners.remove(listener)

    def _is_valid_transition(self, from_state: ConnectionState, to_state: ConnectionState) -> bool:
        valid_targets = self.VALID_TRANSITIONS.get(from_state, [])
        return to_state in valid_targets

    def _notify_listeners(self, old_state: ConnectionState, new_state: ConnectionState):
        for listener in list(self.state_listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                self.logger.error(f"Error in state listener: {e}")

    def is_stopped(self) -> bool:
        with self.state_lock:
            return self.current_state == ConnectionState.STOPPED

    def get_state_duration(self) -> float:
        """Get duration in current state (seconds)"""
        with self.state_lock:
            return time.time() - self.state_start_time

    def get_transition_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent state transitions"""
        with self.state_lock:
            recent = self.transitions[-limit:] if self.transitions else []
            return [
                {
                    "from": t.from_state.value,
                    "to": t.to_state.value,
                    "reason": t.reason,
                    "timestamp": t.timestamp,
                    "datetime": t.datetime.isoformat()
                }
                for t in recent
            ]

    def get_stats(self) -> Dict[str, Any]:
        """Get state manager statistics"""
        with self.state_lock:
            return {
                "current_state": self.current_state.value,
                "state_duration": self.get_state_duration(),
                "transition_count": len(self.transitions),
                "failure_count": self.failure_count,
                "last_failure": self.last_failure
            }
