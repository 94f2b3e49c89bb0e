"""
Central event bus for tracking and broadcasting diagnostic events
"""

import time
import threading
from typing import Dict, Any, List, Callable, Optional
from queue import Queue, Empty
from collections import defaultdict
from datetime import datetime
import logging
import uuid

logger = logging.getLogger(__name__)


class SystemEvent:
    """Represents a system event"""

    def __init__(self, event_type: str, data: Dict[str, Any], source: Optional[str] = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()
        self.datetime = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": self.datetime
        }


class EventBus:
    """Central event bus for system-wide event tracking"""

    def __init__(self, max_history: int = 1000):
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.event_queue = Queue()
        self.event_history: List[SystemEvent] = []
        self.max_history = max_history
        self._history_lock = threading.Lock()
        self._running = True
        self._processor_thread = threading.Thread(
            target=self._process_events, daemon=True, name="EventBus"
        )
        self._processor_thread.start()

        # Performance metrics
        self.event_counts = defaultdict(int)
        self.processing_times = defaultdict(list)

    def emit(self, event_type: str, data: Dict[str, Any], source: Optional[str] = None):
        """Emit an event to the bus"""
        event = SystemEvent(event_type, data, source)
        self.event_queue.put(event)

    def on(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Register a listener for specific event type"""
        self.listeners[event_type].append(callback)

    def on_all(self, callback: Callable[[SystemEvent], None]):
        """Register a listener for all events"""
        self.listeners["*"].append(callback)

    def off(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Remove a listener"""
        if callback in self.listeners[event_type]:
            self.listeners[event_type].remove(callback)

    def _process_events(self):
        """Process events from the queue"""
        while self._running:
            try:
                event = self.event_queue.get(timeout=0.1)
            except Empty:
                continue

            try:
                start_time = time.time()
                self.event_counts[event.type] += 1

                with self._history_lock:
                    self.event_history.append(event)
                    if len(self.event_history) > self.max_history:
                        self.event_history.pop(0)

                for listener in list(self.listeners.get(event.type, [])):
                    try:
                        listener(event)
                    except Exception as e:
                        logger.error(f"Error in event listener for {event.type}: {e}")

                for listener in list(self.listeners.get("*", [])):
                    try:
                        listener(event)
                    except Exception as e:
                        logger.error(f"Error in wildcard event listener: {e}")

                processing_time = time.time() - start_time
                self.processing_times[event.type].append(processing_time)
                if len(self.processing_times[event.type]) > 100:
                    self.processing_times[event.type].pop(0)
            except Exception as e:
                logger.error(f"Error processing event: {e}")
            finally:
                self.event_queue.task_done()

    def wait_until_idle(self, timeout: float = 2.0) -> bool:
        """Block until every queued event has been dispatched"""
        deadline = time.time() + timeout
        while self.event_queue.unfinished_tasks:
            if time.time() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics"""
        stats = {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "queue_size": self.event_queue.qsize(),
            "history_size": len(self.event_history),
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
            }
        }

        avg_times = {}
        for event_type, times in self.processing_times.items():
            if times:
                avg_times[event_type] = sum(times) / len(times)
        stats["avg_processing_times"] = avg_times

        return stats

    def get_recent_events(self, count: int = 50, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recent events from history"""
        with self._history_lock:
            events = list(self.event_history)

        if event_type:
            events = [e for e in events if e.type == event_type]

        return [e.to_dict() for e in events[-count:]]

    def shutdown(self):
        """Shutdown the event bus"""
        self._running = False
        if self._processor_thread.is_alive():
            self._processor_thread.join(timeout=2.0)


# Global event bus instance
event_bus = EventBus()


# Event type constants
class EventTypes:
    # Connection events
    CONNECTION_STATE_CHANGE = "connection.state_change"
    CONNECTION_RETRY_SCHEDULED = "connection.retry_scheduled"
    CONNECTION_RETRY_EXHAUSTED = "connection.retry_exhausted"

    # Push channel events
    PUSH_EVENT_APPLIED = "push.event_applied"
    PUSH_EVENT_IGNORED = "push.event_ignored"
    PUSH_PARSE_ERROR = "push.parse_error"

    # Snapshot events
    SNAPSHOT_FETCH_START = "snapshot.fetch_start"
    SNAPSHOT_APPLIED = "snapshot.applied"
    SNAPSHOT_FETCH_ERROR = "snapshot.fetch_error"
    SNAPSHOT_DISCARDED = "snapshot.discarded"

    # System events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"
