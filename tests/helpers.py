import threading
import time
from typing import Any, Callable, Dict, List, Optional

from realtime.exceptions import ConnectError


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ---------------------------------------------------------------- payloads

def make_stats(**overrides: Any) -> Dict[str, Any]:
    stats = {
        "total_files": 5,
        "files_today": 2,
        "total_redactions": 40,
        "average_processing_time": 1.25,
        "last_updated": "2024-05-01T10:00:00Z",
    }
    stats.update(overrides)
    return stats


def make_activity(n: int, **overrides: Any) -> Dict[str, Any]:
    entry = {
        "id": f"act-{n}",
        "type": "redaction",
        "filename": f"file-{n}.pdf",
        "status": "completed",
        "timestamp": f"2024-05-01T10:{n % 60:02d}:00Z",
    }
    entry.update(overrides)
    return entry


def make_history(n: int, **overrides: Any) -> Dict[str, Any]:
    entry = {
        "id": f"hist-{n}",
        "filename": f"file-{n}.pdf",
        "file_type": "pdf",
        "processing_time": 1.5,
        "status": "completed",
        "timestamp": f"2024-05-01T10:{n % 60:02d}:00Z",
        "date": "2024-05-01",
    }
    entry.update(overrides)
    return entry


def make_snapshot_doc(activity=(), history=(), **stats: Any) -> Dict[str, Any]:
    return {
        "stats": make_stats(**stats),
        "recent_activity": list(activity),
        "redaction_history": list(history),
    }


def activity_update(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "activity_update", "data": entry}


def redaction_completed(**parts: Any) -> Dict[str, Any]:
    return {"type": "redaction_completed", "data": parts}


# ---------------------------------------------------------------- timers

class FakeTimer:
    """threading.Timer stand-in that only fires when the test says so"""

    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.function()


class FakeTimerFactory:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_pending(self):
        pending = self.pending
        assert len(pending) == 1, f"expected one pending retry, found {len(pending)}"
        pending[0].fire()


# ---------------------------------------------------------------- connections

class FakeConnection:
    """Push connection stand-in for supervisor and session tests"""

    def __init__(self, observer: Any, fail: Optional[str] = None):
        self.observer = observer
        self.fail = fail
        self.open_calls = 0
        self.close_calls = 0

    def open(self):
        self.open_calls += 1
        if self.fail:
            raise ConnectError("ws://dashboard.test/ws", self.fail)
        return self

    def close(self):
        self.close_calls += 1


class FakeConnectionFactory:
    def __init__(self, failures: Optional[List[Optional[str]]] = None, always_fail: Optional[str] = None):
        self.failures = list(failures or [])
        self.always_fail = always_fail
        self.connections: List[FakeConnection] = []

    def __call__(self, observer: Any) -> FakeConnection:
        fail = self.failures.pop(0) if self.failures else self.always_fail
        connection = FakeConnection(observer, fail)
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]


class FakeWebSocketApp:
    """Scripted websocket.WebSocketApp stand-in"""

    def __init__(self, url, header=None, on_open=None, on_message=None, on_error=None,
                 on_close=None, fail_with=None, hang=False):
        self.url = url
        self.header = header
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.on_close = on_close
        self.fail_with = fail_with
        self.hang = hang
        self.run_kwargs = None
        self.closed_by_client = False
        self.close_code = None
        self.close_msg = None
        self._stop = threading.Event()

    def run_forever(self, **kwargs):
        self.run_kwargs = kwargs
        if self.fail_with is not None:
            self.on_error(self, self.fail_with)
            self.on_close(self, None, None)
            return True
        if not self.hang:
            self.on_open(self)
        self._stop.wait(5)
        self.on_close(self, self.close_code, self.close_msg)
        return False

    def close(self, **kwargs):
        self.closed_by_client = True
        self._stop.set()

    # test controls
    def feed(self, message):
        self.on_message(self, message)

    def drop(self, code=1001, msg="going away", error=None):
        if error is not None:
            self.on_error(self, error)
        self.close_code = code
        self.close_msg = msg
        self._stop.set()


class FakeAppFactory:
    def __init__(self, fail_with=None, hang=False):
        self.fail_with = fail_with
        self.hang = hang
        self.apps: List[FakeWebSocketApp] = []

    def __call__(self, url, **kwargs) -> FakeWebSocketApp:
        app = FakeWebSocketApp(url, fail_with=self.fail_with, hang=self.hang, **kwargs)
        self.apps.append(app)
        return app

    @property
    def latest(self) -> FakeWebSocketApp:
        return self.apps[-1]


class RecordingObserver:
    def __init__(self):
        self.messages: List[Dict[str, Any]] = []
        self.stream_errors: List[Exception] = []
        self.lost: List[Exception] = []
        self.lost_event = threading.Event()

    def on_message(self, payload):
        self.messages.append(payload)

    def on_stream_error(self, error):
        self.stream_errors.append(error)

    def on_connection_lost(self, error):
        self.lost.append(error)
        self.lost_event.set()


class FakeFetcher:
    """Returns the queued results in order, repeating the last one"""

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls = 0

    def fetch(self):
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        self.calls += 1
        if callable(result):
            result = result()
        if isinstance(result, Exception):
            raise result
        return result
