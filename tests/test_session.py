import threading
import time

import pytest

from core.state_manager import ConnectionState
from helpers import (
    FakeConnectionFactory,
    FakeFetcher,
    activity_update,
    make_activity,
    make_snapshot_doc,
    wait_for,
)
from realtime.exceptions import CloseError, FetchError, StreamError
from realtime.models import Snapshot
from realtime.session import DashboardSession

BASE_URL = "http://dashboard.test"


def snapshot_with(**stats):
    return Snapshot.from_dict(make_snapshot_doc(
        activity=[make_activity(i) for i in range(2)],
        **stats
    ))


@pytest.fixture
def make_session(connections, timers, bus):
    sessions = []

    def build(*results, **kwargs):
        fetcher = FakeFetcher(*(results or (snapshot_with(),)))
        session = DashboardSession(
            base_url=BASE_URL,
            fetcher=fetcher,
            connection_factory=kwargs.pop("connection_factory", connections),
            timer_factory=timers,
            event_bus=bus,
            **kwargs
        )
        sessions.append(session)
        return session

    yield build

    for session in sessions:
        session.shutdown()


def test_push_url_follows_base_url(make_session):
    session = make_session()

    assert session.push_url == "ws://dashboard.test/ws"


def test_start_loads_snapshot_then_connects(make_session):
    session = make_session(snapshot_with(total_files=42))

    session.start(connect_in_background=False)

    state = session.state
    assert state.stats.total_files == 42
    assert len(state.activities) == 2
    assert state.loading is False
    assert state.connection == "connected"
    assert session.connection_state == ConnectionState.CONNECTED


def test_connect_in_background(make_session):
    session = make_session()

    session.start()

    assert wait_for(lambda: session.state.connection == "connected")


def test_activity_update_example(make_session, connections):
    initial = Snapshot.from_dict({
        "stats": {"total_files": 5},
        "recent_activity": [],
        "redaction_history": [],
    })
    session = make_session(initial)
    session.start(connect_in_background=False)

    connections.latest.observer.on_message({
        "type": "activity_update",
        "data": {"file": "a.pdf", "action": "upload", "time": "10:00", "status": "done"},
    })

    state = session.state
    assert [e.to_dict() for e in state.activities] == [
        {"file": "a.pdf", "action": "upload", "time": "10:00", "status": "done"}
    ]
    assert state.stats.total_files == 5
    assert state.history == ()


def test_malformed_push_does_not_touch_state(make_session, connections):
    session = make_session()
    session.start(connect_in_background=False)
    before = session.state

    connections.latest.observer.on_stream_error(StreamError("not JSON", raw="{oops"))
    connections.latest.observer.on_message({"data": {}})

    assert session.state is before
    assert session.reconciler.stream_errors == 2


def test_subscribers_see_push_updates(make_session, connections):
    session = make_session()
    session.start(connect_in_background=False)
    seen = []
    unsubscribe = session.subscribe(seen.append)

    connections.latest.observer.on_message(activity_update(make_activity(7)))
    unsubscribe()
    connections.latest.observer.on_message(activity_update(make_activity(8)))

    assert len(seen) == 1
    assert seen[0].activities[0].id == "act-7"


def test_failed_refresh_keeps_data_and_sets_error(make_session):
    session = make_session(snapshot_with(total_files=3), FetchError("Snapshot request failed: HTTP 500", status=500))
    session.start(connect_in_background=False)

    assert session.refresh() is False

    state = session.state
    assert state.error == "Snapshot request failed: HTTP 500"
    assert state.stats.total_files == 3
    assert len(state.activities) == 2
    assert state.loading is False


def test_successful_refresh_clears_error(make_session):
    session = make_session(FetchError("offline"), snapshot_with(total_files=8))
    session.start(connect_in_background=False)
    assert session.state.error == "offline"

    assert session.refresh() is True

    assert session.state.error is None
    assert session.state.stats.total_files == 8


def test_unexpected_fetch_error_is_reported(make_session):
    session = make_session(RuntimeError("kaboom"))

    session.start(fetch_snapshot=True, connect_in_background=False)

    assert session.state.error == "Unexpected error: kaboom"


def test_loading_is_set_while_fetching(make_session):
    seen = []
    session = None

    def slow_fetch():
        seen.append(session.state.loading)
        return snapshot_with()

    session = make_session(slow_fetch)
    session.refresh()

    assert seen == [True]
    assert session.state.loading is False


def test_older_refresh_cannot_overwrite_newer_one(make_session):
    release = threading.Event()

    def slow_old_snapshot():
        release.wait(2)
        return snapshot_with(total_files=1)

    session = make_session(slow_old_snapshot, snapshot_with(total_files=2))

    session.refresh(background=True)
    assert wait_for(lambda: session.fetcher.calls == 1)
    assert session.refresh() is True
    release.set()

    assert wait_for(lambda: session.reconciler.snapshots_discarded == 1)
    assert session.state.stats.total_files == 2


def test_connection_state_is_mirrored(make_session, timers):
    connections = FakeConnectionFactory(failures=["refused"])
    session = make_session(connection_factory=connections)
    states = []
    session.subscribe(lambda state: states.append(state.connection))

    session.start(connect_in_background=False)
    timers.fire_pending()

    assert states[-4:] == ["connecting", "disconnected", "connecting", "connected"]


def test_connection_loss_keeps_data_and_reconnects(make_session, connections, timers):
    session = make_session(snapshot_with(total_files=5))
    session.start(connect_in_background=False)

    connections.latest.observer.on_connection_lost(CloseError(1006))

    assert session.state.connection == "disconnected"
    assert session.state.stats.total_files == 5
    assert [t.interval for t in timers.pending] == [3.0]

    timers.fire_pending()
    assert session.state.connection == "connected"


def test_shutdown_stops_everything(make_session, connections, timers):
    session = make_session()
    session.start(connect_in_background=False)
    connections.latest.observer.on_connection_lost(CloseError(1006))
    pending = timers.pending[0]

    session.shutdown()

    assert pending.cancelled
    assert session.state.connection == "stopped"
    assert session.refresh() is False

    session.start()
    assert len(connections.connections) == 1


def test_context_manager(make_session, connections):
    session = make_session()

    with session:
        assert wait_for(lambda: session.state.connection == "connected")

    assert session.connection_state == ConnectionState.STOPPED
    assert connections.latest.close_calls == 1


def test_periodic_refresh(make_session):
    session = make_session(poll_interval=0.05)
    session.start(connect_in_background=False)

    assert wait_for(lambda: session.fetcher.calls >= 3)

    session.shutdown()
    calls = session.fetcher.calls
    assert not session.poller.running
    assert session.fetcher.calls <= calls + 1


def test_stats(make_session):
    session = make_session()
    session.start(connect_in_background=False)

    stats = session.get_stats()

    assert stats["push_url"] == "ws://dashboard.test/ws"
    assert stats["connection"]["state"] == "connected"
    assert stats["reconciler"]["snapshots_applied"] == 1
    assert stats["polling"]["enabled"] is False


def test_subscriber_reading_session_while_connection_drops(make_session, connections):
    session = make_session()
    session.start(connect_in_background=False)
    observer = connections.latest.observer
    in_listener = threading.Event()
    readings = []

    def reader(state):
        if readings or not state.activities or state.activities[0].filename != "x.pdf":
            return
        in_listener.set()
        time.sleep(0.3)
        readings.append((session.connection_state, session.get_stats()["connection"]["state"]))

    def drop_connection():
        in_listener.wait(2)
        observer.on_connection_lost(CloseError(1006))

    session.subscribe(reader)
    push = threading.Thread(target=observer.on_message,
                            args=(activity_update(make_activity(1, filename="x.pdf")),), daemon=True)
    loss = threading.Thread(target=drop_connection, daemon=True)
    push.start()
    loss.start()
    push.join(3)
    loss.join(3)

    assert not push.is_alive()
    assert not loss.is_alive()
    assert readings == [(ConnectionState.DISCONNECTED, "disconnected")]
    assert session.state.connection == "disconnected"
    assert session.state.activities[0].filename == "x.pdf"
