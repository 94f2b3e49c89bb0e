import dataclasses

import pytest

from helpers import make_activity, make_history, make_snapshot_doc, make_stats
from realtime.exceptions import MalformedPayloadError, StreamError
from realtime.models import (
    ActivityEntry,
    DashboardState,
    DashboardStats,
    HistoryEntry,
    PushEvent,
    Snapshot,
)


class TestDashboardStats:
    def test_parses_known_fields(self):
        stats = DashboardStats.from_dict(make_stats())

        assert stats.total_files == 5
        assert stats.files_today == 2
        assert stats.total_redactions == 40
        assert stats.average_processing_time == 1.25
        assert stats.last_updated == "2024-05-01T10:00:00Z"

    def test_keeps_unknown_fields(self):
        stats = DashboardStats.from_dict(make_stats(queue_depth=3))

        assert stats.extra == {"queue_depth": 3}
        assert stats.to_dict()["queue_depth"] == 3

    def test_missing_fields_default(self):
        stats = DashboardStats.from_dict({})

        assert stats.total_files == 0
        assert stats.average_processing_time == 0.0
        assert stats.last_updated

    def test_numeric_strings_are_accepted(self):
        assert DashboardStats.from_dict({"total_files": "12"}).total_files == 12

    def test_null_counter_defaults_to_zero(self):
        stats = DashboardStats.from_dict(make_stats(total_files=None, average_processing_time=None))

        assert stats.total_files == 0
        assert stats.average_processing_time == 0.0
        assert stats.total_redactions == 40

    def test_whole_float_counter_is_accepted(self):
        assert DashboardStats.from_dict({"total_files": 5.0}).total_files == 5

    @pytest.mark.parametrize("value", ["lots", True, [1], 5.7, "5.7", float("inf")])
    def test_non_numeric_counter_is_malformed(self, value):
        with pytest.raises(MalformedPayloadError):
            DashboardStats.from_dict({"total_files": value})

    def test_non_object_is_malformed(self):
        with pytest.raises(MalformedPayloadError):
            DashboardStats.from_dict([1, 2, 3])


class TestActivityEntry:
    def test_current_field_names(self):
        entry = ActivityEntry.from_dict(make_activity(3, details={"pages": 2}))

        assert entry.id == "act-3"
        assert entry.type == "redaction"
        assert entry.filename == "file-3.pdf"
        assert entry.status == "completed"
        assert entry.details == {"pages": 2}

    def test_older_field_names(self):
        entry = ActivityEntry.from_dict({"file": "a.pdf", "action": "upload", "time": "10:00", "status": "done"})

        assert entry.filename == "a.pdf"
        assert entry.type == "upload"
        assert entry.timestamp == "10:00"

    def test_raw_payload_is_kept_and_read_only(self):
        payload = make_activity(1)
        entry = ActivityEntry.from_dict(payload)

        payload["status"] = "changed later"

        assert entry.raw["status"] == "completed"
        with pytest.raises(TypeError):
            entry.raw["status"] = "x"

    def test_nested_payload_is_copied_and_read_only(self):
        payload = make_activity(1, details={"pages": [1, 2], "reviewer": {"name": "ana"}})
        entry = ActivityEntry.from_dict(payload)

        payload["details"]["pages"].append(3)
        payload["details"]["reviewer"]["name"] = "bo"

        assert entry.details["pages"] == (1, 2)
        assert entry.raw["details"]["reviewer"]["name"] == "ana"
        with pytest.raises(TypeError):
            entry.details["reviewer"]["name"] = "x"
        with pytest.raises(AttributeError):
            entry.raw["details"]["pages"].append(4)

    def test_to_dict_returns_plain_copies(self):
        entry = ActivityEntry.from_dict(make_activity(1, details={"pages": [1, 2]}))

        data = entry.to_dict()
        data["details"]["pages"].append(3)

        assert data["details"] == {"pages": [1, 2, 3]}
        assert entry.details["pages"] == (1, 2)

    def test_entries_are_immutable(self):
        entry = ActivityEntry.from_dict(make_activity(1))

        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.status = "failed"


class TestHistoryEntry:
    def test_current_field_names(self):
        entry = HistoryEntry.from_dict(make_history(4))

        assert entry.filename == "file-4.pdf"
        assert entry.file_type == "pdf"
        assert entry.processing_time == 1.5
        assert entry.date == "2024-05-01"

    def test_camel_case_field_names(self):
        entry = HistoryEntry.from_dict({
            "fileName": "scan.png",
            "fileType": "image",
            "processingTime": "2.4s",
            "processedDate": "2024-05-02",
        })

        assert entry.filename == "scan.png"
        assert entry.file_type == "image"
        assert entry.processing_time == pytest.approx(2.4)
        assert entry.date == "2024-05-02"

    def test_bad_processing_time_is_malformed(self):
        with pytest.raises(MalformedPayloadError):
            HistoryEntry.from_dict({"processing_time": "slow"})


class TestSnapshot:
    def test_keeps_server_order(self):
        snapshot = Snapshot.from_dict(make_snapshot_doc(
            activity=[make_activity(i) for i in range(3)],
            history=[make_history(i) for i in range(3)],
        ))

        assert [e.id for e in snapshot.activity] == ["act-0", "act-1", "act-2"]
        assert [e.id for e in snapshot.history] == ["hist-0", "hist-1", "hist-2"]

    def test_missing_lists_are_empty(self):
        snapshot = Snapshot.from_dict({"stats": make_stats()})

        assert snapshot.activity == ()
        assert snapshot.history == ()

    def test_missing_stats_is_malformed(self):
        with pytest.raises(MalformedPayloadError):
            Snapshot.from_dict({"recent_activity": [], "redaction_history": []})

    def test_non_list_activity_is_malformed(self):
        doc = make_snapshot_doc()
        doc["recent_activity"] = {"id": "x"}

        with pytest.raises(MalformedPayloadError):
            Snapshot.from_dict(doc)

    def test_bad_entry_is_malformed(self):
        with pytest.raises(MalformedPayloadError):
            Snapshot.from_dict(make_snapshot_doc(history=["not an object"]))


class TestPushEvent:
    def test_parses_type_and_data(self):
        event = PushEvent.from_message({"type": "activity_update", "data": {"file": "a.pdf"}})

        assert event.type == "activity_update"
        assert event.data == {"file": "a.pdf"}

    def test_missing_data_is_empty(self):
        assert PushEvent.from_message({"type": "ping"}).data == {}

    @pytest.mark.parametrize("message", [
        {},
        {"type": None},
        {"type": ""},
        "activity_update",
    ])
    def test_malformed_messages(self, message):
        with pytest.raises(StreamError):
            PushEvent.from_message(message)

    @pytest.mark.parametrize("data", [[1, 2], "hello", 7])
    def test_non_object_data_is_kept_for_the_handler_to_judge(self, data):
        event = PushEvent.from_message({"type": "activity_update", "data": data})

        assert event.type == "activity_update"
        with pytest.raises(MalformedPayloadError):
            event.payload()

    def test_payload_returns_object_data(self):
        event = PushEvent.from_message({"type": "activity_update", "data": {"file": "a.pdf"}})

        assert event.payload() == {"file": "a.pdf"}


def test_state_evolve_returns_new_state():
    state = DashboardState()

    changed = state.evolve(loading=True)

    assert changed.loading is True
    assert state.loading is False


def test_state_to_dict():
    state = DashboardState(
        activities=(ActivityEntry.from_dict({"file": "a.pdf"}),),
        error="offline",
        connection="connected",
    )

    data = state.to_dict()

    assert data["activities"] == [{"file": "a.pdf"}]
    assert data["history"] == []
    assert data["error"] == "offline"
    assert data["connection"] == "connected"
