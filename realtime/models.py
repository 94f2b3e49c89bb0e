"""
Data models for the dashboard state and the messages that change it
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .exceptions import MalformedPayloadError


class PushEventTypes:
    """Recognized push event tags"""
    REDACTION_COMPLETED = "redaction_completed"
    ACTIVITY_UPDATE = "activity_update"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _frozen(value: Any) -> Any:
    """Read-only deep copy: mappings become mappingproxies and lists become tuples"""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _frozen(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_frozen(item) for item in value)
    return value


def _thawed(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thawed(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thawed(item) for item in value]
    return value


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedPayloadError(
            f"{what} must be an object, got {type(value).__name__}", raw=value
        )
    return value


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the value of the first key present and not null"""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any, field_name: str, cast: Callable[[Any], Any]) -> Any:
    if isinstance(value, bool):
        raise MalformedPayloadError(f"{field_name} must be numeric, got {value!r}", raw=value)
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise MalformedPayloadError(
            f"{field_name} must be numeric, got {value!r}", raw=value
        ) from None


def _count(data: Mapping[str, Any], field_name: str) -> int:
    """Whole-number counter; null counts as 0, 5.0 is accepted, 5.7 is not"""
    value = data.get(field_name)
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = _number(value, field_name, float)
    if not number.is_integer():
        raise MalformedPayloadError(f"{field_name} must be a whole number, got {value!r}", raw=value)
    return int(number)


def _seconds(value: Any) -> float:
    # History rows sometimes carry durations like "2.4s"
    if isinstance(value, str):
        value = value.strip().rstrip("s")
    return float(value)


@dataclass(frozen=True)
class DashboardStats:
    """Aggregate counters, always replaced as a whole"""
    total_files: int = 0
    files_today: int = 0
    total_redactions: int = 0
    average_processing_time: float = 0.0
    last_updated: str = field(default_factory=_utc_now_iso)
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    KNOWN_FIELDS = ("total_files", "files_today", "total_redactions",
                    "average_processing_time", "last_updated")

    @classmethod
    def from_dict(cls, data: Any) -> 'DashboardStats':
        """Create DashboardStats from a server payload"""
        data = _require_mapping(data, "stats")
        return cls(
            total_files=_count(data, "total_files"),
            files_today=_count(data, "files_today"),
            total_redactions=_count(data, "total_redactions"),
            average_processing_time=_number(
                _first(data, "average_processing_time", default=0.0), "average_processing_time", float
            ),
            last_updated=_text(data.get("last_updated")) or _utc_now_iso(),
            extra=_frozen({k: v for k, v in data.items() if k not in cls.KNOWN_FIELDS})
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **_thawed(self.extra),
            "total_files": self.total_files,
            "files_today": self.files_today,
            "total_redactions": self.total_redactions,
            "average_processing_time": self.average_processing_time,
            "last_updated": self.last_updated
        }


@dataclass(frozen=True)
class ActivityEntry:
    """One event in the recency-ordered activity feed"""
    id: str = ""
    type: str = ""
    filename: str = ""
    status: str = ""
    timestamp: str = ""
    details: Optional[Any] = None
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Any) -> 'ActivityEntry':
        """
        Create an ActivityEntry from a server payload

        Both feed shapes the server has used are accepted: ``filename``/``type``/
        ``timestamp`` and the older ``file``/``action``/``time``. A read-only copy
        of the payload is kept in ``raw``.

        Raises:
            MalformedPayloadError: If the payload is not an object
        """
        data = _require_mapping(data, "activity entry")
        return cls(
            id=_text(data.get("id")),
            type=_text(_first(data, "type", "action")),
            filename=_text(_first(data, "filename", "file")),
            status=_text(data.get("status")),
            timestamp=_text(_first(data, "timestamp", "time")),
            details=_frozen(data.get("details")),
            raw=_frozen(data)
        )

    def to_dict(self) -> Dict[str, Any]:
        return _thawed(self.raw)


@dataclass(frozen=True)
class HistoryEntry:
    """One completed unit of processing work"""
    id: str = ""
    filename: str = ""
    file_type: str = ""
    processing_time: float = 0.0
    status: str = ""
    timestamp: str = ""
    date: str = ""
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Any) -> 'HistoryEntry':
        """Create a HistoryEntry from a server payload"""
        data = _require_mapping(data, "history entry")
        return cls(
            id=_text(data.get("id")),
            filename=_text(_first(data, "filename", "fileName")),
            file_type=_text(_first(data, "file_type", "fileType")),
            processing_time=_number(
                _first(data, "processing_time", "processingTime", default=0.0),
                "processing_time", _seconds
            ),
            status=_text(data.get("status")),
            timestamp=_text(data.get("timestamp")),
            date=_text(_first(data, "date", "processedDate")),
            raw=_frozen(data)
        )

    def to_dict(self) -> Dict[str, Any]:
        return _thawed(self.raw)


def _entries(value: Any, what: str, parse: Callable[[Any], Any]) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise MalformedPayloadError(f"{what} must be an array, got {type(value).__name__}", raw=value)
    return tuple(parse(item) for item in value)


@dataclass(frozen=True)
class Snapshot:
    """A full, self-consistent copy of the server state"""
    stats: DashboardStats
    activity: Tuple[ActivityEntry, ...] = ()
    history: Tuple[HistoryEntry, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> 'Snapshot':
        """
        Create a Snapshot from the dashboard document

        Args:
            data: Decoded ``{stats, recent_activity, redaction_history}`` document

        Returns:
            Snapshot with lists in server order

        Raises:
            MalformedPayloadError: If the document or any entry is malformed
        """
        data = _require_mapping(data, "snapshot")
        if data.get("stats") is None:
            raise MalformedPayloadError("snapshot is missing stats", raw=data)
        return cls(
            stats=DashboardStats.from_dict(data["stats"]),
            activity=_entries(data.get("recent_activity"), "recent_activity", ActivityEntry.from_dict),
            history=_entries(data.get("redaction_history"), "redaction_history", HistoryEntry.from_dict)
        )


@dataclass(frozen=True)
class PushEvent:
    """
    An incremental update delivered over the push channel

    ``data`` is whatever the server sent under ``data`` (null becomes an
    empty object). Its shape is only checked by the handler for the tag,
    so a tag this client does not know is never rejected for its payload.
    """
    type: str
    data: Any = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_message(cls, message: Any) -> 'PushEvent':
        """Create a PushEvent from a decoded ``{type, data}`` message"""
        message = _require_mapping(message, "push message")
        event_type = message.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise MalformedPayloadError("push message has no type tag", raw=message)
        data = message.get("data")
        if data is None:
            data = {}
        return cls(type=event_type, data=_frozen(data))

    def payload(self) -> Mapping[str, Any]:
        """
        Return ``data`` as an object

        Raises:
            MalformedPayloadError: If the server sent something else
        """
        return _require_mapping(self.data, f"{self.type} data")


@dataclass(frozen=True)
class DashboardState:
    """Immutable view of the reconciled state handed to subscribers"""
    stats: DashboardStats = field(default_factory=DashboardStats)
    activities: Tuple[ActivityEntry, ...] = ()
    history: Tuple[HistoryEntry, ...] = ()
    loading: bool = False
    error: Optional[str] = None
    connection: str = "disconnected"

    def evolve(self, **changes: Any) -> 'DashboardState':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "activities": [entry.to_dict() for entry in self.activities],
            "history": [entry.to_dict() for entry in self.history],
            "loading": self.loading,
            "error": self.error,
            "connection": self.connection
        }
