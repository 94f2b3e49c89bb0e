"""
Realtime dashboard state synchronization: snapshot pull, push stream, reconciliation
"""

from .exceptions import SyncException, ConnectError, CloseError, StreamError, MalformedPayloadError, FetchError
from .models import (
    ActivityEntry,
    DashboardState,
    DashboardStats,
    HistoryEntry,
    PushEvent,
    PushEventTypes,
    Snapshot,
)
from .reconciler import StateReconciler, ACTIVITY_FEED_LIMIT
from .snapshot_fetcher import SnapshotFetcher
from .transport import PushConnection, TransportState
from .poller import PeriodicRefresher
from .session import DashboardSession

__all__ = [
    "SyncException",
    "ConnectError",
    "CloseError",
    "StreamError",
    "MalformedPayloadError",
    "FetchError",
    "ActivityEntry",
    "DashboardState",
    "DashboardStats",
    "HistoryEntry",
    "PushEvent",
    "PushEventTypes",
    "Snapshot",
    "StateReconciler",
    "ACTIVITY_FEED_LIMIT",
    "SnapshotFetcher",
    "PushConnection",
    "TransportState",
    "PeriodicRefresher",
    "DashboardSession",
]
