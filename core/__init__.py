"""
Core system components for connection state and retry management
"""

from .state_manager import StateManager, ConnectionState
from .retry_policy import RetryPolicy, RetryReason, FixedDelayPolicy, ExponentialBackoffPolicy, build_retry_policy
from .reconnect_supervisor import ReconnectionSupervisor

__all__ = [
    "StateManager",
    "ConnectionState",
    "RetryPolicy",
    "RetryReason",
    "FixedDelayPolicy",
    "ExponentialBackoffPolicy",
    "build_retry_policy",
    "ReconnectionSupervisor",
]
