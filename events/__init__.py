"""
Diagnostic event tracking for the dashboard sync client
"""

from .event_bus import event_bus, EventBus, EventTypes, SystemEvent

__all__ = ['event_bus', 'EventBus', 'EventTypes', 'SystemEvent']
