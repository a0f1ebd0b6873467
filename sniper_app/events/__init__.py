"""Outbound events and sinks"""

from .bus import ErrorReport, Event, EventBus, EventType, ScanProgress
from .file_sink import JsonlEventSink

__all__ = [
    "ErrorReport",
    "Event",
    "EventBus",
    "EventType",
    "ScanProgress",
    "JsonlEventSink",
]
