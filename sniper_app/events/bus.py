"""
Outbound event bus.

Components publish discoveries, signals, position changes, scan progress and
errors here. Subscribers run synchronously on the publishing thread; a
failing subscriber is logged and never affects the publisher or the other
subscribers.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from ..utils.time import format_time, utc_now

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Outbound event names."""
    DISCOVERY = "discovery"
    SIGNAL = "signal"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    SCAN_PROGRESS = "scan_progress"
    ERROR = "error"


@dataclass(frozen=True)
class ScanProgress:
    """Pairs scanned so far on one venue in the current pass."""
    venue: str
    current: int
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {"venue": self.venue, "current": self.current, "total": self.total}


@dataclass(frozen=True)
class ErrorReport:
    """Failure published for operators; ``stage`` names the pipeline step."""
    message: str
    stage: str
    instrument: Optional[str] = None
    venue: Optional[str] = None
    error_type: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "context": {
                "stage": self.stage,
                "instrument": self.instrument,
                "venue": self.venue,
                "error_type": self.error_type,
                **self.context,
            },
        }


@dataclass(frozen=True)
class Event:
    """Published event."""
    type: EventType
    payload: Any
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        payload = self.payload.to_dict() if hasattr(self.payload, "to_dict") else self.payload
        return {
            "type": self.type.value,
            "timestamp": format_time(self.timestamp),
            "data": payload,
        }


Handler = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe dispatcher."""

    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)
        self._global_handlers: list[Handler] = []
        self._lock = threading.Lock()
        self._counts: dict[str, int] = defaultdict(int)
        self._handler_failures = 0

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Receive every event type."""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

    def emit(self, event_type: EventType, payload: Any) -> Event:
        """
        Publish an event to its subscribers.

        Args:
            event_type: Event name
            payload: Event body; objects with ``to_dict`` serialize through it

        Returns:
            The published event
        """
        event = Event(type=event_type, payload=payload, timestamp=utc_now())

        with self._lock:
            handlers = list(self._handlers[event_type]) + list(self._global_handlers)
            self._counts[event_type.value] += 1

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                with self._lock:
                    self._handler_failures += 1
                logger.error(
                    "Event handler failed",
                    event_type=event_type.value,
                    handler=getattr(handler, "__name__", type(handler).__name__),
                    error=str(e),
                    exc_info=True
                )

        return event

    def error(self, message: str, stage: str, instrument: Optional[str] = None,
              venue: Optional[str] = None, error: Optional[BaseException] = None,
              **context: Any) -> Event:
        """Publish an ``error`` event with pipeline context."""
        report = ErrorReport(
            message=message,
            stage=stage,
            instrument=instrument,
            venue=venue,
            error_type=type(error).__name__ if error is not None else None,
            context=context,
        )
        return self.emit(EventType.ERROR, report)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "events": dict(self._counts),
                "handler_failures": self._handler_failures,
            }
