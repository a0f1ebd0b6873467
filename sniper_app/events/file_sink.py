"""JSONL event log for external consumers such as the dashboard."""

import fcntl
from pathlib import Path
from typing import Any, Iterable, Optional

import orjson
import structlog

from .bus import Event, EventType

logger = structlog.get_logger(__name__)


class JsonlEventSink:
    """Appends each event as one JSON object per line."""

    def __init__(self, output_path: str, event_types: Optional[Iterable[EventType]] = None,
                 create_dirs: bool = True):
        self.output_path = Path(output_path)
        self.event_types = frozenset(event_types) if event_types else None
        self._written = 0
        self._errors = 0

        if create_dirs:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def __call__(self, event: Event) -> None:
        if self.event_types is not None and event.type not in self.event_types:
            return

        try:
            line = orjson.dumps(event.to_dict(), default=str, option=orjson.OPT_APPEND_NEWLINE)
            with open(self.output_path, "ab") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.write(line)
            self._written += 1

        except OSError as e:
            self._errors += 1
            logger.warning(
                "Event log write failed",
                output_path=str(self.output_path),
                event_type=event.type.value,
                error=str(e)
            )

        except orjson.JSONEncodeError as e:
            self._errors += 1
            logger.error(
                "Event log encoding failed",
                event_type=event.type.value,
                error=str(e)
            )

    def read_events(self) -> list[dict[str, Any]]:
        """Parse every line written so far."""
        if not self.output_path.exists():
            return []
        with open(self.output_path, "rb") as f:
            return [orjson.loads(line) for line in f if line.strip()]

    def get_stats(self) -> dict[str, Any]:
        return {
            "output_path": str(self.output_path),
            "written": self._written,
            "errors": self._errors,
        }
