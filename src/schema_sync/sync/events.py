"""Progress events emitted by the sync engine.

The engine reports through an ``EventSink``.  Two renderings ship:
human-readable status lines on a rich console, and newline-delimited JSON
for tooling.  Every message is redacted before it reaches a sink.

Usage:
    from schema_sync.sync.events import ConsoleEventSink, EventKind

    sink = ConsoleEventSink()
    sink.emit(EventKind.PLAN_COMPUTED, "2 statements", statement_count=2)
"""

import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, TextIO

from pydantic import BaseModel, Field
from rich.console import Console
from rich.markup import escape

from schema_sync.errors import sanitize_connection_string


class EventKind(str, Enum):
    """Kinds of progress events."""

    PLAN_COMPUTED = "plan_computed"
    APPLY_STARTED = "apply_started"
    APPLY_SUCCEEDED = "apply_succeeded"
    APPLY_FAILED = "apply_failed"
    FINGERPRINT_CONFLICT = "fingerprint_conflict"
    PULL_COMPLETED = "pull_completed"
    SEED_COMPLETED = "seed_completed"
    SYNC_STARTED = "sync_started"
    FILE_CHANGED = "file_changed"


class SyncEvent(BaseModel):
    """One progress event.

    Attributes:
        kind: Event kind.
        message: Redacted, human-readable summary.
        data: Kind-specific payload (counts, previews, file lists).
        timestamp: UTC time the event was created.
    """

    kind: EventKind
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EventSink(Protocol):
    """Receives progress events."""

    def emit(self, kind: EventKind, message: str = "", **data: Any) -> None: ...


def make_event(kind: EventKind, message: str = "", **data: Any) -> SyncEvent:
    """Build an event with its message redacted."""
    return SyncEvent(kind=kind, message=sanitize_connection_string(message), data=data)


# ============================================================================
# Sinks
# ============================================================================


class NullEventSink:
    """Discards every event."""

    def emit(self, kind: EventKind, message: str = "", **data: Any) -> None:
        pass


class RecordingEventSink:
    """Keeps events in memory; used by the watch loop tests and callers that
    want to inspect what happened after the fact."""

    def __init__(self) -> None:
        self.events: list[SyncEvent] = []

    def emit(self, kind: EventKind, message: str = "", **data: Any) -> None:
        self.events.append(make_event(kind, message, **data))

    @property
    def kinds(self) -> list[EventKind]:
        return [e.kind for e in self.events]


class JsonEventSink:
    """Writes one JSON object per line.

    Args:
        stream: Output stream (default: stdout).
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def emit(self, kind: EventKind, message: str = "", **data: Any) -> None:
        event = make_event(kind, message, **data)
        self._stream.write(event.model_dump_json() + "\n")
        self._stream.flush()


_STYLES: dict[EventKind, str] = {
    EventKind.PLAN_COMPUTED: "cyan",
    EventKind.APPLY_STARTED: "dim",
    EventKind.APPLY_SUCCEEDED: "green",
    EventKind.APPLY_FAILED: "bold red",
    EventKind.FINGERPRINT_CONFLICT: "yellow",
    EventKind.PULL_COMPLETED: "green",
    EventKind.SEED_COMPLETED: "green",
    EventKind.SYNC_STARTED: "dim",
    EventKind.FILE_CHANGED: "dim",
}


class ConsoleEventSink:
    """Renders events as status lines on a rich console.

    Args:
        console: Console to print to (default: a new stdout console).
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def emit(self, kind: EventKind, message: str = "", **data: Any) -> None:
        event = make_event(kind, message, **data)
        style = _STYLES.get(kind, "none")
        self._console.print(f"[{style}]{event.kind.value}[/{style}] {escape(event.message)}", highlight=False)
