"""
Event log for the replica-set disaster-recovery simulator.

Every engine call appends user-facing log events describing what happened,
in causal emission order. The log is append-only: extending it returns a
new ``EventLog`` and never touches the one held by an older snapshot.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Iterator


class EventType(Enum):
    """Kinds of log events shown to the operator."""

    INITIALIZATION = "initialization"
    FAILURE = "failure"
    RECOVERY_ACTION = "recovery_action"
    STATUS_CHANGE = "status_change"
    ELECTION = "election"
    QUORUM = "quorum"  # Majority lost / restored
    WARNING = "warning"
    SUCCESS = "success"


@dataclass(frozen=True)
class LogEvent:
    """A single entry in the simulation event log.

    Attributes:
        event_id: Unique identifier.
        timestamp: Wall-clock time the event was emitted (UTC).
        event_type: Kind of event.
        message: Short human-readable description.
        details: Optional longer explanation.
    """

    event_id: str
    timestamp: datetime
    event_type: EventType
    message: str
    details: str | None = None

    @classmethod
    def create(
        cls, event_type: EventType, message: str, details: str | None = None
    ) -> "LogEvent":
        """Build an event stamped with a fresh id and the current time."""
        return cls(
            event_id=f"event-{uuid.uuid4().hex[:12]}",
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            message=message,
            details=details,
        )

    def __repr__(self) -> str:
        return f"LogEvent({self.event_type.value}, {self.message!r})"


def warning(message: str, details: str | None = None) -> LogEvent:
    return LogEvent.create(EventType.WARNING, message, details)


@dataclass(frozen=True)
class EventLog:
    """Append-only, ordered collection of log events."""

    events: tuple[LogEvent, ...] = field(default_factory=tuple)

    def extend(self, new_events: Iterable[LogEvent]) -> "EventLog":
        """Return a log with ``new_events`` appended in order."""
        added = tuple(new_events)
        if not added:
            return self
        return EventLog(self.events + added)

    def of_type(self, event_type: EventType) -> list[LogEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def messages(self) -> list[str]:
        return [e.message for e in self.events]

    @property
    def last(self) -> LogEvent | None:
        return self.events[-1] if self.events else None

    def __iter__(self) -> Iterator[LogEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __getitem__(self, index):
        return self.events[index]

    def __repr__(self) -> str:
        return f"EventLog({len(self.events)} events)"
