"""
Pure data models: no EDS imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from enum import Enum

BUSY_TITLE = "Busy"
DEFAULT_DISPLAY_NAME = "Unnamed Sync"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class PermissionDenied(CalendarSyncError):
    def __init__(self):
        super().__init__("Calendar access denied")


class CalendarNotFound(CalendarSyncError):
    def __init__(self, calendar_id: str):
        self.calendar_id = calendar_id
        super().__init__(f"Calendar not found: {calendar_id}")


class CalendarReadOnly(CalendarSyncError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Calendar '{name}' is read-only")


class NoValidSourceCalendars(CalendarSyncError):
    def __init__(self):
        super().__init__("No valid source calendars found")


class InvalidConfiguration(CalendarSyncError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Invalid configuration: {message}")


class EventOperationError(CalendarSyncError):
    """A single create/delete failed in the store. Never fatal for a run."""

    pass


class SyncMode(str, Enum):
    FULL = "full"
    BUSY_ONLY = "busy-only"

    @property
    def description(self) -> str:
        if self is SyncMode.FULL:
            return "Full event details (title, location, notes, etc.)"
        return "Busy time blocks only (no details)"


@dataclass(frozen=True)
class CalendarRef:
    """A calendar as reported by the store."""

    id: str
    title: str
    writable: bool
    account: str = ""


@dataclass(frozen=True)
class EventSnapshot:
    """Read-only view of a stored event."""

    event_id: str
    calendar_id: str
    start: datetime
    end: datetime
    all_day: bool = False
    title: str | None = None
    location: str | None = None
    notes: str | None = None
    recurrence_rules: tuple[str, ...] = ()
    alarms: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProvenanceTag:
    """Metadata identifying an event as created by calverge."""

    config_name: str
    mode: SyncMode
    source_id: str
    original_id: str
    sync_id: str
    timestamp: str


@dataclass(frozen=True)
class SyncedEventDraft:
    """An event the reconciler is about to create in the target calendar."""

    calendar_id: str
    start: datetime
    end: datetime
    all_day: bool
    title: str
    tag: ProvenanceTag
    notes: str
    location: str | None = None
    recurrence_rules: tuple[str, ...] = ()
    alarms: tuple[str, ...] = ()


@dataclass(frozen=True)
class SyncConfiguration:
    """Configuration for one sync run."""

    target_calendar_id: str
    source_calendar_ids: tuple[str, ...]
    name: str | None = None
    sync_mode: SyncMode = SyncMode.FULL
    include_details: bool = True
    dry_run: bool = False

    @property
    def display_name(self) -> str:
        return self.name or DEFAULT_DISPLAY_NAME


@dataclass(frozen=True)
class EventFailure:
    operation: str  # 'create' or 'delete'
    title: str
    error: str


@dataclass(frozen=True)
class EventOutcome:
    """Result of one per-event store operation."""

    ok: bool
    failure: EventFailure | None = None


@dataclass
class SourceResult:
    """Counts for one (source, target) reconciliation."""

    calendar: CalendarRef
    synced: int = 0
    cleaned: int = 0
    failures: list[EventFailure] = field(default_factory=list)

    def record(self, outcome: EventOutcome, operation: str) -> None:
        if outcome.ok:
            if operation == "create":
                self.synced += 1
            else:
                self.cleaned += 1
        elif outcome.failure is not None:
            self.failures.append(outcome.failure)


@dataclass
class SyncReport:
    """Aggregated result of a sync run."""

    display_name: str
    target: CalendarRef
    sources: list[SourceResult] = field(default_factory=list)
    skipped_source_ids: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total_synced(self) -> int:
        return sum(r.synced for r in self.sources)

    @property
    def total_cleaned(self) -> int:
        return sum(r.cleaned for r in self.sources)

    @property
    def failures(self) -> list[EventFailure]:
        return [f for r in self.sources for f in r.failures]
