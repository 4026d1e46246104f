"""
Calendar store contract used by the sync engine.

EDSCalendarStore (eds_client.py) is the production implementation; the test
suite uses an in-memory fake with the same duck-type.
"""

from collections.abc import Iterable
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from calverge.models import CalendarRef
from calverge.models import EventSnapshot
from calverge.models import SyncedEventDraft


class CalendarStore(Protocol):
    def request_access(self) -> bool:
        """Ask for calendar access. May block until the platform answers."""
        ...

    def list_calendars(self) -> Sequence[CalendarRef]: ...

    def query_events(
        self, calendars: Iterable[CalendarRef], start: datetime, end: datetime
    ) -> Sequence[EventSnapshot]: ...

    def create_event(self, draft: SyncedEventDraft) -> None:
        """Save a new event. Raises EventOperationError on failure."""
        ...

    def delete_event(self, event: EventSnapshot) -> None:
        """Remove an event. Raises EventOperationError on failure."""
        ...

