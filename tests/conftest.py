"""
Shared pytest fixtures and event helpers.
"""

import logging
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from calverge.models import CalendarRef
from calverge.models import EventSnapshot
from calverge.models import SyncConfiguration
from calverge.models import SyncMode
from tests.fake_store import FakeCalendarStore

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

TARGET = CalendarRef(id="target-calendar", title="Personal", writable=True, account="Local")
SOURCE_A = CalendarRef(id="source-a", title="Work", writable=False, account="Exchange")
SOURCE_B = CalendarRef(id="source-b", title="Team", writable=True, account="Google")


def make_event(
    event_id: str,
    calendar: CalendarRef,
    start: datetime,
    hours: float = 1,
    **fields,
) -> EventSnapshot:
    """Return an EventSnapshot starting at ``start`` and lasting ``hours``."""
    fields.setdefault("title", f"Event {event_id}")
    return EventSnapshot(
        event_id=event_id,
        calendar_id=calendar.id,
        start=start,
        end=start + timedelta(hours=hours),
        **fields,
    )


def make_config(
    sources=(SOURCE_A.id,),
    mode: SyncMode = SyncMode.FULL,
    include_details: bool = True,
    **fields,
) -> SyncConfiguration:
    return SyncConfiguration(
        target_calendar_id=TARGET.id,
        source_calendar_ids=tuple(sources),
        sync_mode=mode,
        include_details=include_details,
        **fields,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def store():
    return FakeCalendarStore([TARGET, SOURCE_A, SOURCE_B])
