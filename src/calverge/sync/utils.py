"""
Stateless helpers shared by the sync phases.
"""

from collections.abc import Iterable
from datetime import datetime

from calverge.models import EventSnapshot


def one_year_after(moment: datetime) -> datetime:
    """Return the same wall-clock time one calendar year later.

    Feb 29 has no counterpart in the next year and maps to Feb 28.
    """
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        return moment.replace(year=moment.year + 1, day=28)


def sync_window(now: datetime) -> tuple[datetime, datetime]:
    """The half-open range [now, now + 1 year) every sync phase works on."""
    return now, one_year_after(now)


def in_window(event: EventSnapshot, start: datetime, end: datetime) -> bool:
    """True when the event starts inside [start, end).

    Stores may return events that merely overlap the range (e.g. a recurring
    series that began last month); those must never be touched.
    """
    return start <= event.start < end


def event_label(event: EventSnapshot) -> str:
    return event.title or "Unknown"


def unique_ids(ids: Iterable[str]) -> list[str]:
    """Drop empty and repeated ids, keeping the first occurrence order."""
    seen: set[str] = set()
    result = []
    for calendar_id in ids:
        if not calendar_id or calendar_id in seen:
            continue
        seen.add(calendar_id)
        result.append(calendar_id)
    return result
