"""
iCalendar conversions between ICalGLib components and calverge models.

Recurring series are expanded into one EventSnapshot per occurrence, the way a
calendar view shows them. A detached instance (a VEVENT with RECURRENCE-ID)
takes the place of the slot its master would have generated, so every
occurrence is reported exactly once.
"""

import logging
from collections.abc import Iterable
from collections.abc import Iterator
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import NamedTuple
from typing import Optional
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

import gi
gi.require_version('ICalGLib', '3.0')
from gi.repository import ICalGLib

from .models import EventOperationError
from .models import EventSnapshot
from .models import SyncedEventDraft

_logger = logging.getLogger(__name__)

# Upper bound on RecurIterator steps per rule; unbounded minutely rules
# starting years ago would otherwise spin for a long time.
_MAX_ITERATIONS = 50000

_UTC_KEYS = {"UTC", "Etc/UTC"}


class StoredEvent(NamedTuple):
    """A snapshot plus the (uid, rid) pair EDS uses to address it."""

    uid: str
    rid: Optional[str]
    snapshot: EventSnapshot


def parse_component(obj) -> ICalGLib.Component:
    """Handle both string and native Component objects from EDS API."""
    if isinstance(obj, str):
        return ICalGLib.Component.new_from_string(obj)
    return obj


def iter_vevents(comp: ICalGLib.Component) -> Iterator[ICalGLib.Component]:
    if comp.isa() == ICalGLib.ComponentKind.VCALENDAR_COMPONENT:
        vevent = comp.get_first_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)
        while vevent:
            yield vevent
            vevent = comp.get_next_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)
    elif comp.isa() == ICalGLib.ComponentKind.VEVENT_COMPONENT:
        yield comp


# ---------------------------------------------------------------------------
# Time conversion
# ---------------------------------------------------------------------------


def zone_for_tzid(tzid: Optional[str]) -> Optional[ZoneInfo]:
    """Resolve a TZID to an IANA zone, or None.

    libical's builtin zones carry a prefix, e.g.
    ``/freeassociation.sourceforge.net/Europe/Berlin``; the longest suffix
    that names a known zone wins.
    """
    if not tzid:
        return None
    parts = tzid.strip("/").split("/")
    for i in range(len(parts)):
        try:
            return ZoneInfo("/".join(parts[i:]))
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return None


def _wall_clock(t: ICalGLib.Time) -> datetime:
    if t.is_date():
        return datetime(t.get_year(), t.get_month(), t.get_day())
    return datetime(
        t.get_year(), t.get_month(), t.get_day(),
        t.get_hour(), t.get_minute(), t.get_second(),
    )


def _localize(wall: datetime, is_date: bool, is_utc: bool, tzid: Optional[str]) -> datetime:
    if is_date:
        return wall.astimezone()
    if is_utc:
        return wall.replace(tzinfo=timezone.utc)
    zone = zone_for_tzid(tzid)
    if zone is not None:
        return wall.replace(tzinfo=zone)
    if tzid:
        _logger.debug("Unknown TZID %s, treating as local time", tzid)
    return wall.astimezone()


def ical_time_to_datetime(t: ICalGLib.Time, tzid: Optional[str]) -> datetime:
    """Convert an ICalGLib.Time to an aware datetime.

    Date-only values become local midnight. TZIDs that are not IANA names
    (Exchange uses Windows zone names) fall back to local time.
    """
    return _localize(_wall_clock(t), t.is_date(), t.is_utc(), tzid)


def builtin_zone(value: datetime) -> Optional[ICalGLib.Timezone]:
    """The libical zone matching an IANA-zoned datetime, if there is one."""
    key = getattr(value.tzinfo, "key", None)
    if not key or key in _UTC_KEYS:
        return None
    return ICalGLib.Timezone.get_builtin_timezone(key)


def datetime_to_ical_time(value: datetime, all_day: bool) -> ICalGLib.Time:
    """Convert a datetime for DTSTART/DTEND.

    IANA-zoned values keep their wall-clock time and zone, so recurrence
    rules copied alongside still expand across DST changes. Anything else is
    written as UTC.
    """
    if all_day:
        return ICalGLib.Time.new_from_string(value.strftime("%Y%m%d"))
    zone = builtin_zone(value)
    if zone is None:
        return ICalGLib.Time.new_from_string(
            value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        )
    t = ICalGLib.Time.new_from_string(value.strftime("%Y%m%dT%H%M%S"))
    t.set_timezone(zone)
    return t


def recurrence_key(moment: datetime, all_day: bool) -> str:
    """RECURRENCE-ID string for an occurrence, in the form EDS expects."""
    if all_day:
        return moment.strftime("%Y%m%d")
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


# ---------------------------------------------------------------------------
# VEVENT → EventSnapshot
# ---------------------------------------------------------------------------


def _tzid(prop: Optional[ICalGLib.Property]) -> Optional[str]:
    if not prop:
        return None
    param = prop.get_first_parameter(ICalGLib.ParameterKind.TZID_PARAMETER)
    return param.get_tzid() if param else None


def _property_times(
    vevent: ICalGLib.Component, kind: ICalGLib.PropertyKind, getter
) -> list[tuple[ICalGLib.Time, Optional[str]]]:
    """Collect (time, tzid) pairs from every property of one kind."""
    found = []
    prop = vevent.get_first_property(kind)
    while prop:
        tzid = _tzid(prop)
        value = getter(prop)
        if value is None or value.is_null_time():
            # libical-glib returns null_time for some VALUE=DATE lists
            text = prop.get_value_as_string() or ""
            values = [ICalGLib.Time.new_from_string(v) for v in text.split(",") if v.strip()]
        else:
            values = [value]
        found.extend((v, tzid) for v in values if v is not None and not v.is_null_time())
        prop = vevent.get_next_property(kind)
    return found


def _rdate_time(prop: ICalGLib.Property) -> Optional[ICalGLib.Time]:
    period = prop.get_rdate()
    return period.get_time() if period else None


def _event_times(vevent: ICalGLib.Component) -> tuple[datetime, datetime, bool]:
    dtstart = vevent.get_dtstart()
    all_day = dtstart.is_date()
    start = ical_time_to_datetime(
        dtstart, _tzid(vevent.get_first_property(ICalGLib.PropertyKind.DTSTART_PROPERTY))
    )
    dtend = vevent.get_dtend()
    if dtend is None or dtend.is_null_time():
        end = start + (timedelta(days=1) if all_day else timedelta(0))
    else:
        end = ical_time_to_datetime(
            dtend, _tzid(vevent.get_first_property(ICalGLib.PropertyKind.DTEND_PROPERTY))
        )
    return start, end, all_day


def _alarms(vevent: ICalGLib.Component) -> tuple[str, ...]:
    alarms = []
    alarm = vevent.get_first_component(ICalGLib.ComponentKind.VALARM_COMPONENT)
    while alarm:
        alarms.append(alarm.as_ical_string())
        alarm = vevent.get_next_component(ICalGLib.ComponentKind.VALARM_COMPONENT)
    return tuple(alarms)


def _snapshot(
    vevent: ICalGLib.Component,
    calendar_id: str,
    event_id: str,
    start: datetime,
    end: datetime,
    all_day: bool,
) -> EventSnapshot:
    return EventSnapshot(
        event_id=event_id,
        calendar_id=calendar_id,
        start=start,
        end=end,
        all_day=all_day,
        title=vevent.get_summary(),
        location=vevent.get_location(),
        notes=vevent.get_description(),
        alarms=_alarms(vevent),
    )


def _is_recurring(vevent: ICalGLib.Component) -> bool:
    return bool(
        vevent.get_first_property(ICalGLib.PropertyKind.RRULE_PROPERTY)
        or vevent.get_first_property(ICalGLib.PropertyKind.RDATE_PROPERTY)
    )


def _iterator_seed(dtstart: ICalGLib.Time) -> ICalGLib.Time:
    """Floating copy of DTSTART for RecurIterator (TZID-safety workaround)."""
    text = f"{dtstart.get_year():04d}{dtstart.get_month():02d}{dtstart.get_day():02d}"
    if not dtstart.is_date():
        text += f"T{dtstart.get_hour():02d}{dtstart.get_minute():02d}{dtstart.get_second():02d}"
        if dtstart.is_utc():
            text += "Z"
    return ICalGLib.Time.new_from_string(text)


def _rule_until(rule: ICalGLib.Recurrence) -> Optional[datetime]:
    until = rule.get_until()
    if until is None or until.is_null_time():
        return None
    if until.is_date():
        # A date-only UNTIL includes that whole day.
        return _wall_clock(until).astimezone() + timedelta(days=1) - timedelta(seconds=1)
    return ical_time_to_datetime(until, None)


def _occurrence_starts(
    master: ICalGLib.Component, first: datetime, all_day: bool, window_end: datetime
) -> list[datetime]:
    """Start of every non-excluded occurrence of a series before window_end."""
    dtstart = master.get_dtstart()
    tzid = _tzid(master.get_first_property(ICalGLib.PropertyKind.DTSTART_PROPERTY))
    starts = {first}

    prop = master.get_first_property(ICalGLib.PropertyKind.RRULE_PROPERTY)
    while prop:
        rule = prop.get_rrule()
        # RecurIterator does not reliably stop at UNTIL when DTSTART has a TZID.
        until = _rule_until(rule)
        it = ICalGLib.RecurIterator.new(rule, _iterator_seed(dtstart))
        for _ in range(_MAX_ITERATIONS):
            occ = it.next()
            if occ is None or occ.is_null_time():
                break
            moment = _localize(_wall_clock(occ), all_day, dtstart.is_utc(), tzid)
            if moment >= window_end or (until is not None and moment > until):
                break
            starts.add(moment)
        else:
            _logger.debug("Stopped expanding %s after %d steps", master.get_uid(), _MAX_ITERATIONS)
        prop = master.get_next_property(ICalGLib.PropertyKind.RRULE_PROPERTY)

    for t, rdate_tzid in _property_times(master, ICalGLib.PropertyKind.RDATE_PROPERTY, _rdate_time):
        starts.add(ical_time_to_datetime(t, rdate_tzid or tzid))

    excluded: set[str] = set()
    excluded_days: set[str] = set()
    for t, ex_tzid in _property_times(
        master, ICalGLib.PropertyKind.EXDATE_PROPERTY, lambda p: p.get_exdate()
    ):
        if t.is_date() and not all_day:
            excluded_days.add(_wall_clock(t).strftime("%Y%m%d"))
        else:
            excluded.add(recurrence_key(ical_time_to_datetime(t, ex_tzid or tzid), all_day))

    return sorted(
        moment
        for moment in starts
        if recurrence_key(moment, all_day) not in excluded
        and (all_day or moment.strftime("%Y%m%d") not in excluded_days)
    )


def expand_vevents(
    vevents: Iterable[ICalGLib.Component],
    calendar_id: str,
    window_start: datetime,
    window_end: datetime,
) -> list[StoredEvent]:
    """Turn stored VEVENTs into one StoredEvent per occurrence overlapping the window.

    Single events keep their UID as event id. Occurrences of a series and
    detached instances use ``<uid>#<recurrence-id>``.
    """
    events: list[StoredEvent] = []
    masters = []
    detached: dict[str, set[str]] = {}

    for vevent in vevents:
        uid = vevent.get_uid() or ""
        rid_prop = vevent.get_first_property(ICalGLib.PropertyKind.RECURRENCEID_PROPERTY)
        if rid_prop:
            rid_time = rid_prop.get_recurrenceid()
            rid = recurrence_key(ical_time_to_datetime(rid_time, _tzid(rid_prop)), rid_time.is_date())
            detached.setdefault(uid, set()).add(rid)
            start, end, all_day = _event_times(vevent)
            snapshot = _snapshot(vevent, calendar_id, f"{uid}#{rid}", start, end, all_day)
            events.append(StoredEvent(uid, rid, snapshot))
        elif _is_recurring(vevent):
            masters.append(vevent)
        else:
            start, end, all_day = _event_times(vevent)
            events.append(StoredEvent(uid, None, _snapshot(vevent, calendar_id, uid, start, end, all_day)))

    for master in masters:
        uid = master.get_uid() or ""
        first, first_end, all_day = _event_times(master)
        duration = first_end - first
        replaced = detached.get(uid, set())
        for start in _occurrence_starts(master, first, all_day, window_end):
            rid = recurrence_key(start, all_day)
            end = start + duration
            if rid in replaced or (end <= window_start and start < window_start):
                continue
            snapshot = _snapshot(master, calendar_id, f"{uid}#{rid}", start, end, all_day)
            events.append(StoredEvent(uid, rid, snapshot))

    events.sort(key=lambda e: e.snapshot.start)
    return events


# ---------------------------------------------------------------------------
# SyncedEventDraft → VEVENT
# ---------------------------------------------------------------------------


def build_vevent(draft: SyncedEventDraft, uid: str, stamp: datetime) -> ICalGLib.Component:
    """Build the VEVENT for a draft. Raises EventOperationError on unparsable blobs."""
    comp = ICalGLib.Component.new_vevent()
    comp.set_uid(uid)
    comp.set_summary(draft.title)
    comp.set_dtstart(datetime_to_ical_time(draft.start, draft.all_day))
    comp.set_dtend(datetime_to_ical_time(draft.end, draft.all_day))
    comp.set_dtstamp(datetime_to_ical_time(stamp.astimezone(timezone.utc), all_day=False))
    if draft.location:
        comp.set_location(draft.location)
    comp.set_description(draft.notes)

    for line in draft.recurrence_rules:
        prop = ICalGLib.Property.new_from_string(line)
        if prop is None:
            raise EventOperationError(f"Invalid recurrence line: {line}")
        comp.add_property(prop)
    for alarm in draft.alarms:
        sub = ICalGLib.Component.new_from_string(alarm)
        if sub is None:
            raise EventOperationError("Invalid alarm component")
        comp.add_component(sub)
    return comp
