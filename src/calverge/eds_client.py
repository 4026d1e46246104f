"""
Evolution Data Server calendar store.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from datetime import timezone
from typing import Optional

import gi
gi.require_version('EDataServer', '1.2')
gi.require_version('ECal', '2.0')
gi.require_version('ICalGLib', '3.0')
from gi.repository import EDataServer, ECal, GLib

from .ical import build_vevent
from .ical import builtin_zone
from .ical import expand_vevents
from .ical import iter_vevents
from .ical import parse_component
from .models import CalendarRef
from .models import CalendarSyncError
from .models import EventOperationError
from .models import EventSnapshot
from .models import SyncedEventDraft

_logger = logging.getLogger(__name__)


class EDSCalendarStore:
    """Calendar store backed by Evolution Data Server."""

    def __init__(self, timeout: int = 10):
        self.timeout = timeout
        self.registry: Optional[EDataServer.SourceRegistry] = None
        self._clients: dict[str, ECal.Client] = {}
        # (calendar_id, event_id) -> (uid, rid) for events seen by query_events
        self._handles: dict[tuple[str, str], tuple[str, Optional[str]]] = {}

    def request_access(self) -> bool:
        """Open the EDS source registry; this is the store's access grant."""
        if self.registry is not None:
            return True
        try:
            self.registry = EDataServer.SourceRegistry.new_sync(None)
        except GLib.Error as e:
            raise CalendarSyncError(
                f"Failed to connect to Evolution Data Server: {e.message}"
            )
        return self.registry is not None

    def _require_registry(self) -> EDataServer.SourceRegistry:
        if self.registry is None:
            raise CalendarSyncError("Calendar access has not been requested")
        return self.registry

    def _client(self, calendar_id: str) -> ECal.Client:
        """Connect to the specified calendar in EDS (cached per calendar)."""
        client = self._clients.get(calendar_id)
        if client is not None:
            return client

        source = self._require_registry().ref_source(calendar_id)
        if not source:
            raise CalendarSyncError(
                f"Calendar with UID '{calendar_id}' not found in EDS"
            )
        try:
            client = ECal.Client.connect_sync(
                source,
                ECal.ClientSourceType.EVENTS,
                self.timeout,
                None
            )
        except GLib.Error as e:
            raise CalendarSyncError(
                f"Failed to connect to calendar {calendar_id}: {e.message}"
            )
        self._clients[calendar_id] = client
        return client

    def list_calendars(self) -> list[CalendarRef]:
        registry = self._require_registry()
        calendars = []
        for source in registry.list_sources(EDataServer.SOURCE_EXTENSION_CALENDAR):
            uid = source.get_uid() or ""
            account = ""
            parent = source.get_parent()
            if parent:
                parent_source = registry.ref_source(parent)
                if parent_source:
                    account = parent_source.get_display_name() or ""
            try:
                writable = not self._client(uid).is_readonly()
            except CalendarSyncError as e:
                _logger.debug("Cannot connect to %s: %s", uid, e)
                writable = False
            calendars.append(
                CalendarRef(
                    id=uid,
                    title=source.get_display_name() or "(unnamed)",
                    writable=writable,
                    account=account,
                )
            )
        return calendars

    def query_events(
        self, calendars: Iterable[CalendarRef], start: datetime, end: datetime
    ) -> list[EventSnapshot]:
        """Occurrences overlapping [start, end), recurring series expanded."""
        sexp = (
            f'(occur-in-time-range? '
            f'(make-time "{start.astimezone(timezone.utc):%Y%m%dT%H%M%SZ}") '
            f'(make-time "{end.astimezone(timezone.utc):%Y%m%dT%H%M%SZ}"))'
        )
        events = []
        for calendar in calendars:
            try:
                _, objects = self._client(calendar.id).get_object_list_sync(sexp, None)
            except GLib.Error as e:
                raise CalendarSyncError(
                    f"Failed to fetch events from {calendar.title}: {e.message}"
                )
            components = [parse_component(obj) for obj in objects]
            vevents = [vevent for comp in components for vevent in iter_vevents(comp)]
            for stored in expand_vevents(vevents, calendar.id, start, end):
                self._handles[(calendar.id, stored.snapshot.event_id)] = (stored.uid, stored.rid)
                events.append(stored.snapshot)
        return events

    def create_event(self, draft: SyncedEventDraft) -> Optional[str]:
        """Create a new event in the draft's calendar and return its UID."""
        comp = build_vevent(draft, str(uuid.uuid4()), datetime.now(timezone.utc))
        try:
            client = self._client(draft.calendar_id)
            # EDS needs a VTIMEZONE for every TZID the event refers to.
            for value in (draft.start, draft.end):
                zone = None if draft.all_day else builtin_zone(value)
                if zone is not None:
                    client.add_timezone_sync(zone, None)
            success, out_uid = client.create_object_sync(
                comp,
                ECal.OperationFlags.NONE,
                None
            )
        except (GLib.Error, CalendarSyncError) as e:
            raise EventOperationError(getattr(e, "message", None) or str(e)) from e
        if not success:
            raise EventOperationError("Failed to create event")
        return out_uid

    def delete_event(self, event: EventSnapshot):
        """Remove one occurrence, or a whole single event when it has no RECURRENCE-ID."""
        uid, rid = self._handles.get((event.calendar_id, event.event_id), (event.event_id, None))
        mod_type = ECal.ObjModType.THIS if rid else ECal.ObjModType.ALL
        try:
            success = self._client(event.calendar_id).remove_object_sync(
                uid,
                rid,
                mod_type,
                ECal.OperationFlags.NONE,
                None  # cancellable
            )
        except (GLib.Error, CalendarSyncError) as e:
            raise EventOperationError(getattr(e, "message", None) or str(e)) from e
        if not success:
            raise EventOperationError(f"Failed to remove event {uid}")
