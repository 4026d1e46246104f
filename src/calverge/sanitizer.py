"""
Event sanitization: decides which source details reach the target calendar.
"""

from calverge.models import BUSY_TITLE
from calverge.models import EventSnapshot
from calverge.models import ProvenanceTag
from calverge.models import SyncConfiguration
from calverge.models import SyncedEventDraft
from calverge.models import SyncMode
from calverge.provenance import ProvenanceCodec


class EventSanitizer:
    """Builds target-calendar drafts from source events per sync mode."""

    @staticmethod
    def is_managed_event(event: EventSnapshot, source_id: str) -> bool:
        """Check if an event was created by calverge from the given source."""
        return ProvenanceCodec.matches(event.notes, source_id)

    @classmethod
    def sanitize(
        cls,
        event: EventSnapshot,
        target_id: str,
        config: SyncConfiguration,
        tag: ProvenanceTag,
    ) -> SyncedEventDraft:
        """
        Build the draft for one source event.

        Args:
            event: Source event
            target_id: Calendar the draft will be created in
            config: Run configuration (mode and include_details)
            tag: Fresh provenance tag for this event

        Timing is always copied. 'full' keeps title and location, and with
        include_details also recurrence rules, alarms and the original notes.
        'busy-only' produces a "Busy" block with nothing but the tag in notes,
        regardless of include_details.
        """
        full = config.sync_mode is SyncMode.FULL
        details = full and config.include_details

        # Notes copied from an event that was itself synced from elsewhere
        # would carry a second Source line; keep only our own tag.
        original_notes = ProvenanceCodec.strip(event.notes) if details else None
        notes = ProvenanceCodec.append(original_notes, ProvenanceCodec.encode(tag), details)

        return SyncedEventDraft(
            calendar_id=target_id,
            start=event.start,
            end=event.end,
            all_day=event.all_day,
            title=(event.title or "") if full else BUSY_TITLE,
            location=event.location if full else None,
            notes=notes,
            recurrence_rules=event.recurrence_rules if details else (),
            alarms=event.alarms if details else (),
            tag=tag,
        )
