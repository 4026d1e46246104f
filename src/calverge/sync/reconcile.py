"""
Source→target reconciliation: clean up our old copies, then copy afresh.

Each source is handled on its own. Cleanup only removes target events whose
provenance tag names that source, so several sources can share one target
without touching each other's copies or the user's own events.
"""

from datetime import datetime

from calverge.models import CalendarRef
from calverge.models import EventFailure
from calverge.models import EventOperationError
from calverge.models import EventOutcome
from calverge.models import EventSnapshot
from calverge.models import SourceResult
from calverge.models import SyncConfiguration
from calverge.provenance import ProvenanceCodec
from calverge.sanitizer import EventSanitizer
from calverge.store import CalendarStore
from calverge.sync.utils import event_label
from calverge.sync.utils import in_window
from calverge.sync.utils import sync_window


def _remove_synced_event(
    config: SyncConfiguration,
    logger,
    store: CalendarStore,
    event: EventSnapshot,
) -> EventOutcome:
    """Delete one previously synced event from the target calendar."""
    label = event_label(event)

    if config.dry_run:
        logger.info(f"[DRY RUN] Would DELETE synced event: {label} ({event.start:%Y-%m-%d %H:%M})")
        return EventOutcome(ok=True)

    try:
        store.delete_event(event)
    except EventOperationError as e:
        logger.warning(f"Failed to remove event '{label}': {e}")
        return EventOutcome(ok=False, failure=EventFailure("delete", label, str(e)))

    logger.debug(f"Removed synced event {event.event_id} ({label})")
    return EventOutcome(ok=True)


def _copy_event_to_target(
    config: SyncConfiguration,
    logger,
    store: CalendarStore,
    event: EventSnapshot,
    source: CalendarRef,
    target: CalendarRef,
    now: datetime,
) -> EventOutcome:
    """Create the sanitized copy of one source event in the target calendar."""
    label = event_label(event)
    tag = ProvenanceCodec.new_tag(config, source.id, event.event_id, now)
    draft = EventSanitizer.sanitize(event, target.id, config, tag)

    if config.dry_run:
        logger.info(f"[DRY RUN] Would CREATE event: {label} ({event.start:%Y-%m-%d %H:%M})")
        return EventOutcome(ok=True)

    try:
        store.create_event(draft)
    except EventOperationError as e:
        logger.warning(f"Failed to save event '{label}': {e}")
        return EventOutcome(ok=False, failure=EventFailure("create", label, str(e)))

    logger.debug(f"Created {event.event_id} as sync {tag.sync_id} in {target.title}")
    return EventOutcome(ok=True)


def run_cleanup(
    config: SyncConfiguration,
    result: SourceResult,
    logger,
    store: CalendarStore,
    source: CalendarRef,
    target: CalendarRef,
    now: datetime,
):
    """Remove future target events previously synced from this source.

    Events starting before ``now`` are never inspected, even when their tag
    matches: past copies are history and stay where they are.
    """
    start, end = sync_window(now)
    logger.info(f"Scanning {target.title} for events synced from {source.title}...")
    candidates = [
        event
        for event in store.query_events([target], start, end)
        if in_window(event, start, end) and EventSanitizer.is_managed_event(event, source.id)
    ]
    logger.debug(f"Found {len(candidates)} synced event(s) from {source.id}")

    for event in candidates:
        result.record(_remove_synced_event(config, logger, store, event), "delete")


def run_copy(
    config: SyncConfiguration,
    result: SourceResult,
    logger,
    store: CalendarStore,
    source: CalendarRef,
    target: CalendarRef,
    now: datetime,
):
    """Copy every future source event in the sync window to the target."""
    start, end = sync_window(now)
    logger.info(f"Fetching events from {source.title}...")
    source_events = store.query_events([source], start, end)

    logger.info(f"Processing {len(source_events)} events from {source.title}...")
    for event in source_events:
        if not in_window(event, start, end):
            logger.debug(f"Skipping event outside sync window: {event.event_id}")
            continue
        result.record(
            _copy_event_to_target(config, logger, store, event, source, target, now), "create"
        )


def reconcile_source(
    config: SyncConfiguration,
    logger,
    store: CalendarStore,
    source: CalendarRef,
    target: CalendarRef,
    now: datetime,
) -> SourceResult:
    """Cleanup-then-copy for one source. The caller has checked target is writable."""
    result = SourceResult(calendar=source)
    run_cleanup(config, result, logger, store, source, target, now)
    run_copy(config, result, logger, store, source, target, now)
    return result


def clear_source(
    config: SyncConfiguration,
    logger,
    store: CalendarStore,
    source: CalendarRef,
    target: CalendarRef,
    now: datetime,
) -> SourceResult:
    """Remove this source's future copies from the target without re-syncing."""
    result = SourceResult(calendar=source)
    run_cleanup(config, result, logger, store, source, target, now)
    return result
