"""
CalendarSynchronizer: thin orchestrator that delegates to the reconcile phases.
"""

import logging
from datetime import datetime
from datetime import timezone

from calverge.models import CalendarNotFound
from calverge.models import CalendarReadOnly
from calverge.models import CalendarRef
from calverge.models import NoValidSourceCalendars
from calverge.models import PermissionDenied
from calverge.models import SyncConfiguration
from calverge.models import SyncReport
from calverge.store import CalendarStore
from calverge.sync.reconcile import clear_source
from calverge.sync.reconcile import reconcile_source
from calverge.sync.utils import unique_ids


class CalendarSynchronizer:
    """Main synchronization engine."""

    def __init__(self, config: SyncConfiguration, store: CalendarStore):
        self.config = config
        self.store = store
        self.logger = logging.getLogger(__name__)
        self._cancelled = False

    def cancel(self):
        """Stop before the next source. Sources already synced stay synced."""
        self._cancelled = True

    def run(self, now: datetime | None = None) -> SyncReport:
        """Execute the synchronization process."""
        return self._run_each_source(reconcile_source, now)

    def clear(self, now: datetime | None = None) -> SyncReport:
        """Remove future synced events of every configured source."""
        return self._run_each_source(clear_source, now)

    def resolve_calendars(self) -> tuple[CalendarRef, list[CalendarRef], list[str]]:
        """
        Request access and resolve configured ids against the store.

        Returns:
            Tuple of (target, resolved sources, skipped source ids)
        """
        if not self.store.request_access():
            raise PermissionDenied()

        calendars = {c.id: c for c in self.store.list_calendars()}

        target = calendars.get(self.config.target_calendar_id)
        if target is None:
            raise CalendarNotFound(self.config.target_calendar_id)
        if not target.writable:
            raise CalendarReadOnly(target.title)

        sources: list[CalendarRef] = []
        skipped: list[str] = []
        for source_id in unique_ids(self.config.source_calendar_ids):
            if source_id == target.id:
                self.logger.warning(f"Skipping source {source_id}: it is the target calendar")
                skipped.append(source_id)
                continue
            source = calendars.get(source_id)
            if source is None:
                self.logger.warning(f"Source calendar not found: {source_id}")
                skipped.append(source_id)
                continue
            sources.append(source)

        if not sources:
            raise NoValidSourceCalendars()

        return target, sources, skipped

    def _run_each_source(self, operation, now: datetime | None) -> SyncReport:
        now = now or datetime.now(timezone.utc)
        self.logger.info(f"Starting sync: {self.config.display_name}")
        self.logger.info(f"Sync mode: {self.config.sync_mode.description}")

        target, sources, skipped = self.resolve_calendars()
        self.logger.info(f"Target calendar: {target.title}")
        self.logger.info(f"Source calendars: {', '.join(s.title for s in sources)}")

        report = SyncReport(
            display_name=self.config.display_name,
            target=target,
            skipped_source_ids=skipped,
        )

        for source in sources:
            if self._cancelled:
                self.logger.warning("Sync cancelled; remaining sources not processed")
                report.cancelled = True
                break
            result = operation(self.config, self.logger, self.store, source, target, now)
            report.sources.append(result)
            self.logger.info(
                f"{source.title}: {result.synced} events synced, {result.cleaned} cleaned"
            )

        if report.total_cleaned > 0:
            self.logger.info(f"Total cleaned up: {report.total_cleaned} previously synced events")
        self.logger.info(f"Sync completed! Total events synced: {report.total_synced}")
        return report
