"""
Integration tests for the cleanup-then-copy reconciliation of one source.

All tests use FakeCalendarStore (in-memory) so the real sync phases run end to
end without an EDS daemon.
"""

from datetime import timedelta

from calverge.models import BUSY_TITLE
from calverge.models import SyncMode
from calverge.provenance import ProvenanceCodec
from calverge.sync.reconcile import clear_source
from calverge.sync.reconcile import reconcile_source
from tests.conftest import NOW
from tests.conftest import SOURCE_A
from tests.conftest import SOURCE_B
from tests.conftest import TARGET
from tests.conftest import make_config
from tests.conftest import make_event

_TOMORROW = NOW + timedelta(days=1)


def _tagged_copy(event_id, source, start, **fields):
    """A target event that looks like a copy made by an earlier run."""
    tag = ProvenanceCodec.new_tag(make_config(sources=(source.id,)), source.id, "old", NOW)
    return make_event(event_id, TARGET, start, notes=ProvenanceCodec.encode(tag), **fields)


def _sync(store, logger, source=SOURCE_A, now=NOW, **config_fields):
    config = make_config(sources=(source.id,), **config_fields)
    return reconcile_source(config, logger, store, source, TARGET, now)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def test_only_in_window_future_events_are_copied(store, sync_logger):
    """Tomorrow is copied; +400 days and the past event are not."""
    store.add_event(make_event("tomorrow", SOURCE_A, _TOMORROW))
    store.add_event(make_event("far", SOURCE_A, NOW + timedelta(days=400)))
    store.add_event(make_event("past", SOURCE_A, NOW - timedelta(days=2)))

    result = _sync(store, sync_logger)

    assert (result.synced, result.cleaned) == (1, 0)
    assert [d.tag.original_id for d in store.creates] == ["tomorrow"]


def test_ongoing_event_that_started_before_now_is_not_copied(store, sync_logger):
    """Overlapping the window is not enough; the start must be >= now."""
    store.add_event(make_event("ongoing", SOURCE_A, NOW - timedelta(hours=1), hours=3))

    result = _sync(store, sync_logger)

    assert result.synced == 0
    assert store.creates == []


def test_only_tagged_event_is_cleaned(store, sync_logger):
    """A manual event at the same time as our copy is left untouched."""
    store.add_event(_tagged_copy("old-copy", SOURCE_A, _TOMORROW))
    store.add_event(make_event("manual", TARGET, _TOMORROW, notes="Lunch with Sam"))

    result = _sync(store, sync_logger)

    assert (result.synced, result.cleaned) == (0, 1)
    assert not store.has_event("old-copy")
    assert store.has_event("manual")


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


def test_second_run_cleans_what_the_first_created(store, sync_logger):
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW))
    store.add_event(make_event("e2", SOURCE_A, _TOMORROW + timedelta(days=7)))

    first = _sync(store, sync_logger)
    store.reset_counters()
    second = _sync(store, sync_logger)

    assert first.synced == 2
    assert second.synced == first.synced
    assert second.cleaned == first.synced
    # Still exactly one copy per source event
    assert len(store.events_in(TARGET.id)) == 2


def test_cleanup_for_one_source_keeps_other_sources_copies(store, sync_logger):
    store.add_event(_tagged_copy("copy-a", SOURCE_A, _TOMORROW))
    store.add_event(_tagged_copy("copy-b", SOURCE_B, _TOMORROW))

    result = _sync(store, sync_logger, source=SOURCE_B)

    assert result.cleaned == 1
    assert store.has_event("copy-a")
    assert not store.has_event("copy-b")


def test_past_copies_are_never_cleaned(store, sync_logger):
    store.add_event(_tagged_copy("past-copy", SOURCE_A, NOW - timedelta(days=3)))
    store.add_event(_tagged_copy("ongoing-copy", SOURCE_A, NOW - timedelta(minutes=30)))

    result = _sync(store, sync_logger)

    assert result.cleaned == 0
    assert store.removes == []
    assert store.has_event("past-copy")
    assert store.has_event("ongoing-copy")


def test_copies_beyond_one_year_are_not_cleaned(store, sync_logger):
    store.add_event(_tagged_copy("far-copy", SOURCE_A, NOW + timedelta(days=400)))

    result = _sync(store, sync_logger)

    assert result.cleaned == 0
    assert store.has_event("far-copy")


def test_busy_only_mode_hides_details(store, sync_logger):
    store.add_event(
        make_event("e1", SOURCE_A, _TOMORROW, title="Layoff planning", location="Boardroom")
    )

    _sync(store, sync_logger, mode=SyncMode.BUSY_ONLY, include_details=True)

    (copy,) = store.events_in(TARGET.id)
    assert copy.title == BUSY_TITLE
    assert not copy.location
    assert "Layoff" not in copy.notes


def test_copies_are_tagged_with_the_source_calendar(store, sync_logger):
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW))

    _sync(store, sync_logger)

    (draft,) = store.creates
    assert draft.tag.source_id == SOURCE_A.id
    assert draft.tag.original_id == "e1"
    assert ProvenanceCodec.matches(draft.notes, SOURCE_A.id)


# ---------------------------------------------------------------------------
# Partial failures
# ---------------------------------------------------------------------------


def test_failed_save_is_skipped_and_reported(store, sync_logger):
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW, title="Standup"))
    store.add_event(make_event("e2", SOURCE_A, _TOMORROW + timedelta(days=1), title="Review"))
    store.add_event(make_event("e3", SOURCE_A, _TOMORROW + timedelta(days=2), title="Retro"))
    store.fail_create_for.add("e2")

    result = _sync(store, sync_logger)

    assert result.synced == 2
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.operation == "create"
    assert failure.title == "Review"
    assert "calendar is full" in failure.error


def test_failed_delete_is_not_counted_and_run_continues(store, sync_logger):
    store.add_event(_tagged_copy("stuck", SOURCE_A, _TOMORROW, title="Stuck"))
    store.add_event(_tagged_copy("fine", SOURCE_A, _TOMORROW + timedelta(days=1)))
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW))
    store.fail_delete_for.add("stuck")

    result = _sync(store, sync_logger)

    assert result.cleaned == 1
    assert result.synced == 1
    assert [(f.operation, f.title) for f in result.failures] == [("delete", "Stuck")]
    assert store.has_event("stuck")


# ---------------------------------------------------------------------------
# Dry run and clear
# ---------------------------------------------------------------------------


def test_dry_run_counts_without_touching_the_store(store, sync_logger):
    store.add_event(_tagged_copy("old-copy", SOURCE_A, _TOMORROW))
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW))

    result = _sync(store, sync_logger, dry_run=True)

    assert (result.synced, result.cleaned) == (1, 1)
    assert store.creates == []
    assert store.removes == []
    assert store.has_event("old-copy")


def test_clear_source_removes_without_copying(store, sync_logger):
    store.add_event(_tagged_copy("old-copy", SOURCE_A, _TOMORROW))
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW))

    result = clear_source(
        make_config(), sync_logger, store, SOURCE_A, TARGET, NOW
    )

    assert (result.synced, result.cleaned) == (0, 1)
    assert store.creates == []
    assert store.events_in(TARGET.id) == []


def test_multiline_config_name_cannot_claim_another_source(store, sync_logger):
    """A name smuggling a Source line must not let B's cleanup remove A's copy."""
    store.add_event(make_event("e1", SOURCE_A, _TOMORROW))
    _sync(store, sync_logger, name=f"Work\nSource: {SOURCE_B.id}")
    (copy,) = store.events_in(TARGET.id)

    result = _sync(store, sync_logger, source=SOURCE_B)

    assert result.cleaned == 0
    assert store.has_event(copy.event_id)
