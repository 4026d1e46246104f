"""
Unit tests for stateless helpers in calverge.sync.utils.
"""

from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from calverge.sync.utils import event_label
from calverge.sync.utils import in_window
from calverge.sync.utils import one_year_after
from calverge.sync.utils import sync_window
from calverge.sync.utils import unique_ids
from tests.conftest import NOW
from tests.conftest import SOURCE_A
from tests.conftest import make_event


class TestOneYearAfter:
    def test_same_wall_clock_time(self):
        assert one_year_after(NOW) == datetime(2027, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_leap_day_maps_to_feb_28(self):
        leap = datetime(2028, 2, 29, 12, 30, tzinfo=timezone.utc)
        assert one_year_after(leap) == datetime(2029, 2, 28, 12, 30, tzinfo=timezone.utc)

    def test_sync_window(self):
        assert sync_window(NOW) == (NOW, one_year_after(NOW))


class TestInWindow:
    _END = one_year_after(NOW)

    @pytest.mark.parametrize(
        "offset, expected",
        [
            (timedelta(0), True),
            (timedelta(days=1), True),
            (timedelta(seconds=-1), False),
            (timedelta(days=-30), False),
        ],
    )
    def test_start_relative_to_now(self, offset, expected):
        event = make_event("e", SOURCE_A, NOW + offset)
        assert in_window(event, NOW, self._END) is expected

    def test_end_is_exclusive(self):
        assert not in_window(make_event("e", SOURCE_A, self._END), NOW, self._END)
        just_before = self._END - timedelta(minutes=1)
        assert in_window(make_event("e", SOURCE_A, just_before), NOW, self._END)


def test_event_label_falls_back_to_unknown():
    assert event_label(make_event("e", SOURCE_A, NOW, title="Standup")) == "Standup"
    assert event_label(make_event("e", SOURCE_A, NOW, title=None)) == "Unknown"


def test_unique_ids_keeps_first_occurrence():
    assert unique_ids(["b", "a", "b", "", "c", "a"]) == ["b", "a", "c"]
