"""Tests for famcal.core.conflict_checker — overlap detection."""

from famcal.core.conflict_checker import filter_conflicts, overlaps
from famcal.core.dates import combine

TZ = "Europe/Berlin"


def _window(start: str, end: str, day: str = "2026-10-20"):
    return combine(day, start, TZ), combine(day, end, TZ)


# ---------------------------------------------------------------------------
# Tests for overlaps
# ---------------------------------------------------------------------------


class TestOverlaps:
    def test_partial_overlap(self):
        a_start, a_end = _window("10:00", "11:00")
        b_start, b_end = _window("10:30", "11:30")
        assert overlaps(a_start, a_end, b_start, b_end)

    def test_containment(self):
        a_start, a_end = _window("09:00", "12:00")
        b_start, b_end = _window("10:00", "10:30")
        assert overlaps(a_start, a_end, b_start, b_end)

    def test_touching_intervals_do_not_conflict(self):
        a_start, a_end = _window("10:00", "11:00")
        b_start, b_end = _window("11:00", "12:00")
        assert not overlaps(a_start, a_end, b_start, b_end)
        assert not overlaps(b_start, b_end, a_start, a_end)


# ---------------------------------------------------------------------------
# Tests for filter_conflicts
# ---------------------------------------------------------------------------


class TestFilterConflicts:
    def test_returns_only_overlapping_events(self, make_event):
        events = [
            make_event("Zahnarzt", "2026-10-20T10:00:00+02:00", "2026-10-20T11:00:00+02:00", "a"),
            make_event("Fußball", "2026-10-20T17:00:00+02:00", "2026-10-20T18:00:00+02:00", "b"),
        ]
        new_start, new_end = _window("10:30", "11:30")
        conflicts = filter_conflicts(events, new_start, new_end, TZ)
        assert [ev.id for ev in conflicts] == ["a"]

    def test_all_day_events_never_conflict(self, make_event):
        events = [make_event("Urlaub", "2026-10-20", "2026-10-21", "a", all_day=True)]
        new_start, new_end = _window("10:00", "11:00")
        assert filter_conflicts(events, new_start, new_end, TZ) == []

    def test_backend_utc_times_are_compared_as_instants(self, make_event):
        # 08:00Z is 10:00 in Berlin
        events = [make_event("Call", "2026-10-20T08:00:00Z", "2026-10-20T09:00:00Z", "a")]
        new_start, new_end = _window("10:15", "10:45")
        assert len(filter_conflicts(events, new_start, new_end, TZ)) == 1

    def test_excluded_event_is_skipped(self, make_event):
        events = [make_event("Zahnarzt", event_id="self")]
        new_start, new_end = _window("10:00", "11:00")
        assert filter_conflicts(events, new_start, new_end, TZ, exclude_event_id="self") == []

    def test_no_events(self):
        new_start, new_end = _window("10:00", "11:00")
        assert filter_conflicts([], new_start, new_end, TZ) == []
