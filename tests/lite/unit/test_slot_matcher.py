"""Unit tests for slot matching: policy rules and half-open calendar overlap."""

from datetime import UTC, date, datetime, timedelta

import pytest

from tonton_lite.lite_models import NormalizedEvent, ScheduleDay, SlotPolicy, TimeSlot
from tonton_lite.slot_matcher import (
    SlotMatcher,
    bucket_events_by_date,
    find_overlapping_event,
    match_slots,
)

pytestmark = pytest.mark.unit

WEDNESDAY = date(2024, 1, 10)
SATURDAY = date(2024, 1, 6)
SUNDAY = date(2024, 1, 7)


def _event(start: datetime, minutes: int = 30, summary: str = "Busy") -> NormalizedEvent:
    return NormalizedEvent.from_instants(start, start + timedelta(minutes=minutes), summary=summary)


def _day(day: date, *times: str) -> ScheduleDay:
    return ScheduleDay(date=day, available_slots=[TimeSlot(time=t) for t in times])


def _busy_map(result) -> dict[str, bool]:
    return {d.time: d.busy for d in result.decisions}


class TestHelpers:
    def test_bucket_by_date_sorted(self):
        late = _event(datetime(2024, 1, 10, 15, 0, tzinfo=UTC))
        early = _event(datetime(2024, 1, 10, 8, 0, tzinfo=UTC))
        other = _event(datetime(2024, 1, 11, 8, 0, tzinfo=UTC))
        buckets = bucket_events_by_date([late, other, early])
        assert buckets["2024-01-10"] == [early, late]
        assert buckets["2024-01-11"] == [other]

    def test_find_overlapping_event_stops_at_later_start(self):
        bucket = [
            _event(datetime(2024, 1, 10, 9, 0, tzinfo=UTC)),
            _event(datetime(2024, 1, 10, 12, 0, tzinfo=UTC)),
        ]
        assert find_overlapping_event(bucket, datetime(2024, 1, 10, 9, 15, tzinfo=UTC)) is bucket[0]
        assert find_overlapping_event(bucket, datetime(2024, 1, 10, 10, 0, tzinfo=UTC)) is None


class TestCalendarOverlap:
    def test_half_open_interval(self):
        events = [_event(datetime(2024, 1, 10, 10, 0, tzinfo=UTC))]
        result = match_slots([_day(WEDNESDAY, "10:00", "10:29", "10:30")], events)

        assert _busy_map(result) == {"10:00": True, "10:29": True, "10:30": False}
        assert result.decisions[0].reason == "calendar"
        assert result.busy_instants == [
            datetime(2024, 1, 10, 10, 0, tzinfo=UTC),
            datetime(2024, 1, 10, 10, 29, tzinfo=UTC),
        ]

    def test_slot_before_event_is_free(self):
        events = [_event(datetime(2024, 1, 10, 10, 0, tzinfo=UTC))]
        result = match_slots([_day(WEDNESDAY, "09:30")], events)
        assert _busy_map(result) == {"09:30": False}

    def test_zero_or_negative_length_event_never_busy(self):
        start = datetime(2024, 1, 10, 10, 0, tzinfo=UTC)
        events = [
            NormalizedEvent.from_instants(start, start),
            NormalizedEvent.from_instants(start, start - timedelta(minutes=30)),
        ]
        result = match_slots([_day(WEDNESDAY, "10:00")], events)
        assert result.busy_count == 0

    def test_only_same_date_events_are_considered(self):
        # Starts the day before and runs past midnight
        events = [_event(datetime(2024, 1, 9, 23, 0, tzinfo=UTC), minutes=120)]
        result = match_slots([_day(WEDNESDAY, "00:30")], events)
        assert _busy_map(result) == {"00:30": False}

    def test_duplicate_slots_produce_one_busy_instant(self):
        events = [_event(datetime(2024, 1, 10, 10, 0, tzinfo=UTC))]
        result = match_slots([_day(WEDNESDAY, "10:00"), _day(WEDNESDAY, "10:00")], events)

        assert len(result.decisions) == 2
        assert all(d.busy for d in result.decisions)
        assert result.busy_instants == [datetime(2024, 1, 10, 10, 0, tzinfo=UTC)]

    def test_decisions_keep_input_order(self):
        result = match_slots([_day(WEDNESDAY, "14:00", "09:00"), _day(date(2024, 1, 9), "11:00")], [])
        assert [(d.date, d.time) for d in result.decisions] == [
            (WEDNESDAY, "14:00"),
            (WEDNESDAY, "09:00"),
            (date(2024, 1, 9), "11:00"),
        ]

    def test_accepts_camel_case_mappings(self):
        events = [_event(datetime(2024, 1, 10, 10, 0, tzinfo=UTC))]
        schedules = [
            {"date": "2024-01-10", "availableSlots": [{"time": "10:00", "isHalfHour": False}, {"time": "10:30", "isHalfHour": True}]}
        ]
        result = match_slots(schedules, events)
        assert _busy_map(result) == {"10:00": True, "10:30": False}
        assert result.decisions[1].is_half_hour is True

    def test_slot_timezone_anchors_instants(self):
        policy = SlotPolicy(timezone="Asia/Tokyo")
        events = [
            # 10:00-11:00 JST on the 10th
            _event(datetime(2024, 1, 10, 1, 0, tzinfo=UTC), minutes=60),
            # 08:00-08:45 JST on the 10th, which is the 9th in UTC
            _event(datetime(2024, 1, 9, 23, 0, tzinfo=UTC), minutes=45),
        ]
        result = SlotMatcher(policy).match([_day(WEDNESDAY, "08:30", "10:00", "11:00")], events)

        assert _busy_map(result) == {"08:30": True, "10:00": True, "11:00": False}
        assert result.decisions[0].instant == datetime(2024, 1, 9, 23, 30, tzinfo=UTC)


class TestPolicy:
    def test_weekend_short_circuit(self):
        policy = SlotPolicy(auto_decline_weekends=True)
        result = SlotMatcher(policy).match([_day(SATURDAY, "10:00", "14:00"), _day(SUNDAY, "09:00")], [])

        assert all(d.busy for d in result.decisions)
        assert {d.reason for d in result.decisions} == {"weekend"}
        assert result.warnings == []
        assert len(result.busy_instants) == 3

    def test_weekend_reason_wins_over_calendar(self):
        policy = SlotPolicy(auto_decline_weekends=True, enforce_working_hours=True)
        events = [_event(datetime(2024, 1, 6, 10, 0, tzinfo=UTC))]
        result = SlotMatcher(policy).match([_day(SATURDAY, "10:00", "20:00")], events)
        assert [d.reason for d in result.decisions] == ["weekend", "weekend"]

    def test_weekends_matched_normally_when_not_declined(self):
        events = [_event(datetime(2024, 1, 6, 10, 0, tzinfo=UTC))]
        result = match_slots([_day(SATURDAY, "10:00", "11:00")], events)
        assert _busy_map(result) == {"10:00": True, "11:00": False}

    def test_working_hours_boundaries(self):
        policy = SlotPolicy(enforce_working_hours=True)
        result = SlotMatcher(policy).match([_day(WEDNESDAY, "08:30", "09:00", "16:30", "17:00")], [])

        assert _busy_map(result) == {"08:30": True, "09:00": False, "16:30": False, "17:00": True}
        assert result.decisions[0].reason == "working_hours"

    def test_working_hours_reason_wins_over_calendar(self):
        policy = SlotPolicy(enforce_working_hours=True, work_start="10:00")
        events = [_event(datetime(2024, 1, 10, 9, 0, tzinfo=UTC), minutes=120)]
        result = SlotMatcher(policy).match([_day(WEDNESDAY, "09:30", "10:00")], events)
        assert [d.reason for d in result.decisions] == ["working_hours", "calendar"]

    def test_mapping_policy(self):
        events = []
        result = match_slots(
            [_day(SUNDAY, "10:00")], events, {"autoDeclineWeekends": True, "enforceWorkingHours": False}
        )
        assert result.decisions[0].busy


class TestWarnings:
    def test_empty_day_warning(self, caplog):
        result = match_slots([_day(WEDNESDAY, "10:00")], [])
        assert result.warnings == ["No calendar events on 2024-01-10"]
        assert "EmptyResultWarning" in caplog.text

    def test_no_warning_when_day_has_events(self):
        events = [_event(datetime(2024, 1, 10, 15, 0, tzinfo=UTC))]
        assert match_slots([_day(WEDNESDAY, "10:00")], events).warnings == []

    def test_empty_schedule(self):
        result = match_slots([], [])
        assert result.decisions == []
        assert result.busy_instants == []
