"""
End-to-end availability scenarios: ICS text through the cache, expander and slot matcher.

Each scenario builds a small feed, resolves it over a window through a shared
AvailabilityCache and checks the resulting slot decisions, the way the browser
extension would consume them.
"""

from datetime import UTC, datetime

import pytest

from tonton_lite import AvailabilityCache, AvailabilityService, SlotPolicy, match_slots
from tonton_lite.lite_exceptions import ICSParseError

pytestmark = pytest.mark.integration

WORK_FEED_EVENTS = (
    # Weekly team sync, Mondays and Wednesdays 10:00-11:00 Paris time
    "UID:sync@tonton.test\nDTSTART;TZID=Europe/Paris:20240101T100000\n"
    "DTEND;TZID=Europe/Paris:20240101T110000\nRRULE:FREQ=WEEKLY;BYDAY=MO,WE\nSUMMARY:Team sync",
    # The Wednesday 2024-01-10 sync moved to the afternoon
    "UID:sync@tonton.test\nRECURRENCE-ID;TZID=Europe/Paris:20240110T100000\n"
    "DTSTART;TZID=Europe/Paris:20240110T150000\nDTEND;TZID=Europe/Paris:20240110T153000\nSUMMARY:Team sync (moved)",
    # One-off lunch, 12:00-13:00 Paris on 2024-01-11
    "UID:lunch@tonton.test\nDTSTART;TZID=Europe/Paris:20240111T120000\n"
    "DTEND;TZID=Europe/Paris:20240111T130000\nSUMMARY:Lunch",
)


@pytest.fixture
def work_feed(make_ics) -> str:
    return make_ics(*WORK_FEED_EVENTS, extra_headers="X-WR-CALNAME:Work\nX-WR-TIMEZONE:Europe/Paris")


def _week(*dates_and_times: tuple[str, list[str]]) -> list[dict]:
    return [{"date": d, "availableSlots": [{"time": t} for t in times]} for d, times in dates_and_times]


def test_week_in_paris(work_feed):
    service = AvailabilityService(policy=SlotPolicy(timezone="Europe/Paris", auto_decline_weekends=True))
    report = service.evaluate(
        {"work": work_feed},
        _week(
            ("2024-01-08", ["10:00", "11:00"]),
            ("2024-01-10", ["10:00", "15:00", "15:30"]),
            ("2024-01-11", ["12:30", "13:00"]),
            ("2024-01-13", ["10:00"]),
        ),
    )

    decisions = {(str(d.date), d.time): (d.busy, d.reason) for d in report.result.decisions}
    assert decisions == {
        ("2024-01-08", "10:00"): (True, "calendar"),
        ("2024-01-08", "11:00"): (False, None),
        # Occurrence replaced by the override
        ("2024-01-10", "10:00"): (False, None),
        ("2024-01-10", "15:00"): (True, "calendar"),
        ("2024-01-10", "15:30"): (False, None),
        ("2024-01-11", "12:30"): (True, "calendar"),
        ("2024-01-11", "13:00"): (False, None),
        ("2024-01-13", "10:00"): (True, "weekend"),
    }
    # Paris is UTC+1 in January
    assert report.result.busy_instants[0] == datetime(2024, 1, 8, 9, 0, tzinfo=UTC)


def test_same_feed_resolved_once_across_requests(work_feed):
    cache = AvailabilityCache()
    service = AvailabilityService(cache=cache, policy=SlotPolicy(timezone="Europe/Paris"))
    schedule = _week(("2024-01-08", ["10:00"]))

    first = service.evaluate({"work": work_feed}, schedule)
    second = service.evaluate({"work": work_feed}, schedule)

    assert first.result == second.result
    stats = cache.get_stats()
    assert stats["document_misses"] == 1
    assert stats["window_misses"] == 1
    assert stats["window_hits"] == 1


def test_direct_cache_and_matcher(work_feed):
    cache = AvailabilityCache()
    events = cache.get_events(
        work_feed, datetime(2024, 1, 8, tzinfo=UTC), datetime(2024, 1, 12, tzinfo=UTC)
    )
    assert [e.summary for e in events] == ["Team sync", "Team sync (moved)", "Lunch"]

    result = match_slots(
        _week(("2024-01-08", ["09:00", "09:30"])),
        events,
        {"enforceWorkingHours": True, "workStart": "09:30"},
    )
    # 09:00 UTC is outside working hours; 09:30 UTC falls in the 09:00-10:00 UTC sync
    assert [d.reason for d in result.decisions] == ["working_hours", "calendar"]


def test_one_broken_feed_among_several(work_feed):
    service = AvailabilityService(policy=SlotPolicy(timezone="Europe/Paris"))
    report = service.evaluate(
        {"work": work_feed, "broken": "not a calendar"},
        _week(("2024-01-08", ["10:00"])),
    )
    assert report.failed_sources == ["broken"]
    assert report.result.busy_count == 1

    with pytest.raises(ICSParseError):
        service.cache.get_events("not a calendar")
