from collections.abc import Callable, Generator
from datetime import UTC, datetime
from typing import Any

import pytest

from tonton_lite.availability_cache import AvailabilityCache
from tonton_lite.lite_models import SlotPolicy


def build_ics(*vevents: str, extra_headers: str = "") -> str:
    """Wrap VEVENT bodies (without BEGIN/END lines) in a minimal VCALENDAR."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Tonton Test//EN",
        "CALSCALE:GREGORIAN",
    ]
    if extra_headers:
        lines.append(extra_headers.strip())
    for body in vevents:
        lines.append("BEGIN:VEVENT")
        lines.append(body.strip())
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\n".join(lines)


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Return the VCALENDAR builder so tests can assemble feeds inline."""
    return build_ics


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure time and config overrides do not leak between tests."""
    monkeypatch.delenv("TONTON_TEST_TIME", raising=False)
    monkeypatch.delenv("TONTON_CONFIG", raising=False)
    monkeypatch.delenv("TONTON_DEBUG", raising=False)
    monkeypatch.delenv("TONTON_LOG_LEVEL", raising=False)
    yield


@pytest.fixture
def fixed_now() -> datetime:
    """Deterministic 'now' used by cache instances built in tests."""
    return datetime(2024, 1, 4, 0, 0, tzinfo=UTC)


@pytest.fixture
def cache(fixed_now: datetime) -> AvailabilityCache:
    """A fresh cache per test with a frozen clock."""
    return AvailabilityCache(clock=lambda: fixed_now)


@pytest.fixture
def default_policy() -> SlotPolicy:
    return SlotPolicy()


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """
    Return a simple ICS calendar string with a single event.

    Returns:
        RFC 5545 compliant ICS string with one event:
        - Event: "Team Meeting" on 2024-01-15 10:00-11:00 UTC
        - Includes DTSTART, DTEND, SUMMARY, LOCATION, DESCRIPTION
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Tonton Test//EN
CALSCALE:GREGORIAN
BEGIN:VEVENT
UID:test-event-001@tonton.test
DTSTART:20240115T100000Z
DTEND:20240115T110000Z
SUMMARY:Team Meeting
LOCATION:Conference Room A
DESCRIPTION:Weekly team sync meeting
DTSTAMP:20240115T090000Z
END:VEVENT
END:VCALENDAR"""


@pytest.fixture
def sample_ics_daily() -> str:
    """
    Return an ICS string with an unbounded daily event.

    Returns:
        RFC 5545 compliant ICS string with recurring event:
        - Event: "Daily Standup" every day from 2024-01-01 00:00-00:30 UTC
        - RRULE:FREQ=DAILY with no COUNT/UNTIL
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Tonton Test//EN
CALSCALE:GREGORIAN
BEGIN:VEVENT
UID:test-event-002@tonton.test
DTSTART:20240101T000000Z
DTEND:20240101T003000Z
SUMMARY:Daily Standup
LOCATION:Virtual
RRULE:FREQ=DAILY
DTSTAMP:20231231T080000Z
END:VEVENT
END:VCALENDAR"""


@pytest.fixture
def sample_ics_exdate() -> str:
    """
    Return an ICS string with EXDATE (cancelled occurrence).

    Returns:
        RFC 5545 compliant ICS string with EXDATE:
        - Event: "Weekly Review" on Mondays at 14:00-15:00 UTC
        - RRULE:FREQ=WEEKLY;BYDAY=MO;COUNT=4 (4 occurrences)
        - EXDATE for second occurrence (2024-01-22)
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Tonton Test//EN
CALSCALE:GREGORIAN
BEGIN:VEVENT
UID:test-event-003@tonton.test
DTSTART:20240115T140000Z
DTEND:20240115T150000Z
SUMMARY:Weekly Review
LOCATION:Board Room
DESCRIPTION:Weekly review meeting with stakeholders
RRULE:FREQ=WEEKLY;BYDAY=MO;COUNT=4
EXDATE:20240122T140000Z
DTSTAMP:20240115T130000Z
END:VEVENT
END:VCALENDAR"""


@pytest.fixture
def sample_ics_half_hour() -> str:
    """
    Return an ICS string with a half-hour meeting on a Wednesday.

    Returns:
        - Event: "Design Review" on 2024-01-10 10:00-10:30 UTC
    """
    return build_ics(
        """
UID:test-event-004@tonton.test
DTSTART:20240110T100000Z
DTEND:20240110T103000Z
SUMMARY:Design Review
STATUS:TENTATIVE
"""
    )
