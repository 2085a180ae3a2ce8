"""DateTime helpers for ICS calendar processing - tonton_lite.

Everything downstream of the parser works on absolute instants: timezone-aware
datetimes normalized to UTC. This module holds the conversions from iCalendar
values, the ISO-8601 rendering used on NormalizedEvent, and HH:MM parsing for
slot and working-hour times.
"""

import logging
import os
import re
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def ensure_timezone_aware(dt: datetime, default_tz: Optional[tzinfo] = None) -> datetime:
    """Ensure datetime is timezone-aware.

    Args:
        dt: Datetime to make timezone-aware
        default_tz: Zone applied to naive datetimes (UTC when omitted)

    Returns:
        Timezone-aware datetime
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=default_tz or UTC)
    return dt


def to_utc(dt: datetime) -> datetime:
    """Normalize a datetime to an aware UTC instant (naive values are taken as UTC)."""
    return ensure_timezone_aware(dt).astimezone(UTC)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Look up an IANA timezone by name.

    Unknown or empty names fall back to UTC with a warning rather than failing,
    since X-WR-TIMEZONE is advisory in most feeds.
    """
    if not name or name.upper() in ("UTC", "Z", "GMT"):
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", name)
        return UTC


def to_instant(value: Any, default_tz: Optional[tzinfo] = None) -> datetime:
    """Convert an iCalendar date or date-time value into an aware datetime.

    Date-only values become midnight in ``default_tz``. Floating date-times are
    interpreted in ``default_tz``. Values that already carry a zone keep it, so
    recurrence expansion can follow that zone's wall clock across DST changes.

    Args:
        value: ``datetime``/``date`` or an icalendar property exposing ``.dt``
        default_tz: Zone for floating values (UTC when omitted)

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the value is neither a date nor a datetime
    """
    dt = getattr(value, "dt", value)
    if isinstance(dt, datetime):
        return ensure_timezone_aware(dt, default_tz)
    if isinstance(dt, date):
        return datetime.combine(dt, time.min, tzinfo=default_tz or UTC)
    raise ValueError(f"Unsupported date value: {dt!r}")


def format_iso_instant(dt: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.sssZ``.

    Example:
        >>> format_iso_instant(datetime(2024, 1, 5, 10, 0, tzinfo=UTC))
        '2024-01-05T10:00:00.000Z'
    """
    return to_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch for an instant."""
    return int(to_utc(dt).timestamp() * 1000)


def parse_hhmm(value: str) -> time:
    """Parse a wall-clock ``HH:MM`` string.

    Raises:
        ValueError: If the string is not a valid 24-hour time
    """
    match = _HHMM_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Expected HH:MM time, got: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return time(hour, minute)


def now_utc() -> datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the TONTON_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2024-01-05T09:00:00+09:00")
    """
    test_time = os.environ.get("TONTON_TEST_TIME")
    if test_time:
        try:
            return to_utc(date_parser.isoparse(test_time))
        except ValueError as e:
            logger.warning("Failed to parse TONTON_TEST_TIME=%r: %s", test_time, e)

    return datetime.now(UTC)
