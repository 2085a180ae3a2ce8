"""iCalendar parser and event normalizer - tonton_lite.

Turns raw ICS text into a CalendarDocument (parsed once per distinct feed
text) and extracts its top-level VEVENT definitions as RawEventComponent
records ready for recurrence expansion.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from icalendar import Calendar, Event as ICalEvent, vRecur

from .lite_datetime_utils import resolve_timezone, to_instant, to_utc
from .lite_exceptions import ICSParseError, RecurrenceParseError
from .lite_models import DEFAULT_STATUS

logger = logging.getLogger(__name__)

# Properties whose parse errors make the event unusable
_TIME_PROPERTIES = ("DTSTART", "DTEND", "DURATION", "RECURRENCE-ID")
_RECURRENCE_PROPERTIES = ("RRULE", "RDATE", "EXDATE")


@dataclass(frozen=True)
class RawEventComponent:
    """A top-level VEVENT before recurrence expansion.

    Instants keep the zone they were authored in so that recurrence
    expansion follows that zone's wall clock.
    """

    uid: Optional[str]
    start: datetime
    end: datetime
    summary: str = ""
    description: Optional[str] = None
    location: Optional[str] = None
    status: str = DEFAULT_STATUS
    rrules: tuple[str, ...] = ()
    exdates: tuple[datetime, ...] = ()
    rdates: tuple[datetime, ...] = ()
    recurrence_id: Optional[datetime] = None
    component: Optional[ICalEvent] = field(default=None, repr=False, compare=False)

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrules or self.rdates)

    @property
    def is_override(self) -> bool:
        """True for an instance that replaces one occurrence of a recurring master."""
        return self.recurrence_id is not None and not self.is_recurring

    @property
    def duration(self) -> timedelta:
        # Absolute length, constant across DST transitions
        return to_utc(self.end) - to_utc(self.start)


@dataclass(frozen=True)
class CalendarDocument:
    """Parsed representation of one ICS feed's text. Immutable once built."""

    calendar: Calendar = field(repr=False)
    default_timezone: tzinfo = UTC
    calendar_name: Optional[str] = None
    timezone_name: Optional[str] = None
    prodid: Optional[str] = None
    version: Optional[str] = None

    def extract_event_components(self) -> list[RawEventComponent]:
        """Return every top-level VEVENT, normalized.

        Order carries no meaning.

        Raises:
            ICSParseError: If an event lacks a usable DTSTART or has malformed
                time properties
            RecurrenceParseError: If an event's recurrence properties are malformed
        """
        components = [c for c in self.calendar.subcomponents if c.name == "VEVENT"]
        events = [normalize_event_component(c, self.default_timezone) for c in components]
        logger.debug(
            "Extracted %d VEVENT components (%d recurring)",
            len(events),
            sum(1 for e in events if e.is_recurring),
        )
        return events


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


def _component_errors(component: ICalEvent, names: tuple[str, ...]) -> list[str]:
    # icalendar records per-property parse failures on the component instead of raising
    return [
        f"{name}: {message}"
        for name, message in getattr(component, "errors", [])
        if str(name).upper() in names
    ]


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _collect_date_values(
    component: ICalEvent, prop_name: str, default_tz: tzinfo
) -> tuple[datetime, ...]:
    """Flatten EXDATE/RDATE properties (possibly repeated, possibly multi-valued)."""
    values: list[datetime] = []
    for prop in _as_list(component.get(prop_name)):
        for entry in getattr(prop, "dts", [prop]):
            dt = getattr(entry, "dt", entry)
            if isinstance(dt, tuple):
                # PERIOD value: (start, end-or-duration)
                dt = dt[0]
            try:
                values.append(to_instant(dt, default_tz))
            except ValueError as e:
                raise RecurrenceParseError(f"Invalid {prop_name} value {dt!r}") from e
    return tuple(values)


def _rrule_to_string(prop: Any, start: datetime) -> str:
    """Render an RRULE property, anchoring a floating or date-only UNTIL to DTSTART's zone.

    dateutil rejects a naive UNTIL when DTSTART is timezone-aware, which is common in
    hand-written and exported feeds.
    """
    if not isinstance(prop, vRecur):
        raw = prop.to_ical() if hasattr(prop, "to_ical") else prop
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    rule = vRecur(prop)
    untils = rule.get("UNTIL")
    if untils:
        anchored = []
        for until in _as_list(untils):
            if isinstance(until, datetime):
                until_dt = until if until.tzinfo else until.replace(tzinfo=start.tzinfo)
            elif isinstance(until, date):
                until_dt = datetime.combine(until, time(23, 59, 59), tzinfo=start.tzinfo)
            else:
                anchored.append(until)
                continue
            anchored.append(until_dt.astimezone(UTC))
        rule["UNTIL"] = anchored
    return rule.to_ical().decode("utf-8")


def _resolve_end(component: ICalEvent, start: datetime, default_tz: tzinfo) -> datetime:
    dtend = component.get("DTEND")
    if dtend is not None:
        return to_instant(dtend, default_tz)

    duration = component.get("DURATION")
    if duration is not None and isinstance(getattr(duration, "dt", None), timedelta):
        return start + duration.dt

    # RFC 5545: a DATE DTSTART without end spans one day, a DATE-TIME has zero length
    raw_start = component.get("DTSTART").dt
    if not isinstance(raw_start, datetime):
        return start + timedelta(days=1)
    return start


def normalize_event_component(component: ICalEvent, default_tz: tzinfo = UTC) -> RawEventComponent:
    """Normalize one VEVENT into a RawEventComponent.

    Args:
        component: icalendar VEVENT component
        default_tz: Zone for floating and date-only values

    Returns:
        RawEventComponent with aware instants

    Raises:
        ICSParseError: If DTSTART is missing or time properties are malformed
        RecurrenceParseError: If recurrence properties are malformed
    """
    uid = _text_or_none(component.get("UID"))

    time_errors = _component_errors(component, _TIME_PROPERTIES)
    if time_errors:
        raise ICSParseError(f"Event {uid or '<no-uid>'} has malformed time properties: {time_errors}")
    recurrence_errors = _component_errors(component, _RECURRENCE_PROPERTIES)
    if recurrence_errors:
        raise RecurrenceParseError(
            f"Event {uid or '<no-uid>'} has malformed recurrence properties: {recurrence_errors}"
        )

    dtstart = component.get("DTSTART")
    if dtstart is None:
        raise ICSParseError(f"Event {uid or '<no-uid>'} has no DTSTART")

    try:
        start = to_instant(dtstart, default_tz)
        end = _resolve_end(component, start, default_tz)
        recurrence_id_prop = component.get("RECURRENCE-ID")
        recurrence_id = (
            to_instant(recurrence_id_prop, default_tz) if recurrence_id_prop is not None else None
        )
    except ValueError as e:
        raise ICSParseError(f"Event {uid or '<no-uid>'} has invalid dates: {e}") from e

    rrules = tuple(_rrule_to_string(prop, start) for prop in _as_list(component.get("RRULE")))

    status = component.get("STATUS")
    return RawEventComponent(
        uid=uid,
        start=start,
        end=end,
        summary=str(component.get("SUMMARY") or ""),
        description=_text_or_none(component.get("DESCRIPTION")),
        location=_text_or_none(component.get("LOCATION")),
        status=str(status).upper() if status else DEFAULT_STATUS,
        rrules=rrules,
        exdates=_collect_date_values(component, "EXDATE", default_tz),
        rdates=_collect_date_values(component, "RDATE", default_tz),
        recurrence_id=recurrence_id,
        component=component,
    )


class LiteICSParser:
    """iCalendar parser producing CalendarDocument objects - tonton_lite version."""

    def _get_calendar_property(self, calendar: Calendar, prop_name: str) -> Optional[str]:
        """Get a calendar-level property as text.

        Args:
            calendar: Parsed calendar
            prop_name: Property name

        Returns:
            Property value or None
        """
        value = calendar.get(prop_name)
        return str(value) if value is not None else None

    def parse(self, ics_content: str) -> CalendarDocument:
        """Parse ICS text into a CalendarDocument.

        Args:
            ics_content: Raw ICS file content

        Returns:
            CalendarDocument wrapping the parsed calendar

        Raises:
            ICSParseError: If the text is empty, malformed, or not a VCALENDAR
        """
        if not ics_content or not ics_content.strip():
            raise ICSParseError("Empty ICS content")

        try:
            # bytes: icalendar treats single-line str input as a possible file path
            calendar = Calendar.from_ical(ics_content.encode("utf-8"))
        except Exception as e:
            logger.debug("icalendar rejected feed text: %s", e)
            raise ICSParseError(f"Malformed ICS content: {e}") from e

        if getattr(calendar, "name", None) != "VCALENDAR":
            raise ICSParseError(
                f"Expected a VCALENDAR, got {getattr(calendar, 'name', type(calendar).__name__)}"
            )

        timezone_name = self._get_calendar_property(calendar, "X-WR-TIMEZONE")
        document = CalendarDocument(
            calendar=calendar,
            default_timezone=resolve_timezone(timezone_name),
            calendar_name=self._get_calendar_property(calendar, "X-WR-CALNAME"),
            timezone_name=timezone_name,
            prodid=self._get_calendar_property(calendar, "PRODID"),
            version=self._get_calendar_property(calendar, "VERSION"),
        )
        logger.debug(
            "Parsed ICS content (%d bytes, calendar=%r, timezone=%r)",
            len(ics_content),
            document.calendar_name,
            timezone_name,
        )
        return document

    def validate_ics_content(self, ics_content: str) -> bool:
        """Check whether content parses as a calendar, without raising.

        Args:
            ics_content: ICS content to validate

        Returns:
            True if content is valid ICS format
        """
        try:
            self.parse(ics_content)
        except ICSParseError as e:
            logger.debug("ICS validation failed: %s", e)
            return False
        return True


_default_parser = LiteICSParser()


def parse_ics(ics_content: str) -> CalendarDocument:
    """Parse ICS text with a shared stateless parser."""
    return _default_parser.parse(ics_content)


def validate_ics_content(ics_content: str) -> bool:
    return _default_parser.validate_ics_content(ics_content)
