"""Data models for calendar availability processing - tonton_lite."""

import datetime as _dt
from datetime import datetime, time, tzinfo
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .lite_datetime_utils import (
    epoch_millis,
    format_iso_instant,
    parse_hhmm,
    resolve_timezone,
    to_utc,
)

DEFAULT_STATUS = "CONFIRMED"


def _normalize_hhmm(value: str) -> str:
    return parse_hhmm(value).strftime("%H:%M")


class NormalizedEvent(BaseModel):
    """One concrete calendar event (or recurrence occurrence) on absolute instants."""

    summary: str = Field(default="", description="Event summary/title")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location")
    status: str = Field(default=DEFAULT_STATUS, description="iCalendar STATUS value")

    start_instant: datetime = Field(..., description="Start instant (UTC)")
    end_instant: datetime = Field(..., description="End instant (UTC)")
    start_date: str = Field(..., description="ISO-8601 rendering of start_instant")
    end_date: str = Field(..., description="ISO-8601 rendering of end_instant")
    start_timestamp: int = Field(..., description="Start instant in epoch milliseconds")
    end_timestamp: int = Field(..., description="End instant in epoch milliseconds")
    date_key: str = Field(..., description="UTC calendar date of start_instant (YYYY-MM-DD)")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_instants(
        cls,
        start: datetime,
        end: datetime,
        summary: str = "",
        description: Optional[str] = None,
        location: Optional[str] = None,
        status: Optional[str] = None,
    ) -> "NormalizedEvent":
        """Build an event, deriving every rendering from the two instants.

        ``end <= start`` is not rejected: such an event never overlaps a slot.
        """
        start_utc = to_utc(start)
        end_utc = to_utc(end)
        return cls(
            summary=summary,
            description=description,
            location=location,
            status=status or DEFAULT_STATUS,
            start_instant=start_utc,
            end_instant=end_utc,
            start_date=format_iso_instant(start_utc),
            end_date=format_iso_instant(end_utc),
            start_timestamp=epoch_millis(start_utc),
            end_timestamp=epoch_millis(end_utc),
            date_key=start_utc.date().isoformat(),
        )

    @property
    def duration_minutes(self) -> float:
        return (self.end_instant - self.start_instant).total_seconds() / 60

    def overlaps(self, instant: datetime) -> bool:
        """Half-open containment test: ``start <= instant < end``."""
        return self.start_instant <= instant < self.end_instant

    @field_serializer("start_instant", "end_instant")
    def serialize_instant(self, dt: datetime) -> str:
        """Serialize instants in the same form as start_date/end_date."""
        return format_iso_instant(dt)


class TimeSlot(BaseModel):
    """A wall-clock slot exposed by the scheduling UI."""

    time: str = Field(..., description="Wall-clock time (HH:MM)")
    is_half_hour: bool = Field(default=False, alias="isHalfHour", description="30-minute slot")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _normalize_hhmm(value)


class ScheduleDay(BaseModel):
    """One rendered schedule date and the slots offered on it."""

    date: _dt.date = Field(..., description="Schedule date")
    available_slots: list[TimeSlot] = Field(
        default_factory=list, alias="availableSlots", description="Enabled slots on this date"
    )

    model_config = ConfigDict(populate_by_name=True)


class SlotPolicy(BaseModel):
    """Busy-marking policy independent of calendar events.

    Accepts both snake_case names and the camelCase keys the extension stores.
    """

    auto_decline_weekends: bool = Field(default=False, alias="autoDeclineWeekends")
    enforce_working_hours: bool = Field(default=False, alias="enforceWorkingHours")
    work_start: str = Field(default="09:00", alias="workStart")
    work_end: str = Field(default="17:00", alias="workEnd")
    timezone: str = Field(default="UTC", description="IANA zone anchoring slot wall-clock times")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("work_start", "work_end")
    @classmethod
    def validate_hhmm(cls, value: str) -> str:
        return _normalize_hhmm(value)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        if not value or value.upper() in ("UTC", "Z", "GMT"):
            return "UTC"
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value!r}") from e
        return value

    @property
    def zone_info(self) -> tzinfo:
        return resolve_timezone(self.timezone)

    @property
    def work_start_time(self) -> time:
        return parse_hhmm(self.work_start)

    @property
    def work_end_time(self) -> time:
        return parse_hhmm(self.work_end)


class SlotBusyReason(str, Enum):
    """Why a slot was marked busy."""

    WEEKEND = "weekend"
    WORKING_HOURS = "working_hours"
    CALENDAR = "calendar"


class SlotDecision(BaseModel):
    """Busy/free decision for one slot."""

    date: _dt.date
    time: str
    is_half_hour: bool = False
    instant: datetime
    busy: bool = False
    reason: Optional[SlotBusyReason] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_serializer("instant")
    def serialize_instant(self, dt: datetime) -> str:
        return format_iso_instant(dt)


class SlotMatchResult(BaseModel):
    """Per-slot decisions plus the distinct instants to mark busy in the UI."""

    decisions: list[SlotDecision] = Field(default_factory=list)
    busy_instants: list[datetime] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def busy_count(self) -> int:
        return sum(1 for d in self.decisions if d.busy)

    @property
    def free_count(self) -> int:
        return len(self.decisions) - self.busy_count

    @field_serializer("busy_instants")
    def serialize_instants(self, values: list[datetime]) -> list[str]:
        return [format_iso_instant(v) for v in values]


class FeedEvents(BaseModel):
    """Events resolved for one feed, or the error that stopped it."""

    source: str
    events: tuple[NormalizedEvent, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AvailabilityReport(BaseModel):
    """Outcome of evaluating a schedule against several feeds."""

    window_start: datetime
    window_end: datetime
    feeds: list[FeedEvents] = Field(default_factory=list)
    result: SlotMatchResult = Field(default_factory=SlotMatchResult)

    @property
    def failed_sources(self) -> list[str]:
        return [f.source for f in self.feeds if not f.ok]

    @field_serializer("window_start", "window_end")
    def serialize_window(self, dt: datetime) -> str:
        return format_iso_instant(dt)
