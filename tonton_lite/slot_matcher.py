"""Slot matching: busy/free decisions for UI time slots - tonton_lite.

A slot is busy by policy (weekend decline, working hours) or by calendar
overlap under half-open semantics: an event ``[start, end)`` covers a slot at
``start`` but not a slot at ``end``.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, time
from typing import Any, Optional, Union

from .lite_datetime_utils import parse_hhmm
from .lite_exceptions import EmptyResultWarning
from .lite_models import (
    NormalizedEvent,
    ScheduleDay,
    SlotBusyReason,
    SlotDecision,
    SlotMatchResult,
    SlotPolicy,
    TimeSlot,
)

logger = logging.getLogger(__name__)

# date.weekday(): Monday is 0, Saturday 5, Sunday 6
WEEKEND_DAYS = frozenset({5, 6})

ScheduleInput = Union[ScheduleDay, Mapping[str, Any]]
PolicyInput = Union[SlotPolicy, Mapping[str, Any], None]


def bucket_events_by_date(events: Iterable[NormalizedEvent]) -> dict[str, list[NormalizedEvent]]:
    """Group events by date_key, each bucket sorted by start instant ascending."""
    buckets: dict[str, list[NormalizedEvent]] = {}
    for event in events:
        buckets.setdefault(event.date_key, []).append(event)
    for bucket in buckets.values():
        bucket.sort(key=lambda e: e.start_instant)
    return buckets


def find_overlapping_event(
    bucket: Iterable[NormalizedEvent], instant: datetime
) -> Optional[NormalizedEvent]:
    """Return the first event with ``start <= instant < end`` in a start-sorted bucket.

    Scanning stops at the first event starting after the instant.
    """
    for event in bucket:
        if event.start_instant > instant:
            break
        if instant < event.end_instant:
            return event
    return None


class SlotMatcher:
    """Decides busy/free per slot from a policy and a flat event list."""

    def __init__(self, policy: Optional[SlotPolicy] = None):
        """Initialize slot matcher.

        Args:
            policy: Busy-marking policy (defaults: no weekend decline, no working hours)
        """
        self.policy = policy or SlotPolicy()
        self._zone = self.policy.zone_info
        self._work_start = self.policy.work_start_time
        self._work_end = self.policy.work_end_time

    def slot_instant(self, day: date, slot: TimeSlot) -> datetime:
        """Anchor a slot's wall-clock time on its schedule date, as a UTC instant."""
        local = datetime.combine(day, parse_hhmm(slot.time), tzinfo=self._zone)
        return local.astimezone(UTC)

    def is_weekend(self, day: date) -> bool:
        return day.weekday() in WEEKEND_DAYS

    def is_outside_working_hours(self, slot_time: time) -> bool:
        """True when the slot lies outside ``[work_start, work_end)``."""
        return not (self._work_start <= slot_time < self._work_end)

    def _policy_reason(self, day: date, slot: TimeSlot) -> Optional[SlotBusyReason]:
        if self.policy.auto_decline_weekends and self.is_weekend(day):
            return SlotBusyReason.WEEKEND
        if self.policy.enforce_working_hours and self.is_outside_working_hours(
            parse_hhmm(slot.time)
        ):
            return SlotBusyReason.WORKING_HOURS
        return None

    def match(
        self,
        schedules: Iterable[ScheduleInput],
        events: Iterable[NormalizedEvent],
    ) -> SlotMatchResult:
        """Decide busy/free for every slot of every schedule date.

        Args:
            schedules: Schedule dates with their slots (models or camelCase mappings)
            events: Events already scoped to a relevant window

        Returns:
            SlotMatchResult with one decision per input slot, in input order, and
            the distinct busy instants in ascending order
        """
        buckets = bucket_events_by_date(events)
        decisions: list[SlotDecision] = []
        busy_instants: set[datetime] = set()
        warnings: list[str] = []

        for raw_day in schedules:
            day = raw_day if isinstance(raw_day, ScheduleDay) else ScheduleDay.model_validate(raw_day)
            weekend_declined = self.policy.auto_decline_weekends and self.is_weekend(day.date)

            # (slot, instant, reason) until every rule has run for the date
            pending: list[tuple[TimeSlot, datetime, Optional[SlotBusyReason]]] = [
                (slot, self.slot_instant(day.date, slot), self._policy_reason(day.date, slot))
                for slot in day.available_slots
            ]

            # Weekend short-circuit: no calendar matching at all for this date
            if not weekend_declined:
                slot_keys = {instant.date().isoformat() for _, instant, _ in pending}
                slot_keys.add(day.date.isoformat())
                if not any(buckets.get(key) for key in slot_keys):
                    message = f"No calendar events on {day.date.isoformat()}"
                    logger.warning("%s: %s", EmptyResultWarning.__name__, message)
                    warnings.append(message)

                for index, (slot, instant, reason) in enumerate(pending):
                    if reason is not None:
                        continue
                    bucket = buckets.get(instant.date().isoformat(), [])
                    event = find_overlapping_event(bucket, instant)
                    if event is not None:
                        pending[index] = (slot, instant, SlotBusyReason.CALENDAR)
                        logger.debug(
                            "Slot %s %s overlaps %r (%s..%s)",
                            day.date.isoformat(),
                            slot.time,
                            event.summary,
                            event.start_date,
                            event.end_date,
                        )

            for slot, instant, reason in pending:
                if reason is not None:
                    busy_instants.add(instant)
                decisions.append(
                    SlotDecision(
                        date=day.date,
                        time=slot.time,
                        is_half_hour=slot.is_half_hour,
                        instant=instant,
                        busy=reason is not None,
                        reason=reason,
                    )
                )

        result = SlotMatchResult(
            decisions=decisions,
            busy_instants=sorted(busy_instants),
            warnings=warnings,
        )
        logger.info(
            "Matched %d slots: %d busy (%d distinct instants), %d free",
            len(decisions),
            result.busy_count,
            len(result.busy_instants),
            result.free_count,
        )
        return result


def match_slots(
    schedules: Iterable[ScheduleInput],
    events: Iterable[NormalizedEvent],
    policy: PolicyInput = None,
) -> SlotMatchResult:
    """Match slots with a one-off SlotMatcher.

    Args:
        schedules: Schedule dates with their slots
        events: Events already scoped to a relevant window
        policy: SlotPolicy, or a flat options mapping (camelCase keys accepted)
    """
    if policy is not None and not isinstance(policy, SlotPolicy):
        policy = SlotPolicy.model_validate(dict(policy))
    return SlotMatcher(policy).match(schedules, events)
