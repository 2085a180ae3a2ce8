"""RRULE expansion logic for the tonton_lite availability engine."""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Optional

from dateutil.rrule import rruleset, rrulestr

from .lite_datetime_utils import to_utc
from .lite_exceptions import RecurrenceParseError
from .lite_models import NormalizedEvent
from .lite_parser import RawEventComponent

logger = logging.getLogger(__name__)


class LiteRRuleExpander:
    """Expands RawEventComponent records into NormalizedEvent occurrences over a window.

    Recurrence generators can be infinite. Iteration is always bounded by an
    explicit comparison of each occurrence's start instant against the window
    end, never by an occurrence counter.
    """

    def build_rule_set(
        self,
        raw_event: RawEventComponent,
        extra_exdates: Iterable[datetime] = (),
    ) -> rruleset:
        """Build a dateutil rruleset for a recurring event.

        DTSTART is always the first occurrence, as in RFC 5545, even when it
        does not match the rule's pattern.

        Args:
            raw_event: Recurring event template
            extra_exdates: Additional instants to exclude (overridden occurrences)

        Returns:
            rruleset yielding occurrence starts in chronological order

        Raises:
            RecurrenceParseError: If an RRULE cannot be parsed
        """
        rule_set = rruleset()
        for rrule_string in raw_event.rrules:
            try:
                parsed_rule = rrulestr(rrule_string, dtstart=raw_event.start)
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Invalid RRULE %r for event %s: %s",
                    rrule_string,
                    raw_event.uid or "<no-uid>",
                    e,
                )
                raise RecurrenceParseError(
                    f"Invalid RRULE {rrule_string!r} for event {raw_event.uid or '<no-uid>'}: {e}"
                ) from e
            rule_set.rrule(parsed_rule)

        rule_set.rdate(raw_event.start)
        for rdate in raw_event.rdates:
            rule_set.rdate(rdate)
        for exdate in (*raw_event.exdates, *extra_exdates):
            rule_set.exdate(exdate)
        return rule_set

    def iter_occurrence_starts(
        self,
        raw_event: RawEventComponent,
        window_end: datetime,
        extra_exdates: Iterable[datetime] = (),
    ) -> Iterator[datetime]:
        """Yield occurrence starts up to and including ``window_end``.

        Occurrences are generated in increasing order, so the first start past
        the window end terminates iteration.
        """
        try:
            for occurrence in self.build_rule_set(raw_event, extra_exdates):
                if occurrence > window_end:
                    break
                yield occurrence
        except RecurrenceParseError:
            raise
        except (ValueError, TypeError) as e:
            # dateutil validates some rule parts lazily, on first iteration
            raise RecurrenceParseError(
                f"Failed to expand recurrence for event {raw_event.uid or '<no-uid>'}: {e}"
            ) from e

    def _to_normalized(self, raw_event: RawEventComponent, start: datetime) -> NormalizedEvent:
        return NormalizedEvent.from_instants(
            start=start,
            end=to_utc(start) + raw_event.duration,
            summary=raw_event.summary,
            description=raw_event.description,
            location=raw_event.location,
            status=raw_event.status,
        )

    def expand(
        self,
        raw_event: RawEventComponent,
        window_start: datetime,
        window_end: datetime,
        extra_exdates: Iterable[datetime] = (),
    ) -> list[NormalizedEvent]:
        """Produce the occurrences of one event intersecting the window.

        Non-recurring events are included iff ``window_start <= start <= window_end``;
        the end instant may extend past the window. Recurring events emit each
        occurrence with ``window_start <= s <= window_end``, each lasting as long
        as the template occurrence.

        Args:
            raw_event: Event template from CalendarDocument.extract_event_components()
            window_start: Inclusive window start (aware)
            window_end: Inclusive window end (aware)
            extra_exdates: Occurrence starts replaced by override instances

        Returns:
            Occurrences in chronological order

        Raises:
            RecurrenceParseError: If the recurrence rule is malformed
        """
        window_start = to_utc(window_start)
        window_end = to_utc(window_end)

        if not raw_event.is_recurring:
            if window_start <= raw_event.start <= window_end:
                return [self._to_normalized(raw_event, raw_event.start)]
            return []

        occurrences = [
            self._to_normalized(raw_event, start)
            for start in self.iter_occurrence_starts(raw_event, window_end, extra_exdates)
            if start >= window_start
        ]
        logger.debug(
            "Expanded recurring event %s (%r): %d occurrences in window",
            raw_event.uid or "<no-uid>",
            raw_event.summary,
            len(occurrences),
        )
        return occurrences

    def expand_all(
        self,
        raw_events: Iterable[RawEventComponent],
        window_start: datetime,
        window_end: datetime,
    ) -> list[NormalizedEvent]:
        """Expand every event of a document over one window.

        Override instances (RECURRENCE-ID without their own rule) suppress the
        master occurrence they replace and are emitted as ordinary events.

        Returns:
            Events ordered by start instant
        """
        raw_list = list(raw_events)
        overridden: dict[str, list[datetime]] = {}
        for raw in raw_list:
            if raw.is_override and raw.uid:
                overridden.setdefault(raw.uid, []).append(raw.recurrence_id)

        result: list[NormalizedEvent] = []
        for raw in raw_list:
            extra: Optional[list[datetime]] = None
            if raw.is_recurring and raw.uid:
                extra = overridden.get(raw.uid)
            result.extend(self.expand(raw, window_start, window_end, extra or ()))

        result.sort(key=lambda e: e.start_instant)
        if not result:
            logger.info(
                "No events between %s and %s (%d source events)",
                window_start.isoformat(),
                window_end.isoformat(),
                len(raw_list),
            )
        return result


_default_expander = LiteRRuleExpander()


def expand(
    raw_event: RawEventComponent, window_start: datetime, window_end: datetime
) -> list[NormalizedEvent]:
    """Expand one event over a window with the shared expander."""
    return _default_expander.expand(raw_event, window_start, window_end)


def expand_all(
    raw_events: Iterable[RawEventComponent], window_start: datetime, window_end: datetime
) -> list[NormalizedEvent]:
    return _default_expander.expand_all(raw_events, window_start, window_end)
