"""Availability service: resolves several feeds and matches a schedule against them.

Each feed is resolved independently through the shared AvailabilityCache. A
feed whose text fails to parse is logged and reported, and the remaining feeds
still contribute their events.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, time, timedelta
from typing import Optional

from .availability_cache import AvailabilityCache
from .lite_datetime_utils import resolve_timezone
from .lite_exceptions import ICSParseError
from .lite_models import AvailabilityReport, FeedEvents, NormalizedEvent, ScheduleDay, SlotPolicy
from .slot_matcher import ScheduleInput, SlotMatcher

logger = logging.getLogger(__name__)


def window_for_schedules(
    schedules: Iterable[ScheduleDay], timezone: str = "UTC"
) -> Optional[tuple[datetime, datetime]]:
    """Window covering every schedule date, local midnight to local midnight.

    Returns:
        (start, end) as UTC instants, or None when there are no schedule dates
    """
    dates = sorted({day.date for day in schedules})
    if not dates:
        return None
    zone = resolve_timezone(timezone)
    start = datetime.combine(dates[0], time.min, tzinfo=zone)
    end = datetime.combine(dates[-1] + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(UTC), end.astimezone(UTC)


def merged_events(feed_results: Iterable[FeedEvents]) -> list[NormalizedEvent]:
    """All events from successfully resolved feeds, ordered by start instant."""
    events = [event for feed in feed_results if feed.ok for event in feed.events]
    events.sort(key=lambda e: e.start_instant)
    return events


class AvailabilityService:
    """Composes the cache, parser, expander and slot matcher for multi-feed callers."""

    def __init__(
        self,
        cache: Optional[AvailabilityCache] = None,
        policy: Optional[SlotPolicy] = None,
    ):
        """Initialize availability service.

        Args:
            cache: Shared availability cache (a fresh one when omitted)
            policy: Slot policy used by evaluate()
        """
        self.cache = cache or AvailabilityCache()
        self.policy = policy or SlotPolicy()
        self.matcher = SlotMatcher(self.policy)

    def collect_events(
        self,
        feeds: Mapping[str, str],
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> list[FeedEvents]:
        """Resolve every feed over one window.

        Args:
            feeds: Source identifier (typically the feed URL) -> raw ICS text
            window_start: Window start (cache default when omitted)
            window_end: Window end (cache default when omitted)

        Returns:
            One FeedEvents per feed, in mapping order. A feed that fails to
            parse carries the error message and no events.
        """
        results: list[FeedEvents] = []
        for source, feed_text in feeds.items():
            try:
                events = self.cache.get_events(feed_text, window_start, window_end)
            except ICSParseError as e:
                logger.warning("Failed to parse ICS data for %s: %s", source, e)
                results.append(FeedEvents(source=source, error=str(e)))
                continue
            logger.info("Resolved %d events for %s", len(events), source)
            results.append(FeedEvents(source=source, events=events))
        return results

    def evaluate(
        self,
        feeds: Mapping[str, str],
        schedules: Iterable[ScheduleInput],
    ) -> AvailabilityReport:
        """Match a schedule against every feed.

        The expansion window spans the schedule dates in the policy timezone.

        Args:
            feeds: Source identifier -> raw ICS text
            schedules: Schedule dates with their slots

        Returns:
            AvailabilityReport with per-feed outcomes and the slot decisions
        """
        days = [d if isinstance(d, ScheduleDay) else ScheduleDay.model_validate(d) for d in schedules]
        window = window_for_schedules(days, self.policy.timezone)
        if window is None:
            window = self.cache.resolve_window()
            logger.info("Empty schedule; using default window")

        feed_results = self.collect_events(feeds, *window)
        failed = [f.source for f in feed_results if not f.ok]
        if failed:
            logger.warning("%d of %d feeds failed: %s", len(failed), len(feed_results), failed)

        result = self.matcher.match(days, merged_events(feed_results))
        return AvailabilityReport(
            window_start=window[0],
            window_end=window[1],
            feeds=feed_results,
            result=result,
        )
