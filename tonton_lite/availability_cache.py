"""Two-level LRU cache of parsed feeds and expanded event windows.

The document level maps exact feed text to its parsed CalendarDocument; each
document entry owns a window level mapping a canonical (start, end) pair to the
expanded event tuple. Both levels evict the least-recently-used entry by a
linear scan over last-used stamps once their capacity is exceeded.

Example:
    cache = AvailabilityCache()
    events = cache.get_events(ics_text, window_start, window_end)
    cache.get_events(ics_text, window_start, window_end)  # served from cache
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

from .lite_datetime_utils import now_utc, to_utc
from .lite_models import NormalizedEvent
from .lite_parser import CalendarDocument, LiteICSParser
from .lite_rrule_expander import LiteRRuleExpander

if TYPE_CHECKING:
    from .config_loader import Config

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_CACHE_SIZE = 3
DEFAULT_WINDOW_CACHE_SIZE = 6
DEFAULT_WINDOW_DAYS = 30

WindowKey = tuple[datetime, datetime]
EventTuple = tuple[NormalizedEvent, ...]


@dataclass
class WindowCacheEntry:
    events: EventTuple
    last_used: int


@dataclass
class DocumentCacheEntry:
    document: CalendarDocument
    last_used: int
    windows: dict[WindowKey, WindowCacheEntry] = field(default_factory=dict)


def _least_recently_used(entries: dict[Any, Any]) -> Any:
    oldest_key = None
    oldest = None
    for key, entry in entries.items():
        if oldest is None or entry.last_used < oldest:
            oldest = entry.last_used
            oldest_key = key
    return oldest_key


class AvailabilityCache:
    """Memoizes ``feed text -> document`` and ``(document, window) -> events``.

    The cache is an optimization only: a miss always recomputes from scratch and
    a failed parse or expansion inserts nothing. Lookups and insert/evict
    sequences hold a single lock; parsing and expansion run outside it, and a
    racing insert of the same key is resolved in favor of the first writer.
    """

    def __init__(
        self,
        max_documents: int = DEFAULT_DOCUMENT_CACHE_SIZE,
        max_windows: int = DEFAULT_WINDOW_CACHE_SIZE,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        parser: Optional[LiteICSParser] = None,
        expander: Optional[LiteRRuleExpander] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        """Initialize availability cache.

        Args:
            max_documents: Number of distinct feed texts kept parsed
            max_windows: Number of expanded windows kept per feed text
            default_window_days: Window length when the caller omits the end
            parser: ICS parser (a fresh LiteICSParser when omitted)
            expander: Recurrence expander (a fresh LiteRRuleExpander when omitted)
            clock: Source of "now" for default windows
        """
        if max_documents < 1 or max_windows < 1:
            raise ValueError("Cache capacities must be at least 1")

        self.max_documents = max_documents
        self.max_windows = max_windows
        self.default_window_days = default_window_days
        self.parser = parser or LiteICSParser()
        self.expander = expander or LiteRRuleExpander()
        self._clock = clock

        self._documents: dict[str, DocumentCacheEntry] = {}
        self._lock = threading.RLock()
        # Logical clock: strictly increasing, so two touches never tie
        self._ticks = itertools.count(1)
        self.stats = self._empty_stats()

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> AvailabilityCache:
        """Build a cache using the capacities from a loaded Config."""
        return cls(
            max_documents=config.document_cache_size,
            max_windows=config.window_cache_size,
            default_window_days=config.default_window_days,
            **kwargs,
        )

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {
            "document_hits": 0,
            "document_misses": 0,
            "document_evictions": 0,
            "window_hits": 0,
            "window_misses": 0,
            "window_evictions": 0,
        }

    def resolve_window(
        self,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> WindowKey:
        """Apply default bounds and normalize both to UTC instants.

        A missing start is "now"; a missing end is "now" plus the default
        window length, independent of the start.
        """
        now = self._clock()
        start = to_utc(window_start) if window_start is not None else to_utc(now)
        end = (
            to_utc(window_end)
            if window_end is not None
            else to_utc(now) + timedelta(days=self.default_window_days)
        )
        if start > end:
            logger.warning("Window start %s is after window end %s", start, end)
        return start, end

    def _get_document_entry(self, feed_text: str) -> DocumentCacheEntry:
        with self._lock:
            entry = self._documents.get(feed_text)
            if entry is not None:
                entry.last_used = next(self._ticks)
                self.stats["document_hits"] += 1
                return entry
            self.stats["document_misses"] += 1

        # Parse outside the lock; ICSParseError propagates and nothing is inserted
        document = self.parser.parse(feed_text)

        with self._lock:
            existing = self._documents.get(feed_text)
            if existing is not None:
                existing.last_used = next(self._ticks)
                return existing

            entry = DocumentCacheEntry(document=document, last_used=next(self._ticks))
            self._documents[feed_text] = entry
            if len(self._documents) > self.max_documents:
                oldest_key = _least_recently_used(self._documents)
                if oldest_key is not None:
                    del self._documents[oldest_key]
                    self.stats["document_evictions"] += 1
                    logger.debug(
                        "Evicted least-recently-used feed document (cache size: %d/%d)",
                        len(self._documents),
                        self.max_documents,
                    )
            return entry

    def get_events(
        self,
        feed_text: str,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> EventTuple:
        """Return the normalized events of a feed within a window.

        Args:
            feed_text: Raw ICS text
            window_start: Window start (defaults to now)
            window_end: Window end (defaults to now + default_window_days)

        Returns:
            Events ordered by start instant. Repeated calls with the same
            arguments return the cached tuple until it is evicted.

        Raises:
            ICSParseError: If the feed text or one of its recurrence rules is malformed
        """
        window_key = self.resolve_window(window_start, window_end)
        entry = self._get_document_entry(feed_text)

        with self._lock:
            window_entry = entry.windows.get(window_key)
            if window_entry is not None:
                window_entry.last_used = next(self._ticks)
                self.stats["window_hits"] += 1
                logger.debug("Window cache hit for %s..%s", *window_key)
                return window_entry.events
            self.stats["window_misses"] += 1

        raw_events = entry.document.extract_event_components()
        events = tuple(self.expander.expand_all(raw_events, *window_key))

        with self._lock:
            existing = entry.windows.get(window_key)
            if existing is not None:
                existing.last_used = next(self._ticks)
                return existing.events

            entry.windows[window_key] = WindowCacheEntry(events=events, last_used=next(self._ticks))
            if len(entry.windows) > self.max_windows:
                oldest_key = _least_recently_used(entry.windows)
                if oldest_key is not None:
                    del entry.windows[oldest_key]
                    self.stats["window_evictions"] += 1
                    logger.debug(
                        "Evicted least-recently-used window %s..%s (window cache size: %d/%d)",
                        oldest_key[0],
                        oldest_key[1],
                        len(entry.windows),
                        self.max_windows,
                    )

        logger.debug(
            "Expanded %d events for window %s..%s",
            len(events),
            window_key[0].isoformat(),
            window_key[1].isoformat(),
        )
        return events

    @property
    def document_count(self) -> int:
        with self._lock:
            return len(self._documents)

    def contains(self, feed_text: str) -> bool:
        """Check whether a feed text is cached, without touching its stamp."""
        with self._lock:
            return feed_text in self._documents

    def window_count(self, feed_text: str) -> int:
        """Number of cached windows for a feed text (0 when the feed is not cached)."""
        with self._lock:
            entry = self._documents.get(feed_text)
            return len(entry.windows) if entry is not None else 0

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with hit/miss/eviction counters per level, hit rates (0-100)
            and current sizes.
        """
        with self._lock:
            stats: dict[str, Any] = dict(self.stats)
            for level in ("document", "window"):
                total = stats[f"{level}_hits"] + stats[f"{level}_misses"]
                hit_rate = (stats[f"{level}_hits"] / total * 100) if total > 0 else 0.0
                stats[f"{level}_hit_rate"] = round(hit_rate, 2)
            stats["document_count"] = len(self._documents)
            stats["window_count"] = sum(len(e.windows) for e in self._documents.values())
            stats["max_documents"] = self.max_documents
            stats["max_windows"] = self.max_windows
            return stats

    def clear_stats(self) -> None:
        """Clear cache statistics (useful for testing)."""
        with self._lock:
            self.stats = self._empty_stats()
