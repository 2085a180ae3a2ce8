"""tonton_lite - calendar availability engine.

Parses ICS feeds, expands recurring events over bounded windows, caches the
results, and decides which UI time slots are busy.
"""

__version__ = "0.1.0"

from typing import Optional

from .availability_cache import AvailabilityCache
from .availability_service import AvailabilityService
from .lite_exceptions import (
    ConfigError,
    EmptyResultWarning,
    ICSParseError,
    ParseError,
    RecurrenceParseError,
    TontonError,
)
from .lite_models import (
    AvailabilityReport,
    NormalizedEvent,
    ScheduleDay,
    SlotDecision,
    SlotMatchResult,
    SlotPolicy,
    TimeSlot,
)
from .lite_parser import CalendarDocument, RawEventComponent, parse_ics
from .lite_rrule_expander import expand
from .slot_matcher import SlotMatcher, match_slots

__all__ = [
    "AvailabilityCache",
    "AvailabilityReport",
    "AvailabilityService",
    "CalendarDocument",
    "ConfigError",
    "EmptyResultWarning",
    "ICSParseError",
    "NormalizedEvent",
    "ParseError",
    "RawEventComponent",
    "RecurrenceParseError",
    "ScheduleDay",
    "SlotDecision",
    "SlotMatchResult",
    "SlotMatcher",
    "SlotPolicy",
    "TimeSlot",
    "TontonError",
    "expand",
    "match_slots",
    "parse_ics",
]


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized console handler when no handler is configured yet, so
    CLI output and early warnings are visible. Honors TONTON_DEBUG (truthy
    values: "1", "true", "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("TONTON_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
