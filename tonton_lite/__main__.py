"""Command-line entry for tonton_lite.

A small debugging CLI over the engine:

  python -m tonton_lite events calendar.ics
  python -m tonton_lite slots calendar.ics --schedule schedule.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import NoReturn, Optional

from dateutil import parser as date_parser
from pydantic import ValidationError

from . import _init_logging
from .availability_cache import AvailabilityCache
from .availability_service import AvailabilityService
from .config_loader import load_config
from .lite_datetime_utils import now_utc, to_utc
from .lite_exceptions import ConfigError, ICSParseError
from .lite_logging import configure_lite_logging

logger = logging.getLogger(__name__)

# Debug listing spans a month back and two months ahead
DEBUG_DAYS_BACK = 30
DEBUG_DAYS_AHEAD = 60


def _parse_instant(value: str) -> datetime:
    try:
        return to_utc(date_parser.isoparse(value))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 datetime: {value!r}") from exc


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for tonton_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="tonton_lite",
        description="tonton_lite - calendar availability engine debugging tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tonton_lite events work.ics                          # events, -30d..+60d
  python -m tonton_lite events work.ics --start 2024-01-05T00:00:00Z --end 2024-01-07T00:00:00Z
  python -m tonton_lite slots work.ics home.ics --schedule schedule.json
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="YAML/JSON config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    events_parser = subparsers.add_parser("events", help="List normalized events of one feed")
    events_parser.add_argument("feed", type=Path, help="ICS file")
    events_parser.add_argument("--start", type=_parse_instant, help="Window start (ISO-8601)")
    events_parser.add_argument("--end", type=_parse_instant, help="Window end (ISO-8601)")

    slots_parser = subparsers.add_parser("slots", help="Decide busy/free for schedule slots")
    slots_parser.add_argument("feeds", type=Path, nargs="+", help="ICS files")
    slots_parser.add_argument(
        "--schedule",
        type=Path,
        required=True,
        help='JSON list of {"date": "YYYY-MM-DD", "availableSlots": [{"time": "HH:MM"}]}',
    )

    return parser


def _run_events(args: argparse.Namespace, cache: AvailabilityCache) -> int:
    now = now_utc()
    start = args.start or now - timedelta(days=DEBUG_DAYS_BACK)
    end = args.end or now + timedelta(days=DEBUG_DAYS_AHEAD)
    try:
        events = cache.get_events(args.feed.read_text(encoding="utf-8"), start, end)
    except ICSParseError:
        logger.exception("Error parsing ICS data for %s", args.feed)
        return 1
    logger.info("Parsed %d events for %s", len(events), args.feed)
    print(json.dumps([e.model_dump(mode="json") for e in events], indent=2))
    return 0


def _run_slots(args: argparse.Namespace, service: AvailabilityService) -> int:
    feeds = {str(path): path.read_text(encoding="utf-8") for path in args.feeds}
    schedules = json.loads(args.schedule.read_text(encoding="utf-8"))
    report = service.evaluate(feeds, schedules)
    print(report.model_dump_json(indent=2))
    return 1 if len(report.failed_sources) == len(feeds) else 0


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the tonton_lite CLI.

    Exit codes: 0 on success, 1 when feeds cannot be parsed, 2 on invalid
    configuration or input files.
    """
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        _init_logging("INFO")
        logger.error("%s", exc)
        sys.exit(2)

    _init_logging("DEBUG" if args.debug else config.log_level)
    configure_lite_logging(debug_mode=args.debug, log_level=config.log_level)
    cache = AvailabilityCache.from_config(config)

    try:
        if args.command == "events":
            code = _run_events(args, cache)
        else:
            code = _run_slots(args, AvailabilityService(cache=cache, policy=config.policy()))
    except json.JSONDecodeError as exc:
        logger.error("Schedule %s is not valid JSON: %s", args.schedule, exc)
        code = 2
    except ValidationError as exc:
        logger.error("Invalid input: %s", exc)
        code = 2
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Cannot read input file: %s", exc)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
