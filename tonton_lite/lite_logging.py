"""
Central logging configuration for tonton_lite.

Keeps engine diagnostics visible while quieting the per-property debug output
of the iCalendar stack on large feeds.
"""

import logging
import os
from typing import Optional

# Third-party loggers that flood DEBUG output while parsing large feeds
_NOISY_LOGGERS: dict[str, int] = {
    "icalendar": logging.INFO,
    "dateutil": logging.WARNING,
    "yaml": logging.WARNING,
}

_LITE_MODULES = [
    "tonton_lite",
    "tonton_lite.lite_parser",
    "tonton_lite.lite_rrule_expander",
    "tonton_lite.availability_cache",
    "tonton_lite.slot_matcher",
    "tonton_lite.availability_service",
]


def configure_lite_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for tonton_lite.

    Args:
        debug_mode: Whether to enable debug logging for tonton_lite modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Root level name from configuration, ignored in debug mode
            (TONTON_LOG_LEVEL wins)

    Environment Variables:
        TONTON_DEBUG: Set to '1', 'true', 'yes', 'on' to force debug logging
        TONTON_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    env_debug = os.getenv("TONTON_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")
    env_log_level = os.getenv("TONTON_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
    root_level = logging.DEBUG if final_debug else logging.INFO
    if not final_debug and log_level and log_level.upper() in levels:
        root_level = getattr(logging, log_level.upper())
    if env_log_level in levels:
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    logger_config = dict(_NOISY_LOGGERS)
    lite_level = logging.DEBUG if final_debug else logging.INFO
    for module in _LITE_MODULES:
        logger_config[module] = lite_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for tonton_lite modules")
    else:
        root_logger.info("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["tonton_lite", *_NOISY_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
