"""tonton_lite.config_loader

Lightweight config loader for tonton_lite.

- Reads YAML through PyYAML (JSON documents are valid YAML and load the same way).
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
- Accepts the camelCase keys the browser extension stores its settings under.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .lite_datetime_utils import parse_hhmm
from .lite_exceptions import ConfigError
from .lite_models import SlotPolicy

logger = logging.getLogger(__name__)

# Stored extension settings use camelCase; both spellings are accepted
_KEY_ALIASES = {
    "autoDeclineWeekends": "auto_decline_weekends",
    "enforceWorkingHours": "enforce_working_hours",
    "workStart": "work_start",
    "workEnd": "work_end",
    "startTime": "work_start",
    "endTime": "work_end",
}


@dataclass
class Config:
    """Typed configuration for tonton_lite.

    Fields:
        document_cache_size: distinct feed texts kept parsed (>= 1)
        window_cache_size: expanded windows kept per feed text (>= 1)
        default_window_days: expansion window length when no end is given
        auto_decline_weekends: mark every Saturday/Sunday slot busy
        enforce_working_hours: mark slots outside [work_start, work_end) busy
        work_start: working day start (HH:MM)
        work_end: working day end (HH:MM, exclusive)
        timezone: IANA zone anchoring slot wall-clock times
        log_level: logging level name
    """

    document_cache_size: int = 3
    window_cache_size: int = 6
    default_window_days: int = 30
    auto_decline_weekends: bool = False
    enforce_working_hours: bool = False
    work_start: str = "09:00"
    work_end: str = "17:00"
    timezone: str = "UTC"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Coercions log a warning and fall back to the default instead of failing:
        numeric-like values become ints, cache sizes are at least 1, and times
        that are not HH:MM or zones that are not known IANA names revert to the
        defaults.
        """
        if data is None:
            data = {}
        data = {_KEY_ALIASES.get(k, k): v for k, v in data.items()}
        defaults = cls()

        def _coerce_int(key: str, default: int, minimum: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%d below minimum; coercing to %d", key, value, minimum)
                return minimum
            return value

        def _coerce_bool(key: str, default: bool) -> bool:
            raw = data.get(key, default)
            if isinstance(raw, str):
                return raw.strip().lower() in ("1", "true", "yes", "on")
            return bool(raw)

        def _coerce_hhmm(key: str, default: str) -> str:
            raw = data.get(key, default)
            if isinstance(raw, int) and not isinstance(raw, bool):
                # YAML 1.1 reads unquoted 17:00 as the sexagesimal int 1020
                raw = f"{raw // 60}:{raw % 60:02d}"
            try:
                return parse_hhmm(str(raw)).strftime("%H:%M")
            except ValueError:
                logger.warning("Config %s=%r is not HH:MM; using default %s", key, raw, default)
                return default

        def _coerce_timezone(key: str, default: str) -> str:
            raw = data.get(key, default)
            if not raw:
                return default
            name = str(raw)
            if name.upper() in ("UTC", "Z", "GMT"):
                return "UTC"
            try:
                ZoneInfo(name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Config %s=%r is not a known zone; using default %s", key, raw, default)
                return default
            return name

        log_level = data.get("log_level", defaults.log_level)
        log_level = str(log_level).upper() if log_level is not None else defaults.log_level

        return cls(
            document_cache_size=_coerce_int("document_cache_size", defaults.document_cache_size, 1),
            window_cache_size=_coerce_int("window_cache_size", defaults.window_cache_size, 1),
            default_window_days=_coerce_int("default_window_days", defaults.default_window_days, 1),
            auto_decline_weekends=_coerce_bool("auto_decline_weekends", defaults.auto_decline_weekends),
            enforce_working_hours=_coerce_bool("enforce_working_hours", defaults.enforce_working_hours),
            work_start=_coerce_hhmm("work_start", defaults.work_start),
            work_end=_coerce_hhmm("work_end", defaults.work_end),
            timezone=_coerce_timezone("timezone", defaults.timezone),
            log_level=log_level,
        )

    def policy(self) -> SlotPolicy:
        """Build the SlotPolicy described by this configuration.

        Raises:
            pydantic.ValidationError: If the fields were set to invalid values
                after from_dict (e.g. an unknown timezone)
        """
        return SlotPolicy(
            auto_decline_weekends=self.auto_decline_weekends,
            enforce_working_hours=self.enforce_working_hours,
            work_start=self.work_start,
            work_end=self.work_end,
            timezone=self.timezone,
        )


def _load_yaml(path: Path) -> Any:
    """Load a YAML (or JSON) document from a file."""
    text = path.read_text(encoding="utf-8")
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse config {path}: {exc}") from exc
    # safe_load returns None for empty files; normalize to empty dict
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Falls back to the TONTON_CONFIG
              environment variable, then ./tonton_lite/config.yaml.

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ConfigError.
    """
    env_path = os.environ.get("TONTON_CONFIG")
    if path:
        p = Path(path)
    elif env_path:
        p = Path(env_path)
    else:
        p = Path.cwd() / "tonton_lite" / "config.yaml"
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ConfigError("Config file must contain a mapping at top level")
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
