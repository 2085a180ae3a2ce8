"""Exception hierarchy for the tonton_lite availability engine.

Parse and expansion failures surface to the immediate caller as typed
exceptions so the caller can decide whether to retry with new feed text.
"""


class TontonError(Exception):
    """Base exception for all tonton_lite errors.

    All custom exceptions in the engine inherit from this base class so
    callers can catch engine failures in one place.
    """


class ICSParseError(TontonError):
    """ICS text could not be turned into calendar data.

    Raised when:
    - The feed text is empty or not well-formed iCalendar data
    - The top-level component is not a VCALENDAR
    - A VEVENT is missing a usable DTSTART

    Fatal for the feed's request. A failed parse is never cached.
    """


class RecurrenceParseError(ICSParseError):
    """A recurrence rule could not be expanded.

    Raised when:
    - RRULE text is malformed or names an unknown frequency
    - dateutil rejects the rule for the event's DTSTART
    """


class ConfigError(TontonError):
    """Configuration file could not be used.

    Raised when the file parses but its top level is not a mapping, or the
    file is not valid YAML.
    """


class EmptyResultWarning(UserWarning):
    """Zero events in a requested window or on a schedule date.

    Not an error: an empty calendar day is a valid outcome. The slot matcher
    labels its soft warnings with this category.
    """


# Alias matching the engine's public vocabulary
ParseError = ICSParseError
