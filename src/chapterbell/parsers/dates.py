"""
Date parsing shared by the JSON and HTML parsers.

All results are timezone-aware UTC datetimes. Strings without an offset are
taken to be UTC, and date-only values are placed at midnight UTC.
"""

import re
from datetime import date, datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

from chapterbell.parsers.base import ParseError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# chrono-style padding flags (%-d, %_m, %0H) have no strptime equivalent;
# strptime already accepts unpadded numbers for the plain directives.
_PADDING_FLAG = re.compile(r"%[-_0]([a-zA-Z])")


class JsonDateFormat(str, Enum):
    """Named date formats understood by the JSON parser."""

    UNIX_SEC = "unixsec"
    UNIX_MILLI = "unixmilli"
    UNIX_NANO = "unixnano"
    RFC2822 = "rfc2822"
    RFC3339 = "rfc3339"


_FORMAT_ALIASES = {
    "unix": JsonDateFormat.UNIX_MILLI,
}


def resolve_json_date_format(raw: str | None) -> JsonDateFormat | str:
    """
    Map a configured ``dateFormat`` to a named format or a strftime pattern.

    Unset means RFC 3339. Anything that is not a known name is treated as a
    custom strftime pattern.
    """
    if raw is None:
        return JsonDateFormat.RFC3339
    if raw in _FORMAT_ALIASES:
        return _FORMAT_ALIASES[raw]
    try:
        return JsonDateFormat(raw)
    except ValueError:
        return raw


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise ParseError(f"Expected a Unix timestamp, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    raise ParseError(f"Expected a Unix timestamp, got {value!r}")


def _as_text(value: Any) -> str:
    if not isinstance(value, str):
        raise ParseError(f"Expected a date string, got {value!r}")
    return value


def _from_epoch(value: Any, **offset: int) -> datetime:
    try:
        return EPOCH + timedelta(**offset)
    except OverflowError as e:
        raise ParseError(f"Unix timestamp {value!r} is out of range") from e


def normalize_pattern(pattern: str) -> str:
    """Strip chrono-style padding flags so strptime accepts the pattern."""
    return _PADDING_FLAG.sub(r"%\1", pattern)


def parse_with_pattern(text: str, pattern: str) -> datetime:
    """
    Parse a string with a strftime pattern.

    Patterns without a time-of-day directive yield midnight UTC.
    """
    try:
        parsed = datetime.strptime(text.strip(), normalize_pattern(pattern))
    except ValueError as e:
        raise ParseError(f"Date {text!r} does not match {pattern!r}: {e}") from e
    return _as_utc(parsed)


def parse_iso_auto(text: str) -> datetime:
    """
    Parse an ISO 8601 date or datetime.

    A colon in the string means a time of day is present; otherwise the
    string is parsed as a plain date at midnight UTC.
    """
    text = text.strip()
    try:
        if ":" in text:
            return _as_utc(datetime.fromisoformat(text))
        day = date.fromisoformat(text)
    except ValueError as e:
        raise ParseError(f"Date {text!r} is not ISO 8601: {e}") from e
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def parse_json_date(value: Any, date_format: JsonDateFormat | str) -> datetime:
    """
    Parse a JSON date value according to the resolved format.

    Args:
        value: Raw value from the document (int for Unix formats, str otherwise)
        date_format: Result of ``resolve_json_date_format``

    Raises:
        ParseError: On a type mismatch or unparseable value
    """
    if date_format is JsonDateFormat.UNIX_SEC:
        return _from_epoch(value, seconds=_as_integer(value))
    if date_format is JsonDateFormat.UNIX_MILLI:
        return _from_epoch(value, milliseconds=_as_integer(value))
    if date_format is JsonDateFormat.UNIX_NANO:
        return _from_epoch(value, microseconds=_as_integer(value) // 1000)
    if date_format is JsonDateFormat.RFC2822:
        text = _as_text(value)
        try:
            return _as_utc(parsedate_to_datetime(text))
        except (TypeError, ValueError) as e:
            raise ParseError(f"Date {text!r} is not RFC 2822: {e}") from e
    if date_format is JsonDateFormat.RFC3339:
        text = _as_text(value)
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError as e:
            raise ParseError(f"Date {text!r} is not RFC 3339: {e}") from e

    return parse_with_pattern(_as_text(value), date_format)
