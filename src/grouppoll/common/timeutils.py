"""
Canonical wire formats for poll dates and times.

Dates travel as ``YYYY-MM-DD`` and times as ``HH:MM`` (24-hour, zero-padded).
Internally they are plain ``datetime.date`` and ``datetime.time`` values, so
comparisons never go through a timezone-aware clock and the same wall-clock
slot compares equal no matter where the server or the viewer is.
"""

import re
from datetime import date, time

from grouppoll.common.errors import FormatError, RangeError

TIME_PATTERN = re.compile(r"^([0-9]{2}):([0-9]{2})$")
DATE_PATTERN = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")


def parse_time(value: str) -> time:
    """Parse an ``HH:MM`` string.

    Raises:
        FormatError: if the string is not exactly two digits, colon, two digits
        RangeError: if the hour is above 23 or the minute above 59
    """
    match = TIME_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise FormatError(f"Invalid time format: {value!r}. Expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise RangeError(f"Time out of range: {value}")
    return time(hours, minutes)


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string.

    Raises:
        FormatError: if the string does not match the pattern
        RangeError: if the components do not form a real calendar date
    """
    match = DATE_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise FormatError(f"Invalid date format: {value!r}. Expected YYYY-MM-DD")

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as e:
        raise RangeError(f"Date out of range: {value}") from e


def format_time(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def format_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_slot(date_str: str, start_str: str, end_str: str) -> tuple[date, time, time]:
    """Parse a (date, start, end) triple, requiring start < end."""
    slot_date = parse_date(date_str)
    start, end = parse_time(start_str), parse_time(end_str)
    if start >= end:
        raise RangeError(f"Start time {start_str} must be before end time {end_str}")
    return slot_date, start, end
