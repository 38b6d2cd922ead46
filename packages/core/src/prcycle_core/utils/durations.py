"""Instant parsing, whole-second intervals, and human-readable durations."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from prcycle_core.errors import IntervalOrderError, InvalidInstantError

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

# Commits, comments and CI runs are stamped by different servers; small
# reversals between them are treated as simultaneous.
CLOCK_SKEW_TOLERANCE_SECONDS = 5


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def parse_instant(value, field: str = "instant") -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Accepts datetimes and ISO-8601 strings (a trailing ``Z`` is allowed).
    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInstantError(field, value) from None
    else:
        raise InvalidInstantError(field, value)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def interval(start: datetime, end: datetime, tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS) -> int:
    """Whole seconds from ``start`` to ``end``.

    A negative gap no larger than ``tolerance`` is clock skew and yields 0;
    anything larger raises IntervalOrderError.
    """
    seconds = (end - start).total_seconds()
    if seconds < 0:
        if -seconds <= tolerance:
            return 0
        raise IntervalOrderError(start, end, -seconds, tolerance)
    return round_half_up(seconds)


def format_duration(seconds: int) -> str:
    """Render a duration using its two coarsest non-zero units.

    >>> format_duration(872)
    '14m 32s'
    >>> format_duration(105240)
    '1d 5h'
    """
    if seconds < 0:
        raise ValueError(f"Duration cannot be negative: {seconds}")
    seconds = int(seconds)

    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds}s"

    if seconds < SECONDS_PER_HOUR:
        major, minor = divmod(seconds, SECONDS_PER_MINUTE)
        units = ("m", "s")
    elif seconds < SECONDS_PER_DAY:
        major, rest = divmod(seconds, SECONDS_PER_HOUR)
        minor = rest // SECONDS_PER_MINUTE
        units = ("h", "m")
    else:
        major, rest = divmod(seconds, SECONDS_PER_DAY)
        minor = rest // SECONDS_PER_HOUR
        units = ("d", "h")

    if minor == 0:
        return f"{major}{units[0]}"
    return f"{major}{units[0]} {minor}{units[1]}"


def format_instant(instant: datetime) -> str:
    """Render an instant as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.strftime("%Y-%m-%d %H:%M:%S")
