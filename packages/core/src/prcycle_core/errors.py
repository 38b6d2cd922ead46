"""Exceptions raised by the analysis core.

All of them subclass ValueError so callers that only care about "bad input"
can catch one type. The CLI layer translates them into click errors.
"""

from __future__ import annotations


class InvalidInstantError(ValueError):
    """A timestamp is missing or cannot be parsed."""

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid instant for {field}: {value!r}")


class IntervalOrderError(ValueError):
    """The end of an interval precedes its start by more than the skew tolerance."""

    def __init__(self, start, end, gap_seconds: float, tolerance: float):
        self.start = start
        self.end = end
        self.gap_seconds = gap_seconds
        self.tolerance = tolerance
        super().__init__(
            f"End instant {end} precedes start instant {start} by {gap_seconds:g}s "
            f"(tolerance {tolerance:g}s)"
        )


class PhaseFilterError(ValueError):
    """One or more phase filter bounds are invalid.

    ``errors`` holds every violation found, not just the first one.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid phase filter: " + "; ".join(self.errors))
