"""Filter a batch of pull requests by per-phase share or duration bounds.

All present bounds must hold (AND). Bounds are evaluated phase by phase in
dev, wait, review, merge order and, within a phase, percent-min, percent-max,
days-min, days-max. Evaluation of a change stops at the first bound it fails
and only that bound is charged in the exclusion counts, so each count is a
lower bound on how restrictive that bound really is.

A change without a breakdown never passes and is counted under
``no-breakdown`` before any bound is looked at.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from typing import Any, Iterator, Mapping, Optional

from prcycle_core.errors import PhaseFilterError
from prcycle_core.phases import CANONICAL_PHASES, PhaseBreakdown

logger = logging.getLogger(__name__)

_MEASURES = ("percent", "days")
_LIMITS = ("min", "max")

# Unmerged changes have no merge phase; any merge bound excludes them.
MERGE_OPEN_CHANGE = "merge-open-change"

# Degenerate lifecycles have no phases to compare against any bound.
NO_BREAKDOWN = "no-breakdown"


@dataclass
class PhaseFilter:
    dev_percent_min: Optional[float] = None
    dev_percent_max: Optional[float] = None
    dev_days_min: Optional[float] = None
    dev_days_max: Optional[float] = None
    wait_percent_min: Optional[float] = None
    wait_percent_max: Optional[float] = None
    wait_days_min: Optional[float] = None
    wait_days_max: Optional[float] = None
    review_percent_min: Optional[float] = None
    review_percent_max: Optional[float] = None
    review_days_min: Optional[float] = None
    review_days_max: Optional[float] = None
    merge_percent_min: Optional[float] = None
    merge_percent_max: Optional[float] = None
    merge_days_min: Optional[float] = None
    merge_days_max: Optional[float] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> PhaseFilter:
        """Build from ``wait-percent-min`` or ``wait_percent_min`` style keys.

        Unknown keys raise PhaseFilterError; None values are dropped.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, float] = {}
        unknown = []
        for key, value in (values or {}).items():
            name = str(key).replace("-", "_")
            if name not in known:
                unknown.append(f"unknown phase filter bound '{key}'")
                continue
            if value is None:
                continue
            try:
                kwargs[name] = float(value)
            except (TypeError, ValueError):
                unknown.append(f"{bound_name(name)} ({value!r}) must be a number")
        if unknown:
            raise PhaseFilterError(unknown)
        return cls(**kwargs)

    def get(self, phase: str, measure: str, limit: str) -> Optional[float]:
        return getattr(self, f"{phase}_{measure}_{limit}")

    def present(self) -> dict[str, float]:
        """Bounds that are set, keyed by dashed bound name."""
        return {bound_name(f.name): getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def has_bounds(self, phase: str) -> bool:
        return any(self.get(phase, m, lim) is not None for m in _MEASURES for lim in _LIMITS)

    def is_empty(self) -> bool:
        return not self.present()


def bound_name(field_name: str) -> str:
    return field_name.replace("_", "-")


def _bounds(phase: str) -> Iterator[tuple[str, str, str]]:
    for measure in _MEASURES:
        for limit in _LIMITS:
            yield measure, limit, f"{phase}-{measure}-{limit}"


def validate_phase_filter(phase_filter: PhaseFilter) -> list[str]:
    """Return every violation found; an empty list means the filter is usable."""
    errors: list[str] = []

    if phase_filter.is_empty():
        errors.append("at least one phase filter bound must be given")
        return errors

    for phase in CANONICAL_PHASES:
        for measure, limit, name in _bounds(phase):
            value = phase_filter.get(phase, measure, limit)
            if value is None:
                continue
            if math.isnan(value):
                errors.append(f"{name} must be a number, got NaN")
            elif measure == "percent" and not 0 <= value <= 100:
                errors.append(f"{name} ({value:g}) must be within 0-100")
            elif measure == "days" and value < 0:
                errors.append(f"{name} ({value:g}) must be >= 0")

        for measure in _MEASURES:
            low = phase_filter.get(phase, measure, "min")
            high = phase_filter.get(phase, measure, "max")
            if low is not None and high is not None and low > high:
                errors.append(
                    f"{phase}-{measure}-min ({low:g}) cannot exceed {phase}-{measure}-max ({high:g})"
                )

    return errors


def ensure_valid(phase_filter: PhaseFilter) -> None:
    errors = validate_phase_filter(phase_filter)
    if errors:
        raise PhaseFilterError(errors)


@dataclass
class FilterStats:
    total: int = 0
    passed: int = 0
    excluded_by_bound: dict[str, int] = field(default_factory=dict)

    def charge(self, name: str) -> None:
        self.excluded_by_bound[name] = self.excluded_by_bound.get(name, 0) + 1


@dataclass
class FilterResult:
    passed: list[PhaseBreakdown]
    stats: FilterStats
    matched_phases: dict[int | str, list[str]] = field(default_factory=dict)


def _failed_bound(breakdown: PhaseBreakdown, phase: str, phase_filter: PhaseFilter) -> str | None:
    share = breakdown.share(phase)
    observed = {"percent": share.percentage, "days": share.days}
    for measure, limit, name in _bounds(phase):
        bound = phase_filter.get(phase, measure, limit)
        if bound is None:
            continue
        value = observed[measure]
        if (limit == "min" and value < bound) or (limit == "max" and value > bound):
            return name
    return None


def _evaluate(breakdown: PhaseBreakdown, phase_filter: PhaseFilter, stats: FilterStats) -> list[str] | None:
    """Return matched phases when ``breakdown`` passes, None after charging the failed bound."""
    if not breakdown.available:
        stats.charge(NO_BREAKDOWN)
        return None

    matched: list[str] = []
    for phase in CANONICAL_PHASES:
        if phase == "merge" and not breakdown.merged:
            if phase_filter.has_bounds("merge"):
                stats.charge(MERGE_OPEN_CHANGE)
                return None
            continue

        failed = _failed_bound(breakdown, phase, phase_filter)
        if failed is not None:
            stats.charge(failed)
            return None
        if phase_filter.has_bounds(phase):
            matched.append(phase)
    return matched


def apply_phase_filter(breakdowns: list[PhaseBreakdown], phase_filter: PhaseFilter) -> FilterResult:
    """Keep the changes that satisfy every bound in ``phase_filter``.

    Raises PhaseFilterError listing every violation before any change is
    looked at when the filter itself is inconsistent.
    """
    ensure_valid(phase_filter)

    stats = FilterStats(total=len(breakdowns))
    passed: list[PhaseBreakdown] = []
    matched_phases: dict[int | str, list[str]] = {}

    for breakdown in breakdowns:
        matched = _evaluate(breakdown, phase_filter, stats)
        if matched is None:
            continue
        passed.append(breakdown)
        if matched:
            matched_phases[breakdown.change_id] = matched

    stats.passed = len(passed)
    logger.debug("Phase filter kept %d of %d changes", stats.passed, stats.total)
    return FilterResult(passed=passed, stats=stats, matched_phases=matched_phases)
