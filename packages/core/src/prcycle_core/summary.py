"""Batch statistics over analysed pull requests, with sorting and selection helpers.

Phase statistics only count changes that have a breakdown. Cycle time is
the lifecycle in days. The with/without split is on whether an automated
reviewer reviewed the change.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Optional

from prcycle_core.analyzer import ChangeAnalysis
from prcycle_core.models import EventKind, KeyState
from prcycle_core.phases import CANONICAL_PHASES
from prcycle_core.utils.durations import SECONDS_PER_DAY, round_half_up


def percentile(values: list[float], pct: float) -> float:
    """Linear interpolation between closest ranks; 0.0 when there are no values."""
    if not 0 <= pct <= 100:
        raise ValueError(f"percentile must be within 0-100, got {pct}")
    if not values:
        return 0.0
    ordered = sorted(values)
    position = (len(ordered) - 1) * pct / 100
    lower, upper = math.floor(position), math.ceil(position)
    if lower == upper:
        return float(ordered[lower])
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower)


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _one_decimal(value: float) -> float:
    return round_half_up(value * 10) / 10


def cycle_days(analysis: ChangeAnalysis) -> float:
    return analysis.lifecycle_seconds / SECONDS_PER_DAY


def has_ai_review(analysis: ChangeAnalysis) -> bool:
    return KeyState.FIRST_AI_REVIEW in analysis.key_states


def human_review_count(analysis: ChangeAnalysis) -> int:
    return sum(1 for e in analysis.events if e.kind is EventKind.HUMAN_REVIEW_STARTED)


@dataclass
class PhaseStats:
    average_seconds: int = 0
    median_seconds: int = 0
    p90_seconds: int = 0
    average_percentage: float = 0.0


@dataclass
class GroupStats:
    count: int = 0
    average_cycle_days: float = 0.0
    median_cycle_days: float = 0.0
    average_wait_seconds: int = 0
    median_wait_seconds: int = 0


@dataclass
class BatchSummary:
    count: int = 0
    with_breakdown: int = 0
    average_cycle_days: float = 0.0
    median_cycle_days: float = 0.0
    p90_cycle_days: float = 0.0
    phases: dict[str, PhaseStats] = field(default_factory=dict)
    with_ai: GroupStats = field(default_factory=GroupStats)
    without_ai: GroupStats = field(default_factory=GroupStats)


def _group(analyses: list[ChangeAnalysis]) -> GroupStats:
    days = [cycle_days(a) for a in analyses]
    waits = [a.breakdown.share("wait").duration_seconds for a in analyses if a.breakdown.available]
    return GroupStats(
        count=len(analyses),
        average_cycle_days=_one_decimal(_mean(days)),
        median_cycle_days=_one_decimal(percentile(days, 50)),
        average_wait_seconds=round_half_up(_mean(waits)),
        median_wait_seconds=round_half_up(percentile(waits, 50)),
    )


def summarize(analyses: list[ChangeAnalysis]) -> BatchSummary:
    """Average, median and p90 per canonical phase plus cycle time, split by AI review."""
    summary = BatchSummary(count=len(analyses))
    if not analyses:
        return summary

    days = [cycle_days(a) for a in analyses]
    summary.average_cycle_days = _one_decimal(_mean(days))
    summary.median_cycle_days = _one_decimal(percentile(days, 50))
    summary.p90_cycle_days = _one_decimal(percentile(days, 90))

    breakdowns = [a.breakdown for a in analyses if a.breakdown.available]
    summary.with_breakdown = len(breakdowns)
    for phase in CANONICAL_PHASES:
        seconds = [b.share(phase).duration_seconds for b in breakdowns]
        summary.phases[phase] = PhaseStats(
            average_seconds=round_half_up(_mean(seconds)),
            median_seconds=round_half_up(percentile(seconds, 50)),
            p90_seconds=round_half_up(percentile(seconds, 90)),
            average_percentage=_one_decimal(_mean([b.share(phase).percentage for b in breakdowns])),
        )

    summary.with_ai = _group([a for a in analyses if has_ai_review(a)])
    summary.without_ai = _group([a for a in analyses if not has_ai_review(a)])
    return summary


def _phase_seconds(phase: str) -> Callable[[ChangeAnalysis], Optional[int]]:
    def value(analysis: ChangeAnalysis) -> Optional[int]:
        if not analysis.breakdown.available:
            return None
        return analysis.breakdown.share(phase).duration_seconds

    return value


def _milestone(state: KeyState):
    def value(analysis: ChangeAnalysis):
        event = analysis.key_states.get(state)
        return event.instant if event is not None else None

    return value


SORT_KEYS: dict[str, Callable[[ChangeAnalysis], object]] = {
    "cycle-time": lambda a: a.lifecycle_seconds,
    **{phase: _phase_seconds(phase) for phase in CANONICAL_PHASES},
    "reviews": human_review_count,
    "created": _milestone(KeyState.CREATED),
    "merged": _milestone(KeyState.MERGED),
}


def sort_analyses(analyses: list[ChangeAnalysis], key: str, descending: bool = False) -> list[ChangeAnalysis]:
    """Order by ``key``; changes with no value for it go last in either direction."""
    if key not in SORT_KEYS:
        raise ValueError(f"unknown sort key '{key}', expected one of: {', '.join(SORT_KEYS)}")
    value_of = SORT_KEYS[key]
    ranked = [a for a in analyses if value_of(a) is not None]
    missing = [a for a in analyses if value_of(a) is None]
    return sorted(ranked, key=value_of, reverse=descending) + missing


def select_by_review(
    analyses: list[ChangeAnalysis],
    ai_review_only: bool = False,
    human_review_only: bool = False,
    exclude_no_review: bool = False,
) -> list[ChangeAnalysis]:
    """Keep changes by who reviewed them.

    - ``ai_review_only``: an automated reviewer reviewed the change.
    - ``human_review_only``: no automated reviewer did.
    - ``exclude_no_review``: at least one human review comment exists.
    """
    if ai_review_only and human_review_only:
        raise ValueError("ai_review_only and human_review_only are mutually exclusive")
    selected = list(analyses)
    if ai_review_only:
        selected = [a for a in selected if has_ai_review(a)]
    if human_review_only:
        selected = [a for a in selected if not has_ai_review(a)]
    if exclude_no_review:
        selected = [a for a in selected if human_review_count(a) > 0]
    return selected
