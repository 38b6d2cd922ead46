"""Split a pull request's lifecycle into phases between milestones.

Milestones are ordered by when they actually happened, never by their
canonical order: a human who reviews before the review bot does shows up
first. Milestones that never happened are skipped.

Percentages are rounded per phase to one decimal and are not renormalised,
so their sum lands within one point of 100 rather than exactly on it.

The dev/wait/review/merge rollup is measured from the events themselves,
so development done on the branch before the PR was opened counts as dev.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from prcycle_core.key_states import extract_key_states
from prcycle_core.models import NOW_LABEL, EventKind, KeyState, Phase, TimelineEvent
from prcycle_core.utils.durations import CLOCK_SKEW_TOLERANCE_SECONDS, SECONDS_PER_DAY, interval, round_half_up

CANONICAL_PHASES = ("dev", "wait", "review", "merge")

_REVIEW_STATES = (KeyState.FIRST_AI_REVIEW, KeyState.FIRST_HUMAN_REVIEW)


@dataclass
class PhaseShare:
    duration_seconds: int = 0
    percentage: float = 0.0

    @property
    def days(self) -> float:
        return self.duration_seconds / SECONDS_PER_DAY


@dataclass
class PhaseBreakdown:
    """Per-change dev/wait/review/merge totals, the unit the phase filter works on.

    ``available`` is False for a degenerate lifecycle; ``shares`` is then
    empty and the change has no breakdown at all.
    """

    change_id: int | str
    merged: bool
    shares: dict[str, PhaseShare] = field(default_factory=dict)
    available: bool = True

    def share(self, phase: str) -> PhaseShare:
        return self.shares.get(phase) or PhaseShare()

    @property
    def total_seconds(self) -> int:
        return sum(s.duration_seconds for s in self.shares.values())


def percentage_of(duration_seconds: int, total_seconds: int) -> float:
    if total_seconds <= 0:
        return 0.0
    return round_half_up(duration_seconds / total_seconds * 1000) / 10


def _ordered_states(events: list[TimelineEvent]) -> list[tuple[KeyState, TimelineEvent]]:
    states = extract_key_states(events)
    return sorted(states.items(), key=lambda item: (item[1].instant, item[1].sequence))


def _lifecycle_end(
    ordered: list[tuple[KeyState, TimelineEvent]], events: list[TimelineEvent], now: datetime | None
) -> datetime:
    last_instant = ordered[-1][1].instant
    if any(state is KeyState.MERGED for state, _ in ordered):
        return last_instant
    end = now if now is not None else events[-1].instant
    return max(end, last_instant)


def lifecycle_seconds(
    events: list[TimelineEvent],
    now: datetime | None = None,
    tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS,
) -> int:
    """Seconds from the earliest milestone to the merge, or to ``now`` while still open.

    ``now`` defaults to the instant of the last timeline event.
    """
    ordered = _ordered_states(events)
    if not ordered:
        return 0
    return interval(ordered[0][1].instant, _lifecycle_end(ordered, events, now), tolerance)


def segment_phases(
    events: list[TimelineEvent],
    total_seconds: int,
    now: datetime | None = None,
    tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS,
) -> list[Phase]:
    """Return contiguous phases between temporally adjacent milestones.

    Returns an empty list when ``total_seconds`` is 0 or fewer than two
    milestones were reached; callers treat that as "no breakdown available".
    """
    ordered = _ordered_states(events)
    if total_seconds <= 0 or len(ordered) < 2:
        return []

    phases: list[Phase] = []
    for (from_state, from_event), (to_state, to_event) in zip(ordered, ordered[1:]):
        duration = interval(from_event.instant, to_event.instant, tolerance)
        phases.append(
            Phase(
                from_label=from_state.value,
                to_label=to_state.value,
                duration_seconds=duration,
                percentage=percentage_of(duration, total_seconds),
                started_at=from_event.instant,
                ended_at=to_event.instant,
            )
        )

    last_state, last_event = ordered[-1]
    end = _lifecycle_end(ordered, events, now)
    if end > last_event.instant:
        duration = interval(last_event.instant, end, tolerance)
        phases.append(
            Phase(
                from_label=last_state.value,
                to_label=NOW_LABEL,
                duration_seconds=duration,
                percentage=percentage_of(duration, total_seconds),
                started_at=last_event.instant,
                ended_at=end,
            )
        )

    return phases


def _span(start: datetime, end: datetime, tolerance: float) -> int:
    return interval(start, end, tolerance) if end > start else 0


def canonical_breakdown(
    change_id: int | str,
    events: list[TimelineEvent],
    phases: list[Phase],
    merged: bool,
    now: datetime | None = None,
    tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS,
) -> PhaseBreakdown:
    """Roll a change's lifecycle up into dev, wait, review and merge totals.

    - dev: earliest pre-creation commit until the PR was opened, or until a
      draft was marked ready for review.
    - wait: from there until the first review (AI or human) after creation.
    - review: first review until approval, or until ``now`` when unapproved.
    - merge: approval until merge, or until ``now`` while still open.

    A draft reviewed before it was marked ready stops dev at creation. When
    ``phases`` is empty the lifecycle is degenerate and the breakdown is
    returned unavailable rather than as four zero-length phases.
    """
    states = extract_key_states(events)
    created = states.get(KeyState.CREATED)
    if not phases or created is None:
        return PhaseBreakdown(change_id=change_id, merged=merged, available=False)

    opened = created.instant
    ready = max(
        (e.instant for e in events if e.kind is EventKind.MARKED_READY and e.instant > opened),
        default=opened,
    )
    committed = [e.instant for e in events if e.kind is EventKind.CODE_COMMITTED]
    dev_start = min(committed, default=opened)

    approved = states[KeyState.APPROVED].instant if KeyState.APPROVED in states else None
    reviews = [states[s].instant for s in _REVIEW_STATES if s in states and states[s].instant > opened]
    review_start = min(reviews, default=None)
    if review_start is not None and approved is not None and review_start > approved:
        review_start = None

    ordered = _ordered_states(events)
    end = _lifecycle_end(ordered, events, now)

    dev_end = opened if review_start is not None and review_start < ready else ready
    wait_end = review_start or approved or end

    totals = {
        "dev": _span(dev_start, dev_end, tolerance),
        "wait": _span(dev_end, wait_end, tolerance),
        "review": _span(review_start, approved or end, tolerance) if review_start is not None else 0,
        "merge": _span(approved, end, tolerance) if approved is not None else 0,
    }
    total = sum(totals.values())
    if total <= 0:
        return PhaseBreakdown(change_id=change_id, merged=merged, available=False)

    shares = {name: PhaseShare(duration_seconds=d, percentage=percentage_of(d, total)) for name, d in totals.items()}
    return PhaseBreakdown(change_id=change_id, merged=merged, shares=shares)
