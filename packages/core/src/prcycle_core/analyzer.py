"""Run the full lifecycle analysis for one pull request or a batch of them.

The analysis itself is synchronous and pure. Fetching is where the time
goes, so ``analyze_batch`` fetches each chunk of pull requests concurrently
and isolates failures: one change that cannot be fetched or analysed is
logged and recorded, and the rest of the batch carries on.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Hashable, Optional

from prcycle_core.classifier import DEFAULT_CLASSIFIER_CONFIG, ClassifierConfig
from prcycle_core.key_states import extract_key_states
from prcycle_core.models import Actor, ChangeEvents, ChangeRecord, KeyState, Phase, TimelineEvent
from prcycle_core.phases import PhaseBreakdown, canonical_breakdown, lifecycle_seconds, segment_phases
from prcycle_core.timeline import build_timeline, collect_actors
from prcycle_core.utils.durations import CLOCK_SKEW_TOLERANCE_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


@dataclass
class ChangeAnalysis:
    change: ChangeRecord
    events: list[TimelineEvent]
    actors: dict[str, Actor]
    key_states: dict[KeyState, TimelineEvent]
    phases: list[Phase]
    lifecycle_seconds: int
    breakdown: PhaseBreakdown
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def merged(self) -> bool:
        return self.change.merged_at is not None


def analyze_change(
    change_events: ChangeEvents,
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
    now: Optional[datetime] = None,
    tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS,
) -> ChangeAnalysis:
    """Build the timeline, milestones and phase breakdown of one change.

    Raises InvalidInstantError or IntervalOrderError when the raw events
    cannot be put in a consistent order.
    """
    change = change_events.change
    events = build_timeline(
        change,
        change_events.commits,
        change_events.comments,
        change_events.pipeline_runs,
        config=config,
        tolerance=tolerance,
    )
    total = lifecycle_seconds(events, now=now, tolerance=tolerance)
    phases = segment_phases(events, total, now=now, tolerance=tolerance)
    merged = change.merged_at is not None

    return ChangeAnalysis(
        change=change,
        events=events,
        actors=collect_actors(events),
        key_states=extract_key_states(events),
        phases=phases,
        lifecycle_seconds=total,
        breakdown=canonical_breakdown(change.number, events, phases, merged, now=now, tolerance=tolerance),
    )


@dataclass
class BatchFailure:
    ref: Hashable
    error: str


@dataclass
class BatchResult:
    analyses: list[ChangeAnalysis] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)


def analyze_batch(
    refs: list,
    fetch: Callable[[Hashable], ChangeEvents],
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
    batch_size: int = DEFAULT_BATCH_SIZE,
    now: Optional[datetime] = None,
    tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> BatchResult:
    """Fetch and analyse ``refs`` ``batch_size`` at a time.

    ``fetch`` turns a ref (usually a pull request number) into its raw
    events. Results keep the order of ``refs``. ``on_progress`` is called
    with (done, total) after each chunk.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    def run(ref) -> ChangeAnalysis:
        return analyze_change(fetch(ref), config=config, now=now, tolerance=tolerance)

    result = BatchResult()
    total = len(refs)
    for start in range(0, total, batch_size):
        chunk = refs[start : start + batch_size]
        with ThreadPoolExecutor(max_workers=len(chunk)) as executor:
            futures = [(ref, executor.submit(run, ref)) for ref in chunk]
            for ref, future in futures:
                try:
                    result.analyses.append(future.result())
                except Exception as e:
                    logger.warning("Failed to analyse %s: %s", ref, e)
                    result.failures.append(BatchFailure(ref=ref, error=str(e)))
        if on_progress:
            on_progress(min(start + batch_size, total), total)

    logger.debug("Analysed %d changes, %d failed", len(result.analyses), len(result.failures))
    return result
