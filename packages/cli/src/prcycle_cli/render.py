"""Rich tables and JSON-ready dicts for analysis results."""

from __future__ import annotations

from dataclasses import asdict

from rich.markup import escape
from rich.table import Table

from prcycle_core.analyzer import ChangeAnalysis
from prcycle_core.models import Role
from prcycle_core.phases import CANONICAL_PHASES, PhaseBreakdown
from prcycle_core.summary import BatchSummary, GroupStats
from prcycle_core.utils.durations import format_duration, format_instant

_ROLE_STYLE = {
    Role.AUTHOR: "cyan",
    Role.HUMAN_REVIEWER: "green",
    Role.AI_REVIEWER: "magenta",
    Role.SYSTEM: "dim",
}


def _styled_role(role: Role) -> str:
    style = _ROLE_STYLE[role]
    return f"[{style}]{role.value}[/{style}]"


def timeline_table(analysis: ChangeAnalysis) -> Table:
    change = analysis.change
    title = f"Timeline — #{change.number} {escape(change.title)}"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Time", width=19)
    table.add_column("Actor")
    table.add_column("Role")
    table.add_column("Event")
    table.add_column("Next in", justify="right")
    table.add_column("Detail", max_width=50)

    for event in analysis.events:
        table.add_row(
            str(event.sequence),
            format_instant(event.instant),
            escape(event.actor.handle),
            _styled_role(event.actor.role),
            event.kind.value,
            format_duration(event.interval_to_next) if event.interval_to_next is not None else "",
            escape(event.detail),
        )
    return table


def actors_table(analysis: ChangeAnalysis) -> Table:
    table = Table(title="Participants", show_header=True, header_style="bold cyan")
    table.add_column("Handle", style="bold")
    table.add_column("Role")
    table.add_column("Automated", justify="center")

    for actor in analysis.actors.values():
        table.add_row(escape(actor.handle), _styled_role(actor.role), "yes" if actor.is_automated else "")
    return table


def phases_table(analysis: ChangeAnalysis) -> Table:
    table = Table(title="Phases", show_header=True, header_style="bold cyan")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Duration", justify="right")
    table.add_column("Share", justify="right")

    for phase in analysis.phases:
        table.add_row(
            phase.from_label,
            phase.to_label,
            format_duration(phase.duration_seconds),
            f"{phase.percentage:.1f}%",
        )
    return table


def breakdown_table(
    analyses: list[ChangeAnalysis],
    matched_phases: dict[int | str, list[str]] | None = None,
    title: str = "Phase breakdown",
) -> Table:
    """One row per change; cells of phases matched by a filter are highlighted."""
    matched_phases = matched_phases or {}
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Status", width=8)
    table.add_column("Lead time", justify="right")
    for phase in CANONICAL_PHASES:
        table.add_column(phase.capitalize(), justify="right")

    for analysis in analyses:
        breakdown = analysis.breakdown
        matched = matched_phases.get(breakdown.change_id, [])
        cells = []
        for phase in CANONICAL_PHASES:
            if not breakdown.available:
                cells.append("[dim]n/a[/dim]")
                continue
            share = breakdown.share(phase)
            cell = f"{format_duration(share.duration_seconds)} ({share.percentage:.1f}%)"
            cells.append(f"[bold yellow]{cell}[/bold yellow]" if phase in matched else cell)
        table.add_row(
            f"#{analysis.change.number}",
            escape(analysis.change.title[:40]),
            "merged" if analysis.merged else "open",
            format_duration(analysis.lifecycle_seconds),
            *cells,
        )
    return table



def summary_table(summary: BatchSummary) -> Table:
    """Per-phase average, median and p90 across the batch."""
    title = f"Summary of {summary.with_breakdown} pull request(s) with a breakdown"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Phase", style="bold")
    table.add_column("Average", justify="right")
    table.add_column("Median", justify="right")
    table.add_column("P90", justify="right")
    table.add_column("Avg share", justify="right")
    for phase in CANONICAL_PHASES:
        stats = summary.phases.get(phase)
        if stats is None:
            continue
        table.add_row(
            phase.capitalize(),
            format_duration(stats.average_seconds),
            format_duration(stats.median_seconds),
            format_duration(stats.p90_seconds),
            f"{stats.average_percentage:.1f}%",
        )
    return table


def review_split_table(summary: BatchSummary) -> Table:
    table = Table(title="With and without automated review", show_header=True, header_style="bold cyan")
    table.add_column("Group", style="bold")
    table.add_column("PRs", justify="right")
    table.add_column("Avg cycle (days)", justify="right")
    table.add_column("Median cycle (days)", justify="right")
    table.add_column("Median wait", justify="right")

    def row(label: str, group: GroupStats) -> None:
        table.add_row(
            label,
            str(group.count),
            f"{group.average_cycle_days:.1f}",
            f"{group.median_cycle_days:.1f}",
            format_duration(group.median_wait_seconds),
        )

    row("AI reviewed", summary.with_ai)
    row("Not AI reviewed", summary.without_ai)
    return table


def summary_to_dict(summary: BatchSummary) -> dict:
    return asdict(summary)

def breakdown_to_dict(breakdown: PhaseBreakdown) -> dict | None:
    if not breakdown.available:
        return None
    return {
        phase: {
            "duration_seconds": breakdown.share(phase).duration_seconds,
            "percentage": breakdown.share(phase).percentage,
        }
        for phase in CANONICAL_PHASES
    }


def analysis_to_dict(analysis: ChangeAnalysis) -> dict:
    change = analysis.change
    return {
        "number": change.number,
        "title": change.title,
        "url": change.url,
        "author": change.author.handle,
        "merged": analysis.merged,
        "lifecycle_seconds": analysis.lifecycle_seconds,
        "actors": [
            {
                "id": a.id,
                "handle": a.handle,
                "name": a.name,
                "role": a.role.value,
                "is_automated": a.is_automated,
            }
            for a in analysis.actors.values()
        ],
        "events": [
            {
                "sequence": e.sequence,
                "instant": e.instant.isoformat(),
                "actor": e.actor.handle,
                "kind": e.kind.value,
                "interval_to_next": e.interval_to_next,
                "detail": e.detail,
            }
            for e in analysis.events
        ],
        "key_states": {state.value: event.sequence for state, event in analysis.key_states.items()},
        "phases": [
            {
                "from": p.from_label,
                "to": p.to_label,
                "duration_seconds": p.duration_seconds,
                "percentage": p.percentage,
            }
            for p in analysis.phases
        ],
        "breakdown": breakdown_to_dict(analysis.breakdown),
    }
