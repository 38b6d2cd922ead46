"""compare: phase breakdowns across many pull requests, with phase filters."""

from __future__ import annotations

import itertools
import json

import click
from github import GithubException
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from prcycle_cli.auth import require_token
from prcycle_cli.render import analysis_to_dict, breakdown_table, review_split_table, summary_table, summary_to_dict
from prcycle_core.analyzer import analyze_batch
from prcycle_core.config import build_classifier_config, phase_filter_from_config
from prcycle_core.errors import PhaseFilterError
from prcycle_core.gh.pull_request import fetch_change_events, get_pull, get_pull_requests, get_repo
from prcycle_core.phase_filter import apply_phase_filter, validate_phase_filter
from prcycle_core.phases import CANONICAL_PHASES
from prcycle_core.summary import SORT_KEYS, select_by_review, sort_analyses, summarize

console = Console()

_FILTER_PARAMS = [
    f"{phase}_{measure}_{limit}"
    for phase in CANONICAL_PHASES
    for measure in ("percent", "days")
    for limit in ("min", "max")
]


def phase_filter_options(func):
    """Attach the sixteen --{phase}-{percent|days}-{min|max} options."""
    for name in reversed(_FILTER_PARAMS):
        phase, measure, limit = name.split("_")
        unit = "share of lead time (0-100)" if measure == "percent" else "duration in days"
        func = click.option(
            f"--{name.replace('_', '-')}",
            name,
            type=float,
            default=None,
            help=f"{limit.capitalize()} {phase} phase {unit}.",
        )(func)
    return func


@click.command("compare")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_numbers", type=int, multiple=True, help="Pull request number (repeatable).")
@click.option(
    "--state",
    type=click.Choice(["closed", "open", "all"]),
    default="closed",
    show_default=True,
    help="Which pull requests to list when --pr is not given.",
)
@click.option("--limit", default=20, show_default=True, help="Maximum number of pull requests to list.")
@click.option("--batch-size", type=int, default=None, help="Pull requests fetched concurrently. Overrides config file.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--sort",
    "sort_key",
    type=click.Choice(list(SORT_KEYS)),
    default=None,
    help="Order pull requests by this field (phase keys sort by duration).",
)
@click.option("--order", type=click.Choice(["asc", "desc"]), default="asc", show_default=True, help="Sort direction.")
@click.option("--ai-review-only", is_flag=True, help="Only pull requests an automated reviewer reviewed.")
@click.option("--human-review-only", is_flag=True, help="Only pull requests no automated reviewer reviewed.")
@click.option("--exclude-no-review", is_flag=True, help="Skip pull requests without a human review comment.")
@phase_filter_options
@click.pass_context
def compare_cmd(
    ctx,
    repo: str,
    pr_numbers: tuple[int, ...],
    state: str,
    limit: int,
    batch_size: int | None,
    output_format: str,
    sort_key: str | None,
    order: str,
    ai_review_only: bool,
    human_review_only: bool,
    exclude_no_review: bool,
    **bounds,
):
    """Compare dev / wait / review / merge phases across pull requests.

    Phase filter flags keep only pull requests whose phases fall inside the
    given bounds. Filters combine with AND; the matched phases are
    highlighted in the table.

    The review-presence flags narrow the batch further, and a summary of
    the remaining pull requests is printed below the table.
    """
    config = ctx.obj["config"]

    if ai_review_only and human_review_only:
        raise click.UsageError("--ai-review-only and --human-review-only cannot be combined.")

    try:
        phase_filter = phase_filter_from_config(config, bounds)
    except PhaseFilterError as e:
        raise click.UsageError("\n".join(e.errors))
    if not phase_filter.is_empty():
        errors = validate_phase_filter(phase_filter)
        if errors:
            raise click.UsageError("Invalid phase filter:\n  " + "\n  ".join(errors))

    token = require_token(config)

    try:
        this_repo = get_repo(repo, token=token)
        if pr_numbers:
            refs = list(pr_numbers)
        else:
            refs = [pr.number for pr in itertools.islice(get_pull_requests(this_repo, state=state), limit)]
    except GithubException as e:
        raise click.ClickException(f"Could not list pull requests for {repo}: {e}")

    if not refs:
        console.print(f"[yellow]No {state} pull requests found.[/yellow]")
        return

    def fetch(number):
        return fetch_change_events(this_repo, get_pull(this_repo, number))

    with console.status(f"Analysing {len(refs)} pull request(s)...") as status:

        def on_progress(done: int, total: int) -> None:
            status.update(f"Analysing pull requests... {done}/{total}")

        result = analyze_batch(
            refs,
            fetch,
            config=build_classifier_config(config),
            batch_size=batch_size or config.get("batch_size", 10),
            tolerance=config.get("clock_skew_tolerance", 5),
            on_progress=on_progress,
        )

    analyses = result.analyses
    filter_result = None
    if not phase_filter.is_empty():
        filter_result = apply_phase_filter([a.breakdown for a in analyses], phase_filter)
        kept = {b.change_id for b in filter_result.passed}
        analyses = [a for a in analyses if a.breakdown.change_id in kept]

    analyses = select_by_review(
        analyses,
        ai_review_only=ai_review_only,
        human_review_only=human_review_only,
        exclude_no_review=exclude_no_review,
    )
    if sort_key:
        analyses = sort_analyses(analyses, sort_key, descending=order == "desc")
    summary = summarize(analyses)

    if output_format == "json":
        payload = {
            "repo": repo,
            "changes": [analysis_to_dict(a) for a in analyses],
            "summary": summary_to_dict(summary),
            "failures": [{"pr": f.ref, "error": f.error} for f in result.failures],
        }
        if filter_result is not None:
            payload["filter"] = {
                "bounds": phase_filter.present(),
                "total": filter_result.stats.total,
                "passed": filter_result.stats.passed,
                "excluded_by_bound": filter_result.stats.excluded_by_bound,
                "matched_phases": {str(k): v for k, v in filter_result.matched_phases.items()},
            }
        click.echo(json.dumps(payload, indent=2))
        return

    matched = filter_result.matched_phases if filter_result is not None else {}
    if analyses:
        console.print(breakdown_table(analyses, matched, title=f"Phase breakdown — {repo}"))
        console.print(summary_table(summary))
        console.print(review_split_table(summary))
    else:
        console.print("[yellow]No pull requests matched.[/yellow]")

    if filter_result is not None:
        _print_filter_stats(filter_result.stats)

    if result.failures:
        console.print(f"\n[red]{len(result.failures)} pull request(s) could not be analysed:[/red]")
        for failure in result.failures:
            console.print(f"  [bold]#{failure.ref}[/bold]  {escape(failure.error)}")


def _print_filter_stats(stats) -> None:
    console.print(f"\nPhase filter kept [bold]{stats.passed}[/bold] of {stats.total} pull request(s).")
    if not stats.excluded_by_bound:
        return
    table = Table(title="Excluded by bound", show_header=True)
    table.add_column("Bound", style="bold")
    table.add_column("Excluded", justify="right")
    for name, count in sorted(stats.excluded_by_bound.items(), key=lambda item: -item[1]):
        table.add_row(name, str(count))
    console.print(table)
