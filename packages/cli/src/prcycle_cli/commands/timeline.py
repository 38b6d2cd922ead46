"""timeline: actor-attributed timeline and phase breakdown of one pull request."""

from __future__ import annotations

import json

import click
from github import GithubException
from rich.console import Console

from prcycle_cli.auth import require_token
from prcycle_cli.render import actors_table, analysis_to_dict, breakdown_table, phases_table, timeline_table
from prcycle_core.analyzer import analyze_change
from prcycle_core.config import build_classifier_config
from prcycle_core.gh.pull_request import fetch_change_events, get_pull, get_repo
from prcycle_core.utils.durations import format_duration

console = Console()


@click.command("timeline")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Output format.",
)
@click.pass_context
def timeline_cmd(ctx, repo: str, pr_number: int, output_format: str):
    """Show who did what on a pull request, and how its lifetime splits into phases.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
    """
    config = ctx.obj["config"]
    token = require_token(config)

    try:
        this_repo = get_repo(repo, token=token)
        pr = get_pull(this_repo, pr_number)
        change_events = fetch_change_events(this_repo, pr)
    except GithubException as e:
        raise click.ClickException(f"Could not fetch {repo}#{pr_number}: {e}")

    try:
        analysis = analyze_change(
            change_events,
            config=build_classifier_config(config),
            tolerance=config.get("clock_skew_tolerance", 5),
        )
    except ValueError as e:
        raise click.ClickException(f"Cannot analyse {repo}#{pr_number}: {e}")

    if output_format == "json":
        click.echo(json.dumps(analysis_to_dict(analysis), indent=2))
        return

    console.print(timeline_table(analysis))
    console.print(actors_table(analysis))
    if analysis.phases:
        console.print(phases_table(analysis))
        console.print(breakdown_table([analysis]))
        console.print(f"Lead time: [bold]{format_duration(analysis.lifecycle_seconds)}[/bold]")
    else:
        console.print("[yellow]Not enough milestones for a phase breakdown.[/yellow]")
