"""CLI entry point for prcycle.

Commands:
  timeline  actor-attributed timeline and phase breakdown of one pull request
  compare   phase breakdowns across many pull requests, with phase filters
  init      interactive setup wizard writing .prcycle.yml
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prcycle_cli.commands.compare import compare_cmd
from prcycle_cli.commands.init import init_cmd
from prcycle_cli.commands.timeline import timeline_cmd


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # PyGithub's request logging drowns out ours at debug level.
    logging.getLogger("github").setLevel(logging.INFO if verbose else logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prcycle"),
    prog_name="prcycle",
)
@click.option(
    "--config",
    "config_path",
    default=".prcycle.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRCYCLE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Pull request lifecycle analysis: who did what, and where the time went."""
    from prcycle_core.config import load_config
    from prcycle_cli.auth import resolve_github_token

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path


main.add_command(timeline_cmd)
main.add_command(compare_cmd)
main.add_command(init_cmd)
