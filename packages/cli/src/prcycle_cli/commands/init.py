"""init: interactive setup wizard writing .prcycle.yml.

Declaring the repository's review bots up front makes classification exact:
with an allow-list configured, only listed handles and unambiguous bot
names count as automated reviewers.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

import click
import yaml
from rich.console import Console

from prcycle_core.classifier import BUILTIN_CI_ACCOUNTS

logger = logging.getLogger(__name__)

console = Console()


@click.command("init")
@click.option("--repo", default=None, help="GitHub repository (owner/name). Auto-detected from git remote.")
@click.pass_context
def init_cmd(ctx, repo: str | None):
    """Set up prcycle for your repository.

    Records which accounts are review bots or CI so lifecycle phases are
    attributed correctly, and writes .prcycle.yml.
    """
    console.print("\n[bold cyan]prcycle init[/bold cyan] — repository setup wizard\n")

    if repo is None:
        repo = _detect_repo_from_git()
        if repo:
            console.print(f"[dim]Detected repository: {repo}[/dim]")
        else:
            repo = click.prompt("GitHub repository (owner/name)")

    console.print(
        "\nAutomated reviewers: handles of review bots (e.g. coderabbitai\\[bot]).\n"
        "Leave empty to detect them from naming, comment style and length."
    )
    ai_reviewers = _split(click.prompt("Automated reviewer handles (comma-separated)", default="", show_default=False))

    console.print(f"\nBuilt-in CI accounts: [dim]{', '.join(BUILTIN_CI_ACCOUNTS)}[/dim]")
    ci_accounts = _split(click.prompt("Additional CI account names (comma-separated)", default="", show_default=False))

    window = click.prompt(
        "Treat comments within N minutes of opening as automated (0 = off)",
        type=click.IntRange(min=0),
        default=0,
    )

    config: dict = {
        "ai_reviewers": ai_reviewers,
        "ci_accounts": ci_accounts,
        "ai_time_window_minutes": window,
    }

    config_path = ctx.obj.get("config_path", ".prcycle.yml") if ctx.obj else ".prcycle.yml"
    _write_config(config, Path(config_path))
    console.print(f"[green]Created {config_path}[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print(f"Inspect a pull request with: [bold]prcycle timeline --repo {repo} --pr <number>[/bold]")


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _detect_repo_from_git() -> str | None:
    """Try to detect the GitHub repo slug from the git remote URL."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode != 0:
            return None
        url = result.stdout.strip()
        # Handle both HTTPS and SSH remotes:
        # https://github.com/owner/repo.git  →  owner/repo
        # git@github.com:owner/repo.git      →  owner/repo
        if "github.com" not in url:
            return None
        slug = url.split("github.com")[-1].lstrip("/:").removesuffix(".git")
        return slug if "/" in slug else None
    except (FileNotFoundError, subprocess.TimeoutExpired):
        logger.debug("git unavailable; cannot detect repository.")
        return None


def _write_config(config: dict, path: Path) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))
