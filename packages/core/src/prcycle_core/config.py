import os
from pathlib import Path
from typing import Optional

import yaml

from prcycle_core.classifier import BUILTIN_CI_ACCOUNTS, ClassifierConfig
from prcycle_core.phase_filter import PhaseFilter

DEFAULT_CONFIG: dict = {
    "ai_reviewers": [],  # handles always treated as automated reviewers; disables content heuristics
    "ci_accounts": [],  # extra CI account names, added to the built-in list
    "ai_time_window_minutes": 0,  # 0 = time-window heuristic off
    "batch_size": 10,
    "clock_skew_tolerance": 5,
    "phase_filters": {},  # default bounds for `prcycle compare`, e.g. {"wait-percent-min": 40}
}


def load_config(config_path: str = ".prcycle.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prcycle.yml in the current directory
      3. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "ai_reviewers": list(DEFAULT_CONFIG["ai_reviewers"]),
        "ci_accounts": list(DEFAULT_CONFIG["ci_accounts"]),
        "phase_filters": dict(DEFAULT_CONFIG["phase_filters"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")

    return config


def build_classifier_config(config: dict) -> ClassifierConfig:
    """Turn the loaded settings into the immutable config the classifier takes."""
    extra = [name for name in config.get("ci_accounts") or [] if name not in BUILTIN_CI_ACCOUNTS]
    return ClassifierConfig(
        ai_reviewers=frozenset(config.get("ai_reviewers") or []),
        ci_accounts=BUILTIN_CI_ACCOUNTS + tuple(extra),
        time_window_minutes=float(config.get("ai_time_window_minutes") or 0),
    )


def phase_filter_from_config(config: dict, overrides: Optional[dict] = None) -> PhaseFilter:
    """Configured default bounds, with any non-None ``overrides`` taking precedence."""
    bounds = {str(key).replace("_", "-"): value for key, value in (config.get("phase_filters") or {}).items()}
    for key, value in (overrides or {}).items():
        if value is not None:
            bounds[key.replace("_", "-")] = value
    return PhaseFilter.from_mapping(bounds)
