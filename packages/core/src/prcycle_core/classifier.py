"""Participant classification: System/CI, AI reviewer, or human reviewer.

Classification is an ordered list of independent layer functions. Each layer
looks at the same ``CommentSignals`` and either returns a Role or None; the
first Role returned wins, and a human reviewer is the fallback. Ordering
matters: CI accounts are excluded first because their handles routinely
contain "bot" and would otherwise be caught by the handle-pattern layer.

Authorship is decided by the caller before any layer runs. An author is
always an Author, whatever these heuristics say about the handle.

Layers 4 to 6 are heuristics for repositories that have not declared their
review bots. As soon as an explicit allow-list is configured they are
switched off, so only declared handles and unambiguous naming patterns count.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional

from prcycle_core.models import Role

logger = logging.getLogger(__name__)

# Matched as case-insensitive substrings of the handle.
BUILTIN_CI_ACCOUNTS: tuple[str, ...] = (
    "github-actions",
    "gitlab ci bot",
    "gitlab-bot",
    "jenkins",
    "ci-bot",
    "build bot",
)

_AI_HANDLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(?:^|[-_])bot(?:[-_]|$)",  # bot as its own word; robot and botany do not match
        r"\[bot\]$",  # GitHub App accounts, e.g. coderabbitai[bot]
        r"[-_]ai[-_]",
        r"^ai[-_]",
        r"[-_]ai$",
        r"\bautomated\b",
        r"auto-review",
        r"code-review-bot",
        r"coderabbit",
        r"copilot",
        r"dependabot",
        r"renovate",
    )
]

# Structural signatures of generated review output.
_AI_COMMENT_PATTERNS = [
    re.compile(p, re.MULTILINE)
    for p in (
        r"^📋\s*Code\s+Review\b",  # fixed opening banner
        r"^\s*##\s+",
        r"\|\s*\*\*.*\*\*\s*\|",  # table cell with a bold header
        r"📁|🟡|🟢|💡|⚠️|🐛|🔧|🎨",
        r"\*\*📁\s*File\s+path\s*[:：]\s*\*\*",
        r"\|\s*Must\s+fix\s*\|.*Severity\s*\|",
    )
]

AI_PATTERN_THRESHOLD = 0.5
COMMENT_LENGTH_THRESHOLD = 300
SAMPLE_SIZE = 5


@dataclass(frozen=True)
class ClassifierConfig:
    """Immutable classifier settings.

    Adding or removing an allow-listed reviewer yields a new config, so a
    config can be shared freely between threads analysing different changes.
    """

    ai_reviewers: frozenset[str] = frozenset()
    ci_accounts: tuple[str, ...] = BUILTIN_CI_ACCOUNTS
    time_window_minutes: float = 0

    def with_ai_reviewer(self, handle: str) -> ClassifierConfig:
        return replace(self, ai_reviewers=self.ai_reviewers | {handle})

    def without_ai_reviewer(self, handle: str) -> ClassifierConfig:
        return replace(self, ai_reviewers=self.ai_reviewers - {handle})


DEFAULT_CLASSIFIER_CONFIG = ClassifierConfig()


@dataclass
class CommentSignals:
    """Everything known about one participant at classification time."""

    handle: str
    sample_comments: list[str] = field(default_factory=list)
    average_comment_length: Optional[float] = None
    comment_at: Optional[datetime] = None
    change_created_at: Optional[datetime] = None


Layer = Callable[[CommentSignals, ClassifierConfig], Optional[Role]]


def _ci_account(signals: CommentSignals, config: ClassifierConfig) -> Role | None:
    handle = signals.handle.lower()
    if any(ci.lower() in handle for ci in config.ci_accounts):
        return Role.SYSTEM
    return None


def _allow_list(signals: CommentSignals, config: ClassifierConfig) -> Role | None:
    if signals.handle in config.ai_reviewers:
        return Role.AI_REVIEWER
    return None


def _handle_pattern(signals: CommentSignals, config: ClassifierConfig) -> Role | None:
    if matches_ai_handle(signals.handle):
        return Role.AI_REVIEWER
    return None


def _content_pattern(signals: CommentSignals, config: ClassifierConfig) -> Role | None:
    if config.ai_reviewers or not signals.sample_comments:
        return None
    if ai_comment_ratio(signals.sample_comments) > AI_PATTERN_THRESHOLD:
        return Role.AI_REVIEWER
    return None


def _comment_length(signals: CommentSignals, config: ClassifierConfig) -> Role | None:
    if config.ai_reviewers or signals.average_comment_length is None:
        return None
    if signals.average_comment_length >= COMMENT_LENGTH_THRESHOLD:
        return Role.AI_REVIEWER
    return None


def _time_window(signals: CommentSignals, config: ClassifierConfig) -> Role | None:
    if config.ai_reviewers or config.time_window_minutes <= 0:
        return None
    if signals.comment_at is None or signals.change_created_at is None:
        return None
    elapsed = (signals.comment_at - signals.change_created_at).total_seconds()
    if 0 <= elapsed <= config.time_window_minutes * 60:
        return Role.AI_REVIEWER
    return None


LAYERS: tuple[Layer, ...] = (
    _ci_account,
    _allow_list,
    _handle_pattern,
    _content_pattern,
    _comment_length,
    _time_window,
)


def matches_ai_handle(handle: str) -> bool:
    return any(p.search(handle) for p in _AI_HANDLE_PATTERNS)


def ai_comment_ratio(comments: list[str]) -> float:
    """Fraction of ``comments`` that carry at least one generated-review signature."""
    if not comments:
        return 0.0
    hits = sum(1 for body in comments if any(p.search(body) for p in _AI_COMMENT_PATTERNS))
    return hits / len(comments)


def classify(
    handle: str,
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
    sample_comments: list[str] | None = None,
    average_comment_length: float | None = None,
    comment_at: datetime | None = None,
    change_created_at: datetime | None = None,
) -> Role:
    """Classify a non-author participant. Never fails; defaults to a human reviewer."""
    signals = CommentSignals(
        handle=handle,
        sample_comments=list(sample_comments or []),
        average_comment_length=average_comment_length,
        comment_at=comment_at,
        change_created_at=change_created_at,
    )
    for layer in LAYERS:
        role = layer(signals, config)
        if role is not None:
            logger.debug("Classified %s as %s by %s", handle, role.value, layer.__name__.lstrip("_"))
            return role
    return Role.HUMAN_REVIEWER


# Role -> whether the participant is a machine.
IS_AUTOMATED: dict[Role, bool] = {
    Role.AUTHOR: False,
    Role.HUMAN_REVIEWER: False,
    Role.AI_REVIEWER: True,
    Role.SYSTEM: True,
}
