"""Data models for pull request lifecycle analysis.

Two groups live here:

- Raw records (``RawUser``, ``ChangeRecord``, ``RawCommit``, ``RawComment``,
  ``RawPipelineRun``, ``ChangeEvents``) are what a raw-event source hands to
  the core. They carry unparsed instants (ISO strings or datetimes) so the
  core owns validation.
- Analysis records (``Actor``, ``TimelineEvent``, ``Phase``) are what the
  core produces. They are decoupled from PyGithub so the core can be fed
  from fixtures, other hosts, or tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union

Instant = Union[str, datetime, None]


class Role(str, Enum):
    AUTHOR = "Author"
    HUMAN_REVIEWER = "Human Reviewer"
    AI_REVIEWER = "AI Reviewer"
    SYSTEM = "System/CI"


class EventKind(str, Enum):
    CODE_COMMITTED = "Code Committed"  # commit authored before the PR was opened
    CREATED = "Created"
    MARKED_READY = "Marked Ready"
    CODE_UPDATED = "Code Updated"
    AI_REVIEW_STARTED = "AI Review Started"
    HUMAN_REVIEW_STARTED = "Human Review Started"
    AUTHOR_RESPONSE = "Author Response"
    CI_RESPONSE = "CI Response"
    APPROVED = "Approved"
    PIPELINE_SUCCESS = "Pipeline Success"
    PIPELINE_FAILED = "Pipeline Failed"
    MERGED = "Merged"


class KeyState(str, Enum):
    CREATED = "Created"
    FIRST_COMMIT = "First Commit"
    FIRST_AI_REVIEW = "First Automated Review"
    FIRST_HUMAN_REVIEW = "First Human Review"
    APPROVED = "Approved"
    MERGED = "Merged"


# to_label of the open-ended final phase of an unmerged change.
NOW_LABEL = "Now"


# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------


@dataclass
class RawUser:
    id: int | str
    handle: str
    name: str = ""


@dataclass
class ChangeRecord:
    """The pull request itself: who opened it, when, and whether it merged.

    ``ready_at`` is set only for pull requests opened as drafts.
    """

    number: int
    title: str
    author: RawUser
    created_at: Instant
    merged_at: Instant = None
    merged_by: RawUser | None = None
    url: str = ""
    ready_at: Instant = None  # last time a draft was marked ready for review


@dataclass
class RawCommit:
    sha: str
    authored_at: Instant
    author_handle: str
    message: str = ""


@dataclass
class RawComment:
    """A comment, review body, or approval left on the pull request.

    ``approval`` marks an approving review. ``system`` marks host-generated
    notes, which are ignored unless they are approvals.
    """

    id: int | str
    created_at: Instant
    author: RawUser
    body: str = ""
    system: bool = False
    approval: bool = False


@dataclass
class RawPipelineRun:
    id: int | str
    status: str  # "success" | "failed" | anything else (ignored)
    created_at: Instant
    updated_at: Instant = None
    name: str = ""


@dataclass
class ChangeEvents:
    """Everything the core needs to analyse one pull request."""

    change: ChangeRecord
    commits: list[RawCommit] = field(default_factory=list)
    comments: list[RawComment] = field(default_factory=list)
    pipeline_runs: list[RawPipelineRun] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Analysis records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Actor:
    id: int | str
    handle: str
    name: str
    role: Role
    is_automated: bool


@dataclass
class TimelineEvent:
    sequence: int
    instant: datetime
    actor: Actor
    kind: EventKind
    interval_to_next: int | None = None
    detail: str = ""


@dataclass
class Phase:
    from_label: str
    to_label: str
    duration_seconds: int
    percentage: float
    started_at: datetime
    ended_at: datetime
