"""Merge a pull request's raw records into one ordered, actor-attributed timeline."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from prcycle_core.classifier import DEFAULT_CLASSIFIER_CONFIG, IS_AUTOMATED, SAMPLE_SIZE, ClassifierConfig, classify
from prcycle_core.errors import InvalidInstantError
from prcycle_core.models import (
    Actor,
    ChangeRecord,
    EventKind,
    RawComment,
    RawCommit,
    RawPipelineRun,
    RawUser,
    Role,
    TimelineEvent,
)
from prcycle_core.utils.durations import CLOCK_SKEW_TOLERANCE_SECONDS, interval, parse_instant

logger = logging.getLogger(__name__)

_MAX_DETAIL_LENGTH = 100

# Same-instant events are ordered by where they came from.
_SOURCE_PRIORITY = {
    "creation": 0,
    "ready": 1,
    "commit": 2,
    "comment": 3,
    "pipeline": 4,
    "merge": 5,
}

# Comment event kind by the commenter's role.
_COMMENT_KIND: dict[Role, EventKind] = {
    Role.AUTHOR: EventKind.AUTHOR_RESPONSE,
    Role.HUMAN_REVIEWER: EventKind.HUMAN_REVIEW_STARTED,
    Role.AI_REVIEWER: EventKind.AI_REVIEW_STARTED,
    Role.SYSTEM: EventKind.CI_RESPONSE,
}

_PIPELINE_KIND = {
    "success": EventKind.PIPELINE_SUCCESS,
    "failed": EventKind.PIPELINE_FAILED,
    "failure": EventKind.PIPELINE_FAILED,
}

# Automated build/deploy notifications, whoever posts them.
_CI_COMMENT_PATTERNS = [
    re.compile(p, re.IGNORECASE | re.MULTILINE)
    for p in (
        r"\*\*Jenkins says:\*\*",
        r"\bCI (started|passed|failed)\b",
        r"Build number \d+",
        r"\[Build\s+#\d+\]",
        r"Pipeline\s+#\d+",
        r"pipeline\s+(passed|failed|succeeded|running)",
        r"Coverage:\s+\d+",
        r"successfully deployed",
        r"\bCI/CD\b",
        r"^Pipeline for \w+",
    )
]

_SYSTEM_ACTOR = Actor(id=0, handle="ci", name="CI", role=Role.SYSTEM, is_automated=True)


def is_ci_comment(body: str) -> bool:
    return any(p.search(body) for p in _CI_COMMENT_PATTERNS)


@dataclass
class _CommentStats:
    bodies: list[str] = field(default_factory=list)
    first_at: datetime | None = None

    @property
    def average_length(self) -> float:
        return sum(len(b) for b in self.bodies) / len(self.bodies) if self.bodies else 0.0


class _ActorRegistry:
    """Creates one Actor per participant, classifying each exactly once.

    Comment statistics must be complete before the first lookup: the content
    and length layers judge a participant by all of their comments.
    """

    def __init__(self, change: ChangeRecord, created_at: datetime, config: ClassifierConfig):
        self._author = change.author
        self._created_at = created_at
        self._config = config
        self._stats: dict[str, _CommentStats] = {}
        self._actors: dict[str, Actor] = {}

    def record_comment(self, handle: str, body: str, at: datetime) -> None:
        stats = self._stats.setdefault(handle, _CommentStats())
        stats.bodies.append(body)
        if stats.first_at is None or at < stats.first_at:
            stats.first_at = at

    def is_author(self, user: RawUser) -> bool:
        if user.id and self._author.id and user.id == self._author.id:
            return True
        return user.handle.lower() == self._author.handle.lower()

    def actor_for(self, user: RawUser, contributor: bool = False) -> Actor:
        """Return the Actor for ``user``.

        ``contributor`` marks a lookup from a commit. Someone who pushed to
        the branch but never commented shares the author's role unless they
        are a CI account.
        """
        if user.handle in self._actors:
            return self._actors[user.handle]

        stats = self._stats.get(user.handle)
        detected = classify(
            user.handle,
            self._config,
            sample_comments=stats.bodies[:SAMPLE_SIZE] if stats else None,
            average_comment_length=stats.average_length if stats else None,
            comment_at=stats.first_at if stats else None,
            change_created_at=self._created_at,
        )
        if self.is_author(user):
            role = Role.AUTHOR
        elif contributor and stats is None and detected is not Role.SYSTEM:
            role = Role.AUTHOR
        else:
            role = detected

        actor = Actor(
            id=user.id,
            handle=user.handle,
            name=user.name or user.handle,
            role=role,
            is_automated=IS_AUTOMATED[detected],
        )
        self._actors[user.handle] = actor
        return actor


def build_timeline(
    change: ChangeRecord,
    commits: list[RawCommit],
    comments: list[RawComment],
    pipeline_runs: list[RawPipelineRun],
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
    tolerance: float = CLOCK_SKEW_TOLERANCE_SECONDS,
) -> list[TimelineEvent]:
    """Return every event of ``change`` in ascending order with intervals filled in.

    Raises InvalidInstantError if the change has no creation instant or any
    record carries an unparsable one.
    """
    if change.created_at is None:
        raise InvalidInstantError("created_at", None)
    created_at = _whole_seconds(parse_instant(change.created_at, "created_at"))
    merged_at = _whole_seconds(parse_instant(change.merged_at, "merged_at")) if change.merged_at else None
    ready_at = _whole_seconds(parse_instant(change.ready_at, "ready_at")) if change.ready_at else None

    registry = _ActorRegistry(change, created_at, config)

    parsed_comments = []
    for comment in comments:
        at = _whole_seconds(parse_instant(comment.created_at, f"comment {comment.id}"))
        parsed_comments.append((at, comment))
        if not comment.system and not comment.approval:
            registry.record_comment(comment.author.handle, comment.body or "", at)

    # (instant, source priority, input order, event)
    staged: list[tuple[datetime, int, int, TimelineEvent]] = []

    def stage(source: str, at: datetime, actor: Actor, kind: EventKind, detail: str = "") -> None:
        event = TimelineEvent(sequence=0, instant=at, actor=actor, kind=kind, detail=detail[:_MAX_DETAIL_LENGTH])
        staged.append((at, _SOURCE_PRIORITY[source], len(staged), event))

    stage("creation", created_at, registry.actor_for(change.author), EventKind.CREATED, change.title)
    if ready_at is not None:
        stage("ready", ready_at, registry.actor_for(change.author), EventKind.MARKED_READY)

    for commit in commits:
        at = _whole_seconds(parse_instant(commit.authored_at, f"commit {commit.sha[:7]}"))
        user = _commit_user(commit, change.author)
        kind = EventKind.CODE_COMMITTED if (created_at - at).total_seconds() > tolerance else EventKind.CODE_UPDATED
        stage("commit", at, registry.actor_for(user, contributor=True), kind, commit.message.split("\n", 1)[0])

    for at, comment in sorted(parsed_comments, key=lambda pair: pair[0]):
        if comment.approval:
            stage("comment", at, registry.actor_for(comment.author), EventKind.APPROVED, comment.body or "")
            continue
        if comment.system:
            continue
        actor = registry.actor_for(comment.author)
        body = comment.body or ""
        kind = EventKind.CI_RESPONSE if is_ci_comment(body) else _COMMENT_KIND[actor.role]
        stage("comment", at, actor, kind, body)

    for run in pipeline_runs:
        kind = _PIPELINE_KIND.get((run.status or "").lower())
        if kind is None:
            continue
        at = _whole_seconds(parse_instant(run.updated_at or run.created_at, f"pipeline {run.id}"))
        stage("pipeline", at, _SYSTEM_ACTOR, kind, run.name or f"Pipeline #{run.id}")

    if merged_at is not None:
        stage("merge", merged_at, registry.actor_for(change.merged_by or change.author), EventKind.MERGED)

    staged.sort(key=lambda item: item[:3])
    events = _deduplicate([item[3] for item in staged])

    for index, event in enumerate(events, 1):
        event.sequence = index
    for current, following in zip(events, events[1:]):
        current.interval_to_next = interval(current.instant, following.instant, tolerance)
    if events:
        events[-1].interval_to_next = None

    return events


def collect_actors(events: list[TimelineEvent]) -> dict[str, Actor]:
    """Map each participant's handle to their Actor, in order of first appearance."""
    actors: dict[str, Actor] = {}
    for event in events:
        actors.setdefault(event.actor.handle, event.actor)
    return actors


def _whole_seconds(instant: datetime) -> datetime:
    return instant.replace(microsecond=0)


def _commit_user(commit: RawCommit, author: RawUser) -> RawUser:
    if commit.author_handle and commit.author_handle.lower() == author.handle.lower():
        return author
    return RawUser(id=-1, handle=commit.author_handle or "unknown", name=commit.author_handle or "Unknown")


def _deduplicate(events: list[TimelineEvent]) -> list[TimelineEvent]:
    """Drop events sharing instant, kind and actor; the host API sometimes repeats them."""
    seen: set[tuple] = set()
    result = []
    for event in events:
        key = (event.instant, event.kind, event.actor.id, event.actor.handle)
        if key in seen:
            logger.debug("Dropping duplicate %s event at %s", event.kind.value, event.instant)
            continue
        seen.add(key)
        result.append(event)
    return result
