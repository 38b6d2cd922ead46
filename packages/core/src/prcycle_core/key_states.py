"""Find the first event that reaches each lifecycle milestone."""

from __future__ import annotations

from typing import Callable

from prcycle_core.models import EventKind, KeyState, Role, TimelineEvent

# Events an automated account can own without having reviewed anything.
_NOT_A_REVIEW = frozenset({EventKind.CREATED, EventKind.MARKED_READY, EventKind.APPROVED, EventKind.MERGED})

_PREDICATES: dict[KeyState, Callable[[TimelineEvent], bool]] = {
    KeyState.CREATED: lambda e: e.kind is EventKind.CREATED,
    KeyState.FIRST_COMMIT: lambda e: e.kind is EventKind.CODE_UPDATED,
    KeyState.FIRST_AI_REVIEW: lambda e: e.actor.role is Role.AI_REVIEWER and e.kind not in _NOT_A_REVIEW,
    KeyState.FIRST_HUMAN_REVIEW: lambda e: e.kind is EventKind.HUMAN_REVIEW_STARTED,
    KeyState.APPROVED: lambda e: e.kind is EventKind.APPROVED,
    KeyState.MERGED: lambda e: e.kind is EventKind.MERGED,
}


def extract_key_states(events: list[TimelineEvent]) -> dict[KeyState, TimelineEvent]:
    """Single forward pass; a state keeps the first event that satisfied it.

    States that never occur are simply absent from the result.
    """
    found: dict[KeyState, TimelineEvent] = {}
    for event in events:
        for state, matches in _PREDICATES.items():
            if state not in found and matches(event):
                found[state] = event
    return found
