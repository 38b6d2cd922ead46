"""Tests for single and batch analysis."""

from datetime import datetime, timedelta, timezone

import pytest

from prcycle_core.analyzer import analyze_batch, analyze_change
from prcycle_core.errors import InvalidInstantError
from prcycle_core.models import ChangeEvents, ChangeRecord, EventKind, KeyState, RawComment, RawCommit, RawUser, Role

T0 = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
ALICE = RawUser(id=1, handle="alice")
BOB = RawUser(id=2, handle="bob")
RABBIT = RawUser(id=3, handle="coderabbitai[bot]")


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def _change_events(number=1, merged=True):
    change = ChangeRecord(
        number=number,
        title=f"Change {number}",
        author=ALICE,
        created_at=at(0),
        merged_at=at(100) if merged else None,
        merged_by=BOB if merged else None,
    )
    return ChangeEvents(
        change=change,
        commits=[RawCommit(sha="c" * 40, authored_at=at(10), author_handle="alice")],
        comments=[
            RawComment(id=1, created_at=at(20), author=RABBIT, body="## Summary\nok"),
            RawComment(id=2, created_at=at(50), author=BOB, body="why this?"),
            RawComment(id=3, created_at=at(60), author=ALICE, body="because"),
            RawComment(id=4, created_at=at(80), author=BOB, approval=True),
        ],
    )


class TestAnalyzeChange:
    def test_merged_change(self):
        analysis = analyze_change(_change_events())

        assert analysis.merged
        assert analysis.lifecycle_seconds == 6000
        assert list(analysis.key_states) == list(KeyState)
        assert [p.duration_seconds for p in analysis.phases] == [600, 600, 1800, 1800, 1200]
        assert analysis.actors["coderabbitai[bot]"].role is Role.AI_REVIEWER
        assert analysis.actors["bob"].role is Role.HUMAN_REVIEWER

        shares = {k: v.duration_seconds for k, v in analysis.breakdown.shares.items()}
        assert shares == {"dev": 0, "wait": 1200, "review": 3600, "merge": 1200}
        assert analysis.breakdown.change_id == 1

    def test_open_change_measured_to_now(self):
        analysis = analyze_change(_change_events(merged=False), now=at(200))
        assert not analysis.merged
        assert analysis.lifecycle_seconds == 12000
        assert analysis.phases[-1].to_label == "Now"
        assert analysis.breakdown.share("merge").duration_seconds == 7200

    def test_commits_before_opening_count_as_development(self):
        events = _change_events()
        events.commits.insert(0, RawCommit(sha="b" * 40, authored_at=at(-3 * 24 * 60), author_handle="alice"))
        analysis = analyze_change(events)

        assert analysis.breakdown.share("dev").duration_seconds == 3 * 86400
        assert analysis.breakdown.share("wait").duration_seconds == 1200
        assert analysis.lifecycle_seconds == 6000

    def test_draft_marked_ready_ends_development(self):
        events = _change_events()
        events.change.ready_at = at(15)
        analysis = analyze_change(events)

        assert analysis.events[2].kind is EventKind.MARKED_READY
        assert analysis.breakdown.share("dev").duration_seconds == 900
        assert analysis.breakdown.share("wait").duration_seconds == 300

    def test_creation_only_change_has_no_breakdown(self):
        events = ChangeEvents(change=ChangeRecord(number=5, title="Stub", author=ALICE, created_at=at(0)))
        analysis = analyze_change(events)
        assert analysis.phases == []
        assert not analysis.breakdown.available

    def test_invalid_instant_propagates(self):
        events = _change_events()
        events.comments.append(RawComment(id=9, created_at="garbage", author=BOB))
        with pytest.raises(InvalidInstantError):
            analyze_change(events)


class TestAnalyzeBatch:
    def test_results_keep_input_order(self):
        refs = list(range(1, 8))
        result = analyze_batch(refs, lambda n: _change_events(number=n), batch_size=3)
        assert [a.change.number for a in result.analyses] == refs
        assert result.failures == []

    def test_failures_are_isolated(self):
        def fetch(n):
            if n == 2:
                raise RuntimeError("404 Not Found")
            return _change_events(number=n)

        result = analyze_batch([1, 2, 3], fetch)

        assert [a.change.number for a in result.analyses] == [1, 3]
        assert len(result.failures) == 1
        assert result.failures[0].ref == 2
        assert "404" in result.failures[0].error

    def test_analysis_errors_are_recorded_as_failures(self):
        def fetch(n):
            events = _change_events(number=n)
            if n == 1:
                events.change.created_at = None
            return events

        result = analyze_batch([1, 2], fetch)
        assert [f.ref for f in result.failures] == [1]

    def test_progress_reported_per_chunk(self):
        calls = []
        analyze_batch(
            list(range(5)),
            lambda n: _change_events(number=n),
            batch_size=2,
            on_progress=lambda done, total: calls.append((done, total)),
        )
        assert calls == [(2, 5), (4, 5), (5, 5)]

    def test_empty_batch(self):
        result = analyze_batch([], lambda n: _change_events(number=n))
        assert result.analyses == [] and result.failures == []

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            analyze_batch([1], lambda n: _change_events(number=n), batch_size=0)
