"""Tests for batch statistics, sorting and review-presence selection."""

from datetime import datetime, timedelta, timezone

import pytest

from prcycle_core.analyzer import analyze_change
from prcycle_core.models import ChangeEvents, ChangeRecord, RawComment, RawCommit, RawUser
from prcycle_core.summary import (
    has_ai_review,
    human_review_count,
    percentile,
    select_by_review,
    sort_analyses,
    summarize,
)

T0 = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
ALICE = RawUser(id=1, handle="alice")
BOB = RawUser(id=2, handle="bob")
RABBIT = RawUser(id=3, handle="coderabbitai[bot]")


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def _analysis(number, merge_after=100, ai=False, human=True):
    """Opened at 0, pushed at 5, AI review at 10, human review at 20, approved 10 minutes before merge."""
    comments = []
    if ai:
        comments.append(RawComment(id=f"{number}-ai", created_at=at(10), author=RABBIT, body="## Summary\nLooks fine"))
    if human:
        comments.append(RawComment(id=f"{number}-h", created_at=at(20), author=BOB, body="why this?"))
    comments.append(RawComment(id=f"{number}-ok", created_at=at(merge_after - 10), author=BOB, approval=True))
    change = ChangeRecord(
        number=number,
        title=f"Change {number}",
        author=ALICE,
        created_at=at(0),
        merged_at=at(merge_after),
        merged_by=BOB,
    )
    commits = [RawCommit(sha=f"{number}" * 40, authored_at=at(5), author_handle="alice")]
    return analyze_change(ChangeEvents(change=change, commits=commits, comments=comments))


def _created_only(number):
    change = ChangeRecord(number=number, title="Stub", author=ALICE, created_at=at(0))
    return analyze_change(ChangeEvents(change=change))


@pytest.fixture
def batch():
    return [
        _analysis(1, ai=True),
        _analysis(2),
        _analysis(3, merge_after=1540),
    ]


def _numbers(analyses):
    return [a.change.number for a in analyses]


class TestPercentile:
    def test_interpolates(self):
        assert percentile([4, 1, 3, 2], 50) == 2.5
        assert percentile([10, 20, 30], 90) == pytest.approx(28.0)

    def test_single_and_empty(self):
        assert percentile([5], 90) == 5.0
        assert percentile([], 50) == 0.0

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            percentile([1], 101)


class TestSummarize:
    def test_phase_statistics(self, batch):
        summary = summarize(batch)

        assert summary.count == 3
        assert summary.with_breakdown == 3
        wait = summary.phases["wait"]
        assert (wait.average_seconds, wait.median_seconds, wait.p90_seconds) == (1000, 1200, 1200)
        assert summary.phases["merge"].median_seconds == 600
        assert summary.phases["dev"].average_seconds == 0

    def test_cycle_time(self, batch):
        summary = summarize(batch)
        assert summary.average_cycle_days == 0.4
        assert summary.median_cycle_days == 0.1
        assert summary.p90_cycle_days == 0.9

    def test_split_by_ai_review(self, batch):
        summary = summarize(batch)
        assert summary.with_ai.count == 1
        assert summary.with_ai.average_wait_seconds == 600
        assert summary.without_ai.count == 2
        assert summary.without_ai.median_wait_seconds == 1200
        assert summary.without_ai.average_cycle_days == 0.6

    def test_changes_without_breakdown_skip_phase_statistics(self, batch):
        summary = summarize(batch + [_created_only(4)])
        assert summary.count == 4
        assert summary.with_breakdown == 3
        assert summary.phases["wait"].average_seconds == 1000

    def test_empty_batch(self):
        summary = summarize([])
        assert summary.count == 0
        assert summary.phases == {}
        assert summary.with_ai.count == 0


class TestSortAnalyses:
    def test_cycle_time_ascending_and_descending(self, batch):
        shuffled = [batch[2], batch[0], batch[1]]
        assert _numbers(sort_analyses(shuffled, "cycle-time")) == [1, 2, 3]
        assert _numbers(sort_analyses(shuffled, "cycle-time", descending=True)) == [3, 1, 2]

    def test_changes_without_breakdown_go_last(self, batch):
        analyses = [_created_only(4)] + batch
        assert _numbers(sort_analyses(analyses, "wait")) == [1, 2, 3, 4]
        assert _numbers(sort_analyses(analyses, "wait", descending=True))[-1] == 4

    def test_unknown_key(self, batch):
        with pytest.raises(ValueError, match="unknown sort key"):
            sort_analyses(batch, "lines")


class TestSelectByReview:
    def test_review_presence(self):
        ai_and_human = _analysis(1, ai=True)
        human = _analysis(2)
        unreviewed = _analysis(3, human=False)

        assert has_ai_review(ai_and_human) and not has_ai_review(human)
        assert human_review_count(unreviewed) == 0

        analyses = [ai_and_human, human, unreviewed]
        assert _numbers(select_by_review(analyses, ai_review_only=True)) == [1]
        assert _numbers(select_by_review(analyses, human_review_only=True)) == [2, 3]
        assert _numbers(select_by_review(analyses, exclude_no_review=True)) == [1, 2]
        assert _numbers(select_by_review(analyses, human_review_only=True, exclude_no_review=True)) == [2]

    def test_ai_and_human_only_are_exclusive(self):
        with pytest.raises(ValueError):
            select_by_review([], ai_review_only=True, human_review_only=True)
