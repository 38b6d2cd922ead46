"""Tests for turning GitHub pull requests into raw events."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from prcycle_core.gh.pull_request import (
    fetch_change_events,
    get_comments,
    get_commits,
    get_pipeline_runs,
    get_pull_requests,
    get_ready_at,
    to_change_record,
    to_user,
)

T = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
SHA = "a" * 40


def _user(login, uid=1):
    u = MagicMock()
    u.login = login
    u.id = uid
    return u


def _pr(merged_at=None, merged_by=None):
    pr = MagicMock()
    pr.number = 12
    pr.title = "Speed up search"
    pr.user = _user("alice")
    pr.created_at = T
    pr.merged_at = merged_at
    pr.merged_by = merged_by
    pr.html_url = "https://github.com/o/r/pull/12"
    pr.get_issue_events.return_value = []
    pr.head.sha = SHA
    pr.get_commits.return_value = []
    pr.get_issue_comments.return_value = []
    pr.get_review_comments.return_value = []
    pr.get_reviews.return_value = []
    return pr


def _review(state, body="", submitted_at=T, rid=1, login="bob"):
    r = MagicMock()
    r.id = rid
    r.state = state
    r.body = body
    r.submitted_at = submitted_at
    r.user = _user(login, 2)
    return r


class TestToChangeRecord:
    def test_open_pull_request(self):
        record = to_change_record(_pr())
        assert record.number == 12
        assert record.author.handle == "alice"
        assert record.merged_at is None
        assert record.merged_by is None
        assert record.ready_at is None

    def test_merged_pull_request(self):
        record = to_change_record(_pr(merged_at=T, merged_by=_user("bob", 2)))
        assert record.merged_by.handle == "bob"

    def test_ready_at_passed_through(self):
        assert to_change_record(_pr(), ready_at=T).ready_at == T

    def test_deleted_user_becomes_ghost(self):
        assert to_user(None).handle == "ghost"


class TestGetCommits:
    def test_linked_and_unlinked_authors(self):
        linked = MagicMock(sha="1" * 40)
        linked.author = _user("alice")
        linked.commit.author.date = T
        linked.commit.message = "Add index"
        unlinked = MagicMock(sha="2" * 40)
        unlinked.author = None
        unlinked.commit.author.name = "Some One"
        unlinked.commit.author.date = T
        unlinked.commit.message = "Fix typo"
        pr = _pr()
        pr.get_commits.return_value = [linked, unlinked]

        commits = get_commits(pr)

        assert [c.author_handle for c in commits] == ["alice", "Some One"]
        assert commits[0].authored_at == T
        assert commits[1].message == "Fix typo"


class TestGetComments:
    def test_issue_and_review_comments(self):
        pr = _pr()
        pr.get_issue_comments.return_value = [MagicMock(id=1, user=_user("bob", 2), body="hi", created_at=T)]
        pr.get_review_comments.return_value = [MagicMock(id=2, user=None, body=None, created_at=T)]
        comments = get_comments(pr)
        assert [(c.id, c.author.handle, c.body) for c in comments] == [(1, "bob", "hi"), (2, "ghost", "")]

    def test_reviews(self):
        pr = _pr()
        pr.get_reviews.return_value = [
            _review("APPROVED", rid=1),
            _review("COMMENTED", body="", rid=2),
            _review("COMMENTED", body="see inline", rid=3),
            _review("CHANGES_REQUESTED", rid=4),
            _review("PENDING", body="draft", submitted_at=None, rid=5),
        ]
        comments = get_comments(pr)
        assert [(c.id, c.approval) for c in comments] == [(1, True), (3, False), (4, False)]


class TestGetPipelineRuns:
    def test_conclusions_mapped(self):
        repo = MagicMock()
        runs = [
            MagicMock(id=1, conclusion="success", status="completed", started_at=T, completed_at=T),
            MagicMock(id=2, conclusion="timed_out", status="completed", started_at=T, completed_at=T),
            MagicMock(id=3, conclusion=None, status="in_progress", started_at=T, completed_at=None),
        ]
        for run in runs:
            run.name = f"build-{run.id}"
        repo.get_commit.return_value.get_check_runs.return_value = runs

        result = get_pipeline_runs(repo, _pr())

        repo.get_commit.assert_called_once_with(SHA)
        assert [r.status for r in result] == ["success", "failed", "in_progress"]
        assert result[0].name == "build-1"


def test_fetch_change_events_collects_everything():
    repo = MagicMock()
    repo.get_commit.return_value.get_check_runs.return_value = []
    pr = _pr()
    pr.get_issue_comments.return_value = [MagicMock(id=1, user=_user("bob", 2), body="hi", created_at=T)]

    events = fetch_change_events(repo, pr)

    assert events.change.number == 12
    assert events.change.ready_at is None
    assert len(events.comments) == 1
    assert events.commits == []
    assert events.pipeline_runs == []


def test_get_pull_requests_newest_first():
    repo = MagicMock()
    get_pull_requests(repo, state="all")
    repo.get_pulls.assert_called_once_with(state="all", sort="created", direction="desc")


def test_get_ready_at_takes_last_ready_for_review():
    later = T.replace(hour=12)
    pr = _pr()
    pr.get_issue_events.return_value = [
        MagicMock(event="ready_for_review", created_at=T),
        MagicMock(event="convert_to_draft", created_at=T.replace(hour=10)),
        MagicMock(event="ready_for_review", created_at=later),
        MagicMock(event="labeled", created_at=later.replace(hour=13)),
    ]
    assert get_ready_at(pr) == later


def test_get_ready_at_none_when_never_a_draft():
    assert get_ready_at(_pr()) is None
