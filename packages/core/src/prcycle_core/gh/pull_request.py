from __future__ import annotations

import logging

from github import Github

from prcycle_core.models import ChangeEvents, ChangeRecord, RawComment, RawCommit, RawPipelineRun, RawUser

logger = logging.getLogger(__name__)

# Deleted GitHub accounts come back as None.
_GHOST = RawUser(id=0, handle="ghost")

_CHECK_CONCLUSION = {
    "success": "success",
    "failure": "failed",
    "timed_out": "failed",
}


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "closed"):
    return repo.get_pulls(state=state, sort="created", direction="desc")


def to_user(user) -> RawUser:
    if user is None:
        return _GHOST
    return RawUser(id=user.id, handle=user.login)


def to_change_record(pr, ready_at=None) -> ChangeRecord:
    return ChangeRecord(
        number=pr.number,
        title=pr.title or "",
        author=to_user(pr.user),
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        merged_by=to_user(pr.merged_by) if pr.merged_at else None,
        url=pr.html_url or "",
        ready_at=ready_at,
    )


def get_ready_at(pr):
    """When a draft was last marked ready for review, or None if it never was."""
    ready_at = None
    for event in pr.get_issue_events():
        if event.event == "ready_for_review":
            ready_at = event.created_at
    return ready_at


def get_commits(pr) -> list[RawCommit]:
    commits = []
    for c in pr.get_commits():
        git_author = c.commit.author
        handle = c.author.login if c.author is not None else (git_author.name if git_author else "")
        commits.append(
            RawCommit(
                sha=c.sha,
                authored_at=git_author.date if git_author else None,
                author_handle=handle or "",
                message=c.commit.message or "",
            )
        )
    return commits


def get_comments(pr) -> list[RawComment]:
    """Issue comments, inline review comments, and submitted reviews in one list.

    Approving reviews become approvals. Other reviews count as comments only
    when they say something or request changes; pending reviews are skipped.
    """
    comments = []
    for c in pr.get_issue_comments():
        comments.append(RawComment(id=c.id, created_at=c.created_at, author=to_user(c.user), body=c.body or ""))
    for c in pr.get_review_comments():
        comments.append(RawComment(id=c.id, created_at=c.created_at, author=to_user(c.user), body=c.body or ""))
    for review in pr.get_reviews():
        if review.submitted_at is None:
            continue
        body = review.body or ""
        if review.state == "APPROVED":
            comments.append(
                RawComment(
                    id=review.id, created_at=review.submitted_at, author=to_user(review.user), body=body, approval=True
                )
            )
        elif review.state == "CHANGES_REQUESTED" or body.strip():
            comments.append(
                RawComment(id=review.id, created_at=review.submitted_at, author=to_user(review.user), body=body)
            )
    return comments


def get_pipeline_runs(repo, pr) -> list[RawPipelineRun]:
    """Check runs on the head commit; only finished runs carry a usable status."""
    runs = []
    for run in repo.get_commit(pr.head.sha).get_check_runs():
        status = _CHECK_CONCLUSION.get(run.conclusion or "", run.status or "")
        runs.append(
            RawPipelineRun(
                id=run.id,
                status=status,
                created_at=run.started_at,
                updated_at=run.completed_at,
                name=run.name or "",
            )
        )
    return runs


def fetch_change_events(repo, pr) -> ChangeEvents:
    """Collect everything the analysis needs for one pull request."""
    logger.debug("Fetching events for #%d", pr.number)
    return ChangeEvents(
        change=to_change_record(pr, ready_at=get_ready_at(pr)),
        commits=get_commits(pr),
        comments=get_comments(pr),
        pipeline_runs=get_pipeline_runs(repo, pr),
    )
