"""
Shared test fixtures: an in-memory platform client and handler factories.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from typing import Dict, List, Optional

import pytest

from prbot.config import Settings
from prbot.handlers.pr_handler import PRHandler
from prbot.integrations.base import NotFoundError, PlatformClient, PlatformError
from prbot.models.platform import (
    CheckRun,
    Comment,
    Commit,
    FindIssueOptions,
    Issue,
    PullRequest,
    Review,
)


class FakePlatformClient(PlatformClient):
    """
    PlatformClient backed by plain attributes. Every call is appended to
    `calls` as (method, args...) so tests can assert on call order.
    """

    supports_workflow_reruns = True

    def __init__(self, settings: Settings, pr: Optional[PullRequest] = None):
        super().__init__(settings)
        self.pr = pr or PullRequest(number=settings.pr_num or 1, author="author", state="open")
        self.comments: List[Comment] = []
        self.reviews: List[Review] = []
        self.permissions: Dict[str, str] = {}
        self.check_runs: List[CheckRun] = []
        self.all_checks_passed = True
        self.commits: List[Commit] = [Commit(sha="aaaa1111111", message="only commit")]
        self.merge_methods: List[str] = ["merge", "squash", "rebase"]
        self.labels: List[str] = []
        self.reviewers: List[str] = []
        self.issues: Dict[int, Issue] = {}
        self.branches = {"main"}
        self.workflow_runs: Dict[int, List[int]] = {}
        self.posted: List[str] = []
        self.calls: List[tuple] = []
        self.merge_error: Optional[Exception] = None
        self.created_prs: List[PullRequest] = []

    def _record(self, *call):
        self.calls.append(call)

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    # Pull request

    def get_pr(self) -> PullRequest:
        self._record("get_pr")
        return self.pr

    def post_comment(self, body: str) -> None:
        self._record("post_comment", body)
        self.posted.append(body)

    def get_comments(self) -> List[Comment]:
        self._record("get_comments")
        return list(self.comments)

    # Reviews

    def get_reviews(self) -> List[Review]:
        self._record("get_reviews")
        return list(self.reviews)

    def approve_pr(self, message: str) -> None:
        self._record("approve_pr", message)

    def dismiss_approve(self, message: str) -> None:
        self._record("dismiss_approve", message)

    def get_requested_reviewers(self) -> List[str]:
        self._record("get_requested_reviewers")
        return list(self.reviewers)

    def assign_reviewers(self, reviewers: List[str]) -> None:
        self._record("assign_reviewers", list(reviewers))
        self.reviewers.extend(reviewers)

    def remove_reviewers(self, reviewers: List[str]) -> None:
        self._record("remove_reviewers", list(reviewers))
        self.reviewers = [r for r in self.reviewers if r not in reviewers]

    # Permissions

    def get_user_permission(self, user: str) -> str:
        return self.permissions.get(user.lower(), "none")

    def check_user_permissions(self, user: str, required: List[str]):
        self._record("check_user_permissions", user, list(required))
        return super().check_user_permissions(user, required)

    # CI

    def check_runs_status(self):
        self._record("check_runs_status")
        return self.all_checks_passed, list(self.check_runs)

    def get_workflow_run_ids_from_check_suite(self, check_suite_id: int) -> List[int]:
        self._record("get_workflow_run_ids_from_check_suite", check_suite_id)
        return self.workflow_runs.get(check_suite_id, [])

    def rerun_workflow_run_failed_jobs(self, run_id: int) -> None:
        self._record("rerun_workflow_run_failed_jobs", run_id)

    # Merge

    def merge_pr(self, method: str) -> None:
        self._record("merge_pr", method)
        if self.merge_error:
            raise self.merge_error
        self.pr = self.pr.model_copy(update={"state": "closed", "merged": True})

    def rebase_pr(self) -> None:
        self._record("rebase_pr")

    def close_pr(self) -> None:
        self._record("close_pr")
        self.pr = self.pr.model_copy(update={"state": "closed"})

    def get_available_merge_methods(self) -> List[str]:
        self._record("get_available_merge_methods")
        return list(self.merge_methods)

    def get_commits(self) -> List[Commit]:
        self._record("get_commits")
        return list(self.commits)

    # Labels

    def get_labels(self) -> List[str]:
        return list(self.labels)

    def add_labels(self, labels: List[str]) -> None:
        self._record("add_labels", list(labels))
        self.labels.extend(l for l in labels if l not in self.labels)

    def remove_labels(self, labels: List[str]) -> None:
        self._record("remove_labels", list(labels))
        self.labels = [l for l in self.labels if l not in labels]

    # Issues

    def get_issue(self, number: int) -> Issue:
        self._record("get_issue", number)
        if number not in self.issues:
            raise NotFoundError(f"issue #{number} not found")
        return self.issues[number]

    def update_issue_body(self, number: int, body: str) -> None:
        self._record("update_issue_body", number, body)
        self.issues[number] = self.issues[number].model_copy(update={"body": body})

    def find_issue(self, options: FindIssueOptions) -> Issue:
        self._record("find_issue", options)
        for issue in self.issues.values():
            if options.title.lower() in issue.title.lower():
                return issue
        raise NotFoundError("no matching issue found")

    def update_pr_body(self, body: str) -> None:
        self._record("update_pr_body", body)
        self.pr = self.pr.model_copy(update={"body": body})

    # Cherry-pick

    def create_branch(self, name: str, base: str) -> None:
        self._record("create_branch", name, base)
        if base not in self.branches:
            raise PlatformError(f"base branch {base} not found")
        self.branches.add(name)

    def branch_exists(self, name: str) -> bool:
        self._record("branch_exists", name)
        return name in self.branches

    def cherry_pick_commit(self, sha: str, branch: str) -> str:
        self._record("cherry_pick_commit", sha, branch)
        return f"picked{sha}"

    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest:
        self._record("create_pr", title, head, base)
        pr = PullRequest(number=100 + len(self.created_prs), title=title, body=body, head_ref=head, base_ref=base)
        self.created_prs.append(pr)
        return pr


def make_settings(**overrides) -> Settings:
    values = dict(
        platform="github",
        token="test-token",
        owner="test-org",
        repo="test-repo",
        pr_num=1,
        comment_sender="reviewer",
        trigger_comment="/help",
        lgtm_threshold=1,
        lgtm_permissions=["admin", "write"],
        merge_method="squash",
        self_check_name="pr-cli",
        use_git_cli_for_cherrypick=False,
        results_dir="",
        debug=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def make_client():
    def _make(settings: Optional[Settings] = None, **pr_fields) -> FakePlatformClient:
        settings = settings or make_settings()
        pr = PullRequest(**{"number": settings.pr_num, "author": "author", "state": "open", **pr_fields})
        return FakePlatformClient(settings, pr=pr)

    return _make


@pytest.fixture
def make_handler(make_client):
    """Build (handler, client) for the given settings overrides."""

    def _make(client: Optional[FakePlatformClient] = None, **overrides):
        settings = make_settings(**overrides)
        client = client or make_client(settings)
        client.settings = settings
        handler = PRHandler(client, settings)
        client.calls.clear()
        return handler, client

    return _make


class RecordingClientFactory:
    """Client factory for webhook tests; every created client is kept in `created`."""

    def __init__(self):
        self.created: List[FakePlatformClient] = []
        self.comments: List[Comment] = []

    def __call__(self, settings: Settings) -> FakePlatformClient:
        client = FakePlatformClient(settings)
        client.comments = list(self.comments)
        self.created.append(client)
        return client


@pytest.fixture
def client_factory():
    return RecordingClientFactory()
