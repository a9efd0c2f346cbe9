"""
Platform Client Contract

Every hosted Git platform is reached through a PlatformClient bound to a
single pull request (owner, repo, number). Handlers depend only on this
interface; create_client() selects the implementation by platform name.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from prbot.config import ConfigurationError, Settings
from prbot.models.platform import (
    CheckRun,
    Comment,
    Commit,
    FindIssueOptions,
    Issue,
    PullRequest,
    Review,
)
from prbot.utils.helpers import normalize_login

logger = logging.getLogger(__name__)


class PlatformError(Exception):
    """A platform API call failed."""


class NotFoundError(PlatformError):
    """The requested platform object does not exist."""


class PlatformClient(ABC):
    """Operations the command handlers consume from a hosted Git platform."""

    # Whether rerun_workflow_run_failed_jobs() is available
    supports_workflow_reruns: bool = False

    def __init__(self, settings: Settings):
        self.settings = settings
        self.owner = settings.owner
        self.repo_name = settings.repo
        self.pr_number = settings.pr_num

    # Pull request

    @abstractmethod
    def get_pr(self) -> PullRequest: ...

    def check_pr_status(self, expected_state: str = "open") -> None:
        """Raise PlatformError unless the PR is in `expected_state`."""
        pr = self.get_pr()
        if pr.state != expected_state:
            raise PlatformError(
                f"PR #{self.pr_number} is not {expected_state} (current state: {pr.state})"
            )

    # Comments

    @abstractmethod
    def post_comment(self, body: str) -> None: ...

    @abstractmethod
    def get_comments(self) -> List[Comment]: ...

    # Reviews

    @abstractmethod
    def get_reviews(self) -> List[Review]: ...

    @abstractmethod
    def approve_pr(self, message: str) -> None: ...

    @abstractmethod
    def dismiss_approve(self, message: str) -> None: ...

    # Reviewers

    @abstractmethod
    def get_requested_reviewers(self) -> List[str]: ...

    @abstractmethod
    def assign_reviewers(self, reviewers: List[str]) -> None: ...

    @abstractmethod
    def remove_reviewers(self, reviewers: List[str]) -> None: ...

    # Permissions

    @abstractmethod
    def get_user_permission(self, user: str) -> str:
        """Return one of admin, write, read or none."""

    def check_user_permissions(
        self, user: str, required: List[str]
    ) -> Tuple[bool, str]:
        """Return (allowed, actual_permission) for `user`."""
        permission = self.get_user_permission(user)
        return permission in required, permission

    # CI

    @abstractmethod
    def check_runs_status(self) -> Tuple[bool, List[CheckRun]]:
        """Return (all_passed, failed_checks) for the PR head commit."""

    def get_workflow_run_ids_from_check_suite(self, check_suite_id: int) -> List[int]:
        raise PlatformError("workflow reruns are not supported on this platform")

    def rerun_workflow_run_failed_jobs(self, run_id: int) -> None:
        raise PlatformError("workflow reruns are not supported on this platform")

    # Merge

    @abstractmethod
    def merge_pr(self, method: str) -> None: ...

    @abstractmethod
    def rebase_pr(self) -> None: ...

    @abstractmethod
    def close_pr(self) -> None: ...

    @abstractmethod
    def get_available_merge_methods(self) -> List[str]: ...

    @abstractmethod
    def get_commits(self) -> List[Commit]: ...

    # Labels

    @abstractmethod
    def get_labels(self) -> List[str]: ...

    @abstractmethod
    def add_labels(self, labels: List[str]) -> None: ...

    @abstractmethod
    def remove_labels(self, labels: List[str]) -> None: ...

    # Issue and PR bodies

    @abstractmethod
    def get_issue(self, number: int) -> Issue: ...

    @abstractmethod
    def update_issue_body(self, number: int, body: str) -> None: ...

    @abstractmethod
    def find_issue(self, options: FindIssueOptions) -> Issue:
        """Return the first matching issue or raise NotFoundError."""

    @abstractmethod
    def update_pr_body(self, body: str) -> None: ...

    # Cherry-pick

    @abstractmethod
    def create_branch(self, name: str, base: str) -> None: ...

    @abstractmethod
    def branch_exists(self, name: str) -> bool: ...

    @abstractmethod
    def cherry_pick_commit(self, sha: str, branch: str) -> str:
        """Apply commit `sha` on top of `branch` and return the new commit sha."""

    @abstractmethod
    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest: ...

    # Workflows

    def trigger_workflow_dispatch(
        self,
        workflow_file: str,
        ref: str,
        inputs: Dict[str, str],
        repo: Optional[str] = None,
    ) -> None:
        raise PlatformError("workflow dispatch is not supported on this platform")


def create_client(settings: Settings) -> PlatformClient:
    """
    Create the platform client for `settings.platform`.

    Raises:
        ConfigurationError: unknown platform or missing token
    """
    platform = (settings.platform or "").lower()
    if not settings.token:
        raise ConfigurationError("token is required")

    if platform == "github":
        from prbot.integrations.github.client import GitHubClient

        return GitHubClient(settings)
    if platform == "gitlab":
        from prbot.integrations.gitlab.client import GitLabClient

        return GitLabClient(settings)

    raise ConfigurationError(f"unsupported platform: {settings.platform}")


def matches_issue(issue: Issue, options: FindIssueOptions) -> bool:
    """Apply the title, author, label and state filters to an issue."""
    if options.title and options.title.lower() not in issue.title.lower():
        return False
    if options.author and normalize_login(options.author) != normalize_login(issue.author):
        return False
    if options.labels and not set(options.labels).issubset(issue.labels):
        return False
    if options.state and options.state != "all" and issue.state != options.state:
        return False
    return True


def is_self_check(name: str, self_check_name: str) -> bool:
    """True when `name` is the tool's own check run ("pr-cli" or "CI / pr-cli")."""
    if not self_check_name:
        return False
    return name == self_check_name or name.endswith(f"/ {self_check_name}")


def is_failed_check(check: CheckRun, self_check_name: str) -> bool:
    """
    A check fails when it completed with a conclusion other than success or
    skipped, or when it has not completed and is not the self-check.
    """
    if check.status == "completed":
        return check.conclusion not in ("success", "skipped")
    return not is_self_check(check.name, self_check_name)
