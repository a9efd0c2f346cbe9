"""
GitHub API Client

Responsibilities:
- Pull request, comment, review and reviewer operations
- Permission lookups and check run evaluation
- Merge, rebase (branch update) and close
- Labels, issue search and description updates
- API tree-based cherry-pick and workflow reruns/dispatch
"""

import logging
from typing import Dict, List, Optional, Tuple

from github import Auth, Github, GithubException, InputGitTreeElement
from github.GithubException import UnknownObjectException
from github.Repository import Repository

from prbot.config import Settings
from prbot.integrations.base import (
    NotFoundError,
    PlatformClient,
    PlatformError,
    is_failed_check,
    matches_issue,
)
from prbot.models.platform import (
    CheckRun,
    Comment,
    Commit,
    FindIssueOptions,
    Issue,
    PullRequest,
    Review,
    ReviewState,
)
from prbot.utils.helpers import normalize_login, strip_mention

logger = logging.getLogger(__name__)

SELF_APPROVAL_ERROR = "Can not approve your own pull request"

AUTO_APPROVE_FALLBACK = (
    "✅ **Auto-approved** (LGTM threshold met)\n\n{message}\n\n"
    "> Note: Cannot create formal approval review due to GitHub's self-approval restriction."
)

# 10 pages of 50
ISSUE_LIST_LIMIT = 500
ISSUE_SEARCH_LIMIT = 10

# (mode, type, sha) of a tree entry keyed by path
TreeEntries = Dict[str, Tuple[str, str, str]]


def _error_message(error: GithubException) -> str:
    data = error.data if isinstance(error.data, dict) else {}
    return data.get("message") or str(error)


def apply_commit_changes(
    target: TreeEntries, parent: TreeEntries, commit: TreeEntries
) -> TreeEntries:
    """
    Replay the changes a commit made against its parent on top of a target
    tree (single level, paths are not recursed).

    - Paths changed or added by the commit take the commit's entry
    - Paths the commit deleted are removed from the target
    - Every other target path is kept
    """
    result: TreeEntries = {}
    for path, entry in target.items():
        if path in parent and path not in commit:
            continue
        result[path] = entry
    for path, entry in commit.items():
        parent_entry = parent.get(path)
        if parent_entry is None or parent_entry[2] != entry[2]:
            result[path] = entry
    return result


class GitHubClient(PlatformClient):
    """GitHub API client bound to one pull request."""

    supports_workflow_reruns = True

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.client = self._connect(settings.token)
        self.repo: Repository = self.client.get_repo(f"{self.owner}/{self.repo_name}")

        if settings.comment_token and settings.comment_token != settings.token:
            self.comment_client = self._connect(settings.comment_token)
            self.comment_repo: Repository = self.comment_client.get_repo(
                f"{self.owner}/{self.repo_name}"
            )
        else:
            self.comment_client = self.client
            self.comment_repo = self.repo

        self._pull = None
        logger.info(f"GitHub client initialized for {self.repo.full_name}#{self.pr_number}")

    def _connect(self, token: str) -> Github:
        if self.settings.base_url:
            return Github(auth=Auth.Token(token), base_url=self.settings.base_url)
        return Github(auth=Auth.Token(token))

    @property
    def pull(self):
        if self._pull is None:
            self._pull = self.repo.get_pull(self.pr_number)
        return self._pull

    # Pull request

    def get_pr(self) -> PullRequest:
        try:
            pr = self.repo.get_pull(self.pr_number)
        except GithubException as e:
            logger.error(f"Failed to get PR #{self.pr_number}: {e}")
            raise PlatformError(f"failed to get PR #{self.pr_number}: {_error_message(e)}") from e
        self._pull = pr
        return PullRequest(
            number=pr.number,
            title=pr.title or "",
            body=pr.body or "",
            state=pr.state,
            merged=bool(pr.merged),
            author=pr.user.login if pr.user else "",
            url=pr.html_url or "",
            head_ref=pr.head.ref,
            head_sha=pr.head.sha,
            base_ref=pr.base.ref,
            base_sha=pr.base.sha,
        )

    # Comments

    def post_comment(self, body: str) -> None:
        try:
            self.comment_repo.get_issue(self.pr_number).create_comment(body)
            logger.info(f"Posted comment on PR #{self.pr_number}")
        except GithubException as e:
            logger.error(f"Failed to post comment on PR #{self.pr_number}: {e}")
            raise PlatformError(f"failed to post comment: {_error_message(e)}") from e

    def get_comments(self) -> List[Comment]:
        try:
            return [
                Comment(
                    id=c.id,
                    author=c.user.login if c.user else "",
                    body=c.body or "",
                    url=c.html_url or "",
                    created_at=c.created_at.isoformat() if c.created_at else "",
                )
                for c in self.pull.get_issue_comments()
            ]
        except GithubException as e:
            logger.error(f"Failed to list comments on PR #{self.pr_number}: {e}")
            raise PlatformError(f"failed to get comments: {_error_message(e)}") from e

    # Reviews

    def get_reviews(self) -> List[Review]:
        try:
            return [
                Review(
                    id=r.id,
                    author=r.user.login if r.user else "",
                    state=r.state,
                    body=r.body or "",
                    submitted_at=r.submitted_at.isoformat() if r.submitted_at else "",
                )
                for r in self.pull.get_reviews()
            ]
        except GithubException as e:
            logger.error(f"Failed to list reviews on PR #{self.pr_number}: {e}")
            raise PlatformError(f"failed to get reviews: {_error_message(e)}") from e

    def approve_pr(self, message: str) -> None:
        try:
            self.pull.create_review(body=message, event=self.settings.lgtm_review_event)
            logger.info(f"Approved PR #{self.pr_number}")
        except GithubException as e:
            if SELF_APPROVAL_ERROR in str(e):
                logger.warning("Token user is the PR author, posting approval as a comment")
                self.post_comment(AUTO_APPROVE_FALLBACK.format(message=message))
                return
            logger.error(f"Failed to approve PR #{self.pr_number}: {e}")
            raise PlatformError(f"failed to approve PR: {_error_message(e)}") from e

    def dismiss_approve(self, message: str) -> None:
        """Dismiss the token user's latest approval, or robot approvals when the user is unknown."""
        try:
            logins = [self.client.get_user().login]
        except GithubException as e:
            if e.status != 403:
                raise PlatformError(f"failed to get current user: {_error_message(e)}") from e
            logger.warning("Cannot resolve token user (403), dismissing robot account approvals")
            logins = list(self.settings.robot_accounts)

        wanted = {normalize_login(login) for login in logins}
        latest = {}
        for review in self.pull.get_reviews():
            if review.state != ReviewState.APPROVED.value or not review.user:
                continue
            key = normalize_login(review.user.login)
            if key in wanted and (key not in latest or review.id > latest[key].id):
                latest[key] = review

        if not latest:
            raise PlatformError(
                f"no approval review found for user {', '.join(logins)} to dismiss"
            )
        for review in latest.values():
            try:
                review.dismiss(message)
                logger.info(f"Dismissed review {review.id} by {review.user.login}")
            except GithubException as e:
                logger.error(f"Failed to dismiss review {review.id}: {e}")
                raise PlatformError(f"failed to dismiss review: {_error_message(e)}") from e

    # Reviewers

    def get_requested_reviewers(self) -> List[str]:
        users, _teams = self.pull.get_review_requests()
        return [u.login for u in users]

    def assign_reviewers(self, reviewers: List[str]) -> None:
        author = self.pull.user.login if self.pull.user else ""
        failures = []
        for reviewer in (strip_mention(r) for r in reviewers):
            if not reviewer:
                continue
            if reviewer.lower() == author.lower():
                failures.append(f"{reviewer}: cannot assign the PR author as a reviewer")
                continue
            try:
                self.pull.create_review_request(reviewers=[reviewer])
            except GithubException as e:
                logger.error(f"Failed to request review from {reviewer}: {e}")
                failures.append(f"{reviewer}: {_error_message(e)}")
        if failures:
            raise PlatformError("failed to assign reviewers: " + "; ".join(failures))

    def remove_reviewers(self, reviewers: List[str]) -> None:
        names = [strip_mention(r) for r in reviewers if strip_mention(r)]
        try:
            self.pull.delete_review_request(reviewers=names)
        except GithubException as e:
            logger.error(f"Failed to remove reviewers {names}: {e}")
            raise PlatformError(f"failed to remove reviewers: {_error_message(e)}") from e

    # Permissions

    def get_user_permission(self, user: str) -> str:
        try:
            return self.repo.get_collaborator_permission(user)
        except UnknownObjectException:
            return "none"
        except GithubException as e:
            logger.error(f"Failed to get permission for {user}: {e}")
            raise PlatformError(f"failed to get permission for {user}: {_error_message(e)}") from e

    # CI

    def check_runs_status(self) -> Tuple[bool, List[CheckRun]]:
        pr = self.get_pr()
        try:
            runs = self.repo.get_commit(pr.head_sha).get_check_runs()
            failed = []
            for run in runs:
                check = CheckRun(
                    name=run.name,
                    status=run.status,
                    conclusion=run.conclusion if run.status == "completed" else None,
                    url=run.html_url or "",
                    app_slug=run.app.slug if run.app else "",
                    check_suite_id=run.check_suite_id or 0,
                )
                if is_failed_check(check, self.settings.self_check_name):
                    failed.append(check)
        except GithubException as e:
            logger.error(f"Failed to list check runs for {pr.head_sha}: {e}")
            raise PlatformError(f"failed to get check runs: {_error_message(e)}") from e
        return not failed, failed

    def get_workflow_run_ids_from_check_suite(self, check_suite_id: int) -> List[int]:
        try:
            suite = self.repo.get_check_suite(check_suite_id)
            runs = self.repo.get_workflow_runs(head_sha=suite.head_sha)
            return [run.id for run in runs if run.check_suite_id == check_suite_id]
        except GithubException as e:
            logger.error(f"Failed to find workflow runs for check suite {check_suite_id}: {e}")
            raise PlatformError(f"failed to find workflow runs: {_error_message(e)}") from e

    def rerun_workflow_run_failed_jobs(self, run_id: int) -> None:
        try:
            if not self.repo.get_workflow_run(run_id).rerun_failed_jobs():
                raise PlatformError(f"rerun of workflow run {run_id} was rejected")
        except GithubException as e:
            logger.error(f"Failed to rerun workflow run {run_id}: {e}")
            raise PlatformError(f"failed to rerun workflow run {run_id}: {_error_message(e)}") from e

    # Merge

    def merge_pr(self, method: str) -> None:
        try:
            status = self.pull.merge(merge_method=method)
        except GithubException as e:
            logger.error(f"Failed to merge PR #{self.pr_number}: {e}")
            raise PlatformError(_error_message(e)) from e
        if not status.merged:
            raise PlatformError(status.message or "merge was not performed")

    def rebase_pr(self) -> None:
        try:
            if not self.pull.update_branch():
                raise PlatformError("branch update was not accepted")
        except GithubException as e:
            logger.error(f"Failed to update branch of PR #{self.pr_number}: {e}")
            raise PlatformError(_error_message(e)) from e

    def close_pr(self) -> None:
        try:
            self.pull.edit(state="closed")
        except GithubException as e:
            raise PlatformError(f"failed to close PR: {_error_message(e)}") from e

    def get_available_merge_methods(self) -> List[str]:
        methods = []
        pr = self.get_pr()
        if self.repo.allow_rebase_merge and pr.head_sha != pr.base_sha:
            methods.append("rebase")
        if self.repo.allow_squash_merge:
            methods.append("squash")
        if self.repo.allow_merge_commit:
            methods.append("merge")
        if not methods:
            raise PlatformError("no merge methods are enabled for this repository")
        return methods

    def get_commits(self) -> List[Commit]:
        try:
            return [
                Commit(
                    sha=c.sha,
                    message=c.commit.message or "",
                    author=c.author.login if c.author else (c.commit.author.name or ""),
                )
                for c in self.pull.get_commits()
            ]
        except GithubException as e:
            raise PlatformError(f"failed to get commits: {_error_message(e)}") from e

    # Labels

    def get_labels(self) -> List[str]:
        return [label.name for label in self.pull.get_labels()]

    def add_labels(self, labels: List[str]) -> None:
        current = self.get_labels()
        merged = current + [label for label in labels if label not in current]
        self._set_labels(merged)

    def remove_labels(self, labels: List[str]) -> None:
        remaining = [label for label in self.get_labels() if label not in labels]
        self._set_labels(remaining)

    def _set_labels(self, labels: List[str]) -> None:
        try:
            self.pull.set_labels(*labels)
        except GithubException as e:
            logger.error(f"Failed to set labels {labels}: {e}")
            raise PlatformError(f"failed to update labels: {_error_message(e)}") from e

    # Issue and PR bodies

    def _to_issue(self, issue) -> Issue:
        return Issue(
            number=issue.number,
            title=issue.title or "",
            state=issue.state,
            author=issue.user.login if issue.user else "",
            body=issue.body or "",
            url=issue.html_url or "",
            created_at=issue.created_at.isoformat() if issue.created_at else "",
            labels=[label.name for label in issue.labels],
        )

    def get_issue(self, number: int) -> Issue:
        try:
            return self._to_issue(self.repo.get_issue(number))
        except UnknownObjectException as e:
            raise NotFoundError(f"issue #{number} not found") from e
        except GithubException as e:
            raise PlatformError(f"failed to get issue #{number}: {_error_message(e)}") from e

    def update_issue_body(self, number: int, body: str) -> None:
        try:
            self.repo.get_issue(number).edit(body=body)
        except GithubException as e:
            raise PlatformError(f"failed to update issue #{number}: {_error_message(e)}") from e

    def find_issue(self, options: FindIssueOptions) -> Issue:
        """Search by title first, then fall back to listing issues page by page."""
        query = f'repo:{self.owner}/{self.repo_name} type:issue state:{options.state} in:title "{options.title}"'
        for label in options.labels:
            query += f' label:"{label}"'
        try:
            results = self.client.search_issues(query, sort=options.sort, order=options.order)
            for index, candidate in enumerate(results):
                if index >= ISSUE_SEARCH_LIMIT:
                    break
                issue = self._to_issue(candidate)
                if candidate.pull_request is None and matches_issue(issue, options):
                    return issue
        except GithubException as e:
            logger.warning(f"Issue search failed, falling back to listing: {e}")

        direction = "asc" if options.order == "asc" else "desc"
        issues = self.repo.get_issues(state=options.state, sort=options.sort, direction=direction)
        for index, candidate in enumerate(issues):
            if index >= ISSUE_LIST_LIMIT:
                break
            if candidate.pull_request is not None:
                continue
            issue = self._to_issue(candidate)
            if matches_issue(issue, options):
                return issue
        raise NotFoundError(f"no issue found matching title {options.title!r}")

    def update_pr_body(self, body: str) -> None:
        try:
            self.pull.edit(body=body)
        except GithubException as e:
            raise PlatformError(f"failed to update PR description: {_error_message(e)}") from e

    # Cherry-pick

    def create_branch(self, name: str, base: str) -> None:
        try:
            base_ref = self.repo.get_git_ref(f"heads/{base}")
            self.repo.create_git_ref(ref=f"refs/heads/{name}", sha=base_ref.object.sha)
            logger.info(f"Created branch {name} from {base}")
        except GithubException as e:
            logger.error(f"Failed to create branch {name} from {base}: {e}")
            raise PlatformError(f"failed to create branch {name}: {_error_message(e)}") from e

    def branch_exists(self, name: str) -> bool:
        try:
            self.repo.get_branch(name)
            return True
        except UnknownObjectException:
            return False
        except GithubException as e:
            if e.status == 404:
                return False
            raise PlatformError(f"failed to check branch {name}: {_error_message(e)}") from e

    def _tree_entries(self, tree_sha: str) -> TreeEntries:
        tree = self.repo.get_git_tree(tree_sha)
        return {e.path: (e.mode, e.type, e.sha) for e in tree.tree}

    def cherry_pick_commit(self, sha: str, branch: str) -> str:
        try:
            commit = self.repo.get_git_commit(sha)
            if not commit.parents:
                raise PlatformError(f"cannot cherry-pick initial commit {sha[:7]}")
            parent = commit.parents[0]

            ref = self.repo.get_git_ref(f"heads/{branch}")
            target_commit = self.repo.get_git_commit(ref.object.sha)

            entries = apply_commit_changes(
                self._tree_entries(target_commit.tree.sha),
                self._tree_entries(parent.tree.sha),
                self._tree_entries(commit.tree.sha),
            )
            tree = self.repo.create_git_tree(
                [
                    InputGitTreeElement(path, mode, type_, sha=entry_sha)
                    for path, (mode, type_, entry_sha) in sorted(entries.items())
                ]
            )
            new_commit = self.repo.create_git_commit(commit.message, tree, [target_commit])
            ref.edit(new_commit.sha)
            logger.info(f"Cherry-picked {sha[:7]} onto {branch} as {new_commit.sha[:7]}")
            return new_commit.sha
        except GithubException as e:
            logger.error(f"Failed to cherry-pick {sha} onto {branch}: {e}")
            raise PlatformError(f"failed to cherry-pick {sha[:7]}: {_error_message(e)}") from e

    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest:
        try:
            pr = self.repo.create_pull(title=title, body=body, head=head, base=base)
        except GithubException as e:
            logger.error(f"Failed to create PR {head} -> {base}: {e}")
            raise PlatformError(f"failed to create PR: {_error_message(e)}") from e
        return PullRequest(
            number=pr.number,
            title=pr.title,
            state=pr.state,
            url=pr.html_url or "",
            head_ref=head,
            base_ref=base,
        )

    # Workflows

    def trigger_workflow_dispatch(
        self,
        workflow_file: str,
        ref: str,
        inputs: Dict[str, str],
        repo: Optional[str] = None,
    ) -> None:
        try:
            target = self.client.get_repo(repo) if repo else self.repo
            if not target.get_workflow(workflow_file).create_dispatch(ref, inputs):
                raise PlatformError(f"workflow dispatch of {workflow_file} was rejected")
            logger.info(f"Dispatched workflow {workflow_file}@{ref} on {target.full_name}")
        except GithubException as e:
            logger.error(f"Failed to dispatch workflow {workflow_file}: {e}")
            raise PlatformError(f"failed to dispatch workflow: {_error_message(e)}") from e

