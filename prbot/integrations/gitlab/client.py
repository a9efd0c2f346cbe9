"""
GitLab API Client

Implements the platform contract against the GitLab REST API (v4) with
requests. Merge requests play the role of pull requests; MR approvals are
reported as APPROVED reviews and pipeline jobs as check runs.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

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
from prbot.utils.helpers import strip_mention

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://gitlab.com/api/v4"
REQUEST_TIMEOUT = 30
PER_PAGE = 100

# Owner(50) and Maintainer(40) administer, Developer(30) writes, the rest read
ACCESS_LEVEL_PERMISSIONS = [(40, "admin"), (30, "write"), (10, "read")]

# GitLab job status -> (check status, conclusion)
JOB_STATUS_MAP = {
    "success": ("completed", "success"),
    "failed": ("completed", "failure"),
    "canceled": ("completed", "cancelled"),
    "skipped": ("completed", "skipped"),
    "manual": ("completed", "skipped"),
    "running": ("in_progress", None),
    "pending": ("queued", None),
    "created": ("queued", None),
    "preparing": ("queued", None),
    "scheduled": ("queued", None),
    "waiting_for_resource": ("queued", None),
}


def access_level_to_permission(level: int) -> str:
    for minimum, permission in ACCESS_LEVEL_PERMISSIONS:
        if level >= minimum:
            return permission
    return "none"


def _normalize_state(state: str) -> str:
    return "open" if state == "opened" else "closed"


def api_base_url(base_url: str) -> str:
    """Return the v4 API root for a GitLab host or API URL."""
    if not base_url:
        return DEFAULT_BASE_URL
    base_url = base_url.rstrip("/")
    if not base_url.endswith("/api/v4"):
        base_url += "/api/v4"
    return base_url


class GitLabClient(PlatformClient):
    """GitLab API client bound to one merge request."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.base_url = api_base_url(settings.base_url)
        self.project = quote(f"{self.owner}/{self.repo_name}", safe="")
        self.session = self._session(settings.token)
        if settings.comment_token and settings.comment_token != settings.token:
            self.comment_session = self._session(settings.comment_token)
        else:
            self.comment_session = self.session
        self._user_ids: Dict[str, int] = {}
        logger.info(f"GitLab client initialized for {self.owner}/{self.repo_name}!{self.pr_number}")

    @staticmethod
    def _session(token: str) -> requests.Session:
        session = requests.Session()
        session.headers.update({"PRIVATE-TOKEN": token, "Accept": "application/json"})
        return session

    # HTTP helpers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/projects/{self.project}{path}"

    def _mr_url(self, path: str = "") -> str:
        return self._url(f"/merge_requests/{self.pr_number}{path}")

    def _request(
        self,
        method: str,
        url: str,
        session: Optional[requests.Session] = None,
        **kwargs,
    ) -> requests.Response:
        session = session or self.session
        try:
            response = session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            logger.error(f"GitLab request {method} {url} failed: {e}")
            raise PlatformError(f"GitLab request failed: {e}") from e
        if response.status_code == 404:
            raise NotFoundError(f"not found: {method} {url}")
        if response.status_code >= 400:
            message = response.text
            try:
                payload = response.json()
                message = payload.get("message") or payload.get("error") or message
            except ValueError:
                pass
            logger.error(f"GitLab API error {response.status_code} for {method} {url}: {message}")
            raise PlatformError(f"GitLab API error ({response.status_code}): {message}")
        return response

    def _get(self, url: str, **params) -> Any:
        return self._request("GET", url, params=params or None).json()

    def _paginate(self, url: str, **params) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while page:
            response = self._request(
                "GET", url, params={**params, "per_page": PER_PAGE, "page": page}
            )
            items.extend(response.json())
            next_page = response.headers.get("X-Next-Page", "")
            page = int(next_page) if next_page else 0
        return items

    def _user_id(self, username: str) -> int:
        if username not in self._user_ids:
            users = self._get(f"{self.base_url}/users", username=username)
            if not users:
                raise NotFoundError(f"user {username} not found")
            self._user_ids[username] = users[0]["id"]
        return self._user_ids[username]

    def _merge_request(self) -> Dict[str, Any]:
        return self._get(self._mr_url())

    # Pull request

    def get_pr(self) -> PullRequest:
        mr = self._merge_request()
        diff_refs = mr.get("diff_refs") or {}
        return PullRequest(
            number=mr["iid"],
            title=mr.get("title") or "",
            body=mr.get("description") or "",
            state=_normalize_state(mr.get("state", "")),
            merged=mr.get("state") == "merged",
            author=(mr.get("author") or {}).get("username", ""),
            url=mr.get("web_url") or "",
            head_ref=mr.get("source_branch") or "",
            head_sha=mr.get("sha") or "",
            base_ref=mr.get("target_branch") or "",
            base_sha=diff_refs.get("base_sha") or "",
        )

    # Comments

    def post_comment(self, body: str) -> None:
        self._request("POST", self._mr_url("/notes"), session=self.comment_session, json={"body": body})
        logger.info(f"Posted note on MR !{self.pr_number}")

    def get_comments(self) -> List[Comment]:
        notes = self._paginate(self._mr_url("/notes"), sort="asc", order_by="created_at")
        return [
            Comment(
                id=note["id"],
                author=(note.get("author") or {}).get("username", ""),
                body=note.get("body") or "",
                created_at=note.get("created_at") or "",
            )
            for note in notes
            if not note.get("system")
        ]

    # Reviews

    def get_reviews(self) -> List[Review]:
        approvals = self._get(self._mr_url("/approvals"))
        return [
            Review(
                author=entry["user"]["username"],
                state=ReviewState.APPROVED.value,
            )
            for entry in approvals.get("approved_by") or []
        ]

    def approve_pr(self, message: str) -> None:
        self._request("POST", self._mr_url("/approve"))
        self.post_comment(message)

    def dismiss_approve(self, message: str) -> None:
        try:
            self._request("POST", self._mr_url("/unapprove"))
        except NotFoundError as e:
            raise PlatformError("no approval review found to dismiss") from e
        self.post_comment(message)

    # Reviewers

    def get_requested_reviewers(self) -> List[str]:
        return [r["username"] for r in self._merge_request().get("reviewers") or []]

    def _set_reviewers(self, usernames: List[str]) -> None:
        ids = [self._user_id(name) for name in usernames]
        self._request("PUT", self._mr_url(), json={"reviewer_ids": ids})

    def assign_reviewers(self, reviewers: List[str]) -> None:
        mr = self._merge_request()
        author = (mr.get("author") or {}).get("username", "")
        current = [r["username"] for r in mr.get("reviewers") or []]
        failures = []
        for reviewer in (strip_mention(r) for r in reviewers):
            if not reviewer or reviewer in current:
                continue
            if reviewer.lower() == author.lower():
                failures.append(f"{reviewer}: cannot assign the PR author as a reviewer")
                continue
            try:
                self._user_id(reviewer)
                current.append(reviewer)
            except PlatformError as e:
                failures.append(f"{reviewer}: {e}")
        self._set_reviewers(current)
        if failures:
            raise PlatformError("failed to assign reviewers: " + "; ".join(failures))

    def remove_reviewers(self, reviewers: List[str]) -> None:
        removed = {strip_mention(r).lower() for r in reviewers}
        remaining = [r for r in self.get_requested_reviewers() if r.lower() not in removed]
        self._set_reviewers(remaining)

    # Permissions

    def get_user_permission(self, user: str) -> str:
        try:
            member = self._get(self._url(f"/members/all/{self._user_id(user)}"))
        except NotFoundError:
            return "none"
        return access_level_to_permission(int(member.get("access_level", 0)))

    # CI

    def check_runs_status(self) -> Tuple[bool, List[CheckRun]]:
        pipelines = self._get(self._mr_url("/pipelines"))
        if not pipelines:
            return True, []
        pipeline_id = pipelines[0]["id"]
        failed = []
        for job in self._paginate(self._url(f"/pipelines/{pipeline_id}/jobs")):
            status, conclusion = JOB_STATUS_MAP.get(job.get("status", ""), ("queued", None))
            check = CheckRun(
                name=job.get("name", ""),
                status=status,
                conclusion=conclusion,
                url=job.get("web_url") or "",
            )
            if job.get("allow_failure") and conclusion == "failure":
                continue
            if is_failed_check(check, self.settings.self_check_name):
                failed.append(check)
        return not failed, failed

    # Merge

    def merge_pr(self, method: str) -> None:
        payload: Dict[str, Any] = {}
        if method == "squash":
            payload["squash"] = True
        elif method == "rebase":
            self.rebase_pr()
        self._request("PUT", self._mr_url("/merge"), json=payload)

    def rebase_pr(self) -> None:
        self._request("PUT", self._mr_url("/rebase"))

    def close_pr(self) -> None:
        self._request("PUT", self._mr_url(), json={"state_event": "close"})

    def get_available_merge_methods(self) -> List[str]:
        project = self._get(self._url(""))
        methods = []
        if project.get("merge_method") in ("rebase_merge", "ff"):
            methods.append("rebase")
        if project.get("squash_option", "default_off") != "never":
            methods.append("squash")
        methods.append("merge")
        return methods

    def get_commits(self) -> List[Commit]:
        return [
            Commit(sha=c["id"], message=c.get("message") or "", author=c.get("author_name") or "")
            for c in self._paginate(self._mr_url("/commits"))
        ]

    # Labels

    def get_labels(self) -> List[str]:
        return list(self._merge_request().get("labels") or [])

    def add_labels(self, labels: List[str]) -> None:
        self._request("PUT", self._mr_url(), json={"add_labels": ",".join(labels)})

    def remove_labels(self, labels: List[str]) -> None:
        self._request("PUT", self._mr_url(), json={"remove_labels": ",".join(labels)})

    # Issue and PR bodies

    @staticmethod
    def _to_issue(data: Dict[str, Any]) -> Issue:
        return Issue(
            number=data["iid"],
            title=data.get("title") or "",
            state=_normalize_state(data.get("state", "")),
            author=(data.get("author") or {}).get("username", ""),
            body=data.get("description") or "",
            url=data.get("web_url") or "",
            created_at=data.get("created_at") or "",
            labels=list(data.get("labels") or []),
        )

    def get_issue(self, number: int) -> Issue:
        return self._to_issue(self._get(self._url(f"/issues/{number}")))

    def update_issue_body(self, number: int, body: str) -> None:
        self._request("PUT", self._url(f"/issues/{number}"), json={"description": body})

    def find_issue(self, options: FindIssueOptions) -> Issue:
        params: Dict[str, Any] = {
            "search": options.title,
            "in": "title",
            "order_by": "created_at" if options.sort == "created" else "updated_at",
            "sort": options.order,
        }
        if options.state in ("open", "closed"):
            params["state"] = "opened" if options.state == "open" else "closed"
        if options.labels:
            params["labels"] = ",".join(options.labels)
        for data in self._paginate(self._url("/issues"), **params):
            issue = self._to_issue(data)
            if matches_issue(issue, options):
                return issue
        raise NotFoundError(f"no issue found matching title {options.title!r}")

    def update_pr_body(self, body: str) -> None:
        self._request("PUT", self._mr_url(), json={"description": body})

    # Cherry-pick

    def create_branch(self, name: str, base: str) -> None:
        self._request("POST", self._url("/repository/branches"), params={"branch": name, "ref": base})

    def branch_exists(self, name: str) -> bool:
        try:
            self._get(self._url(f"/repository/branches/{quote(name, safe='')}"))
            return True
        except NotFoundError:
            return False

    def cherry_pick_commit(self, sha: str, branch: str) -> str:
        response = self._request(
            "POST", self._url(f"/repository/commits/{sha}/cherry_pick"), json={"branch": branch}
        )
        return response.json()["id"]

    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest:
        mr = self._request(
            "POST",
            self._url("/merge_requests"),
            json={"source_branch": head, "target_branch": base, "title": title, "description": body},
        ).json()
        return PullRequest(
            number=mr["iid"],
            title=mr.get("title") or title,
            state="open",
            url=mr.get("web_url") or "",
            head_ref=head,
            base_ref=base,
        )
