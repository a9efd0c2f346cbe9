"""
Webhook Data Models

Normalized events produced by the webhook parser and consumed by the
worker pool.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel


class Platform(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"


class RepositoryRef(BaseModel):
    owner: str = ""
    name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class PullRequestRef(BaseModel):
    number: int = 0
    state: str = ""
    title: str = ""
    draft: bool = False
    author: str = ""
    head_ref: str = ""
    head_sha: str = ""
    base_ref: str = ""


class CommentRef(BaseModel):
    id: int = 0
    body: str = ""
    author: str = ""


class WebhookEvent(BaseModel):
    """A PR comment event (GitHub issue_comment or GitLab note)."""

    platform: str
    event_type: str = ""
    action: str = ""
    event_id: str = ""
    repository: RepositoryRef = RepositoryRef()
    pull_request: PullRequestRef = PullRequestRef()
    comment: CommentRef = CommentRef()
    sender: str = ""


class PullRequestEvent(BaseModel):
    """A pull_request lifecycle event."""

    platform: str
    action: str = ""
    event_id: str = ""
    repository: RepositoryRef = RepositoryRef()
    pull_request: PullRequestRef = PullRequestRef()
    sender: str = ""


@dataclass
class WebhookJob:
    """A comment event waiting in the worker queue."""

    event: WebhookEvent
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
