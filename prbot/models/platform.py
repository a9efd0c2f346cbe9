"""
Platform Data Models

Platform-neutral views of pull requests, issues, comments, reviews,
check runs and commits, as returned by every PlatformClient.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ReviewState(str, Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"
    PENDING = "PENDING"


class PullRequest(BaseModel):
    """Pull request (merge request) metadata."""

    number: int
    title: str = ""
    body: str = ""
    state: str = "open"
    merged: bool = False
    author: str = ""
    url: str = ""
    head_ref: str = ""
    head_sha: str = ""
    base_ref: str = ""
    base_sha: str = ""


class Issue(BaseModel):
    number: int
    title: str = ""
    state: str = "open"
    author: str = ""
    body: str = ""
    url: str = ""
    created_at: str = ""
    labels: List[str] = []


class FindIssueOptions(BaseModel):
    """Filters used to locate an issue when no number is given."""

    title: str = ""
    author: str = ""
    labels: List[str] = []
    state: str = "open"
    sort: str = "created"
    order: str = "asc"


class Comment(BaseModel):
    id: int = 0
    author: str
    body: str = ""
    url: str = ""
    created_at: str = ""


class Review(BaseModel):
    id: int = 0
    author: str
    state: str
    body: str = ""
    submitted_at: str = Field("", description="ISO-8601 submission time")


class CheckRun(BaseModel):
    """A CI check run on the PR head commit."""

    name: str
    status: str = "completed"
    conclusion: Optional[str] = None
    url: str = ""
    app_slug: str = ""
    check_suite_id: int = 0

    @property
    def display_status(self) -> str:
        return self.conclusion or self.status


class Commit(BaseModel):
    sha: str
    message: str = ""
    author: str = ""
