# Shared data models
from prbot.models.platform import (
    PullRequest,
    Issue,
    FindIssueOptions,
    Comment,
    Review,
    ReviewState,
    CheckRun,
    Commit,
)
from prbot.models.webhook import (
    Platform,
    RepositoryRef,
    PullRequestRef,
    CommentRef,
    WebhookEvent,
    PullRequestEvent,
    WebhookJob,
)

__all__ = [
    "PullRequest",
    "Issue",
    "FindIssueOptions",
    "Comment",
    "Review",
    "ReviewState",
    "CheckRun",
    "Commit",
    "Platform",
    "RepositoryRef",
    "PullRequestRef",
    "CommentRef",
    "WebhookEvent",
    "PullRequestEvent",
    "WebhookJob",
]
