"""
Webhook Payload Parsing

Identifies the sending platform from request headers and turns GitHub
issue_comment / pull_request and GitLab note payloads into normalized
events. Payloads that are valid but not actionable raise SkipEvent with
the reason reported back to the sender.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from prbot.models.webhook import (
    CommentRef,
    Platform,
    PullRequestEvent,
    PullRequestRef,
    RepositoryRef,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

GITHUB_EVENT_HEADER = "X-GitHub-Event"
GITHUB_DELIVERY_HEADER = "X-GitHub-Delivery"
GITHUB_SIGNATURE_HEADER = "X-Hub-Signature-256"
GITLAB_EVENT_HEADER = "X-Gitlab-Event"
GITLAB_DELIVERY_HEADER = "X-Gitlab-Delivery"
GITLAB_TOKEN_HEADER = "X-Gitlab-Token"

GITLAB_NOTE_EVENTS = ("Note Hook", "note")
# GitLab sends "create" (or nothing on older versions) for new notes
GITLAB_CREATED_ACTIONS = ("", "create", "created")


class SkipEvent(Exception):
    """The payload is well-formed but should not be processed."""


def detect_platform(headers: Mapping[str, str]) -> Optional[Tuple[str, str, str]]:
    """
    Identify the webhook source.

    Returns:
        (platform, event_type, event_id), or None for an unknown source.
        A random event id is generated when the delivery header is missing.
    """
    if headers.get(GITHUB_EVENT_HEADER):
        platform = Platform.GITHUB.value
        event_type = headers.get(GITHUB_EVENT_HEADER, "")
        event_id = headers.get(GITHUB_DELIVERY_HEADER, "")
    elif headers.get(GITLAB_EVENT_HEADER):
        platform = Platform.GITLAB.value
        event_type = headers.get(GITLAB_EVENT_HEADER, "")
        event_id = headers.get(GITLAB_DELIVERY_HEADER, "")
    else:
        return None

    if not event_id:
        event_id = str(uuid.uuid4())
        logger.info(f"No event ID found in webhook headers, generated {event_id}")
    return platform, event_type, event_id


def _load(payload: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(payload or b"{}")
    except (ValueError, UnicodeDecodeError) as e:
        raise SkipEvent(f"failed to parse webhook payload: {e}")
    if not isinstance(data, dict):
        raise SkipEvent("webhook payload is not a JSON object")
    return data


def _login(obj: Optional[Dict[str, Any]], key: str = "login") -> str:
    return (obj or {}).get(key) or ""


def _github_repository(data: Dict[str, Any]) -> RepositoryRef:
    repo = data.get("repository") or {}
    return RepositoryRef(owner=_login(repo.get("owner")), name=repo.get("name") or "")


def parse_github_comment(payload: bytes, event_type: str) -> WebhookEvent:
    if event_type != "issue_comment":
        raise SkipEvent(f"unsupported event type: {event_type}")

    data = _load(payload)
    issue = data.get("issue") or {}
    if issue.get("pull_request") is None:
        raise SkipEvent("comment is not on a pull request")

    action = data.get("action") or ""
    if action != "created":
        raise SkipEvent(f"ignoring action: {action} (only 'created' is processed)")

    comment = data.get("comment") or {}
    return WebhookEvent(
        platform=Platform.GITHUB.value,
        event_type=event_type,
        action=action,
        repository=_github_repository(data),
        pull_request=PullRequestRef(
            number=issue.get("number") or 0,
            state=issue.get("state") or "",
            title=issue.get("title") or "",
            author=_login(issue.get("user")),
        ),
        comment=CommentRef(
            id=comment.get("id") or 0,
            body=comment.get("body") or "",
            author=_login(comment.get("user")),
        ),
        sender=_login(data.get("sender")),
    )


def parse_gitlab_comment(payload: bytes, event_type: str) -> WebhookEvent:
    if event_type not in GITLAB_NOTE_EVENTS:
        raise SkipEvent(f"unsupported event type: {event_type}")

    data = _load(payload)
    attributes = data.get("object_attributes") or {}
    if attributes.get("noteable_type") != "MergeRequest":
        raise SkipEvent("note is not on a merge request")

    action = attributes.get("action") or ""
    if action not in GITLAB_CREATED_ACTIONS:
        raise SkipEvent(f"ignoring action: {action} (only 'create' is processed)")

    project = data.get("project") or {}
    merge_request = data.get("merge_request") or {}
    user = _login(data.get("user"), key="username")
    return WebhookEvent(
        platform=Platform.GITLAB.value,
        event_type=event_type,
        action=action or "create",
        repository=RepositoryRef(
            owner=project.get("namespace") or "",
            name=project.get("name") or "",
        ),
        pull_request=PullRequestRef(
            number=merge_request.get("iid") or 0,
            state=merge_request.get("state") or "",
            title=merge_request.get("title") or "",
            author=_login(merge_request.get("author"), key="username"),
        ),
        comment=CommentRef(
            id=attributes.get("id") or 0,
            body=attributes.get("note") or "",
            author=user,
        ),
        sender=user,
    )


def parse_comment_event(platform: str, event_type: str, payload: bytes) -> WebhookEvent:
    if platform == Platform.GITHUB.value:
        return parse_github_comment(payload, event_type)
    if platform == Platform.GITLAB.value:
        return parse_gitlab_comment(payload, event_type)
    raise SkipEvent(f"unsupported platform: {platform}")


def parse_github_pull_request(payload: bytes, allowed_actions: List[str]) -> PullRequestEvent:
    data = _load(payload)
    action = data.get("action") or ""
    if action not in allowed_actions:
        raise SkipEvent(f'action "{action}" not in allowed actions')

    pr = data.get("pull_request") or {}
    draft = bool(pr.get("draft"))
    if draft and action != "ready_for_review":
        raise SkipEvent("skipping draft PR")

    return PullRequestEvent(
        platform=Platform.GITHUB.value,
        action=action,
        repository=_github_repository(data),
        pull_request=PullRequestRef(
            number=pr.get("number") or data.get("number") or 0,
            state=pr.get("state") or "",
            title=pr.get("title") or "",
            draft=draft,
            author=_login(pr.get("user")),
            head_ref=(pr.get("head") or {}).get("ref") or "",
            head_sha=(pr.get("head") or {}).get("sha") or "",
            base_ref=(pr.get("base") or {}).get("ref") or "",
        ),
        sender=_login(data.get("sender")),
    )


def is_command_comment(event: WebhookEvent) -> bool:
    return event.comment.body.lstrip().startswith("/")


def extract_command(body: str) -> str:
    """Command name of a comment body for metric labels ("unknown" if none)."""
    text = body.lstrip()
    if not text.startswith("/"):
        return "unknown"
    head = text[1:].split(None, 1)
    return head[0] if head else "unknown"
