"""
Webhook request validation: signatures, event completeness and the
repository allow-list.
"""

import hashlib
import hmac
from typing import List

from prbot.models.webhook import WebhookEvent


class SignatureError(ValueError):
    pass


class InvalidEventError(ValueError):
    pass


def validate_github_signature(payload: bytes, signature: str, secret: str) -> None:
    """Check a "sha256=<hex>" X-Hub-Signature-256 header against the body."""
    if not signature:
        raise SignatureError("missing signature header")
    if not signature.startswith("sha256="):
        raise SignatureError("invalid signature format")

    received = signature[len("sha256="):]
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
        raise SignatureError("signature mismatch")


def validate_gitlab_token(token: str, secret: str) -> None:
    if not token:
        raise SignatureError("missing token header")
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        raise SignatureError("token mismatch")


def is_repository_allowed(owner: str, repo: str, allowed_repos: List[str]) -> bool:
    """
    Allow-list match: exact "owner/name", organization "owner/*" or "*".
    An empty list allows everything.
    """
    if not allowed_repos:
        return True
    full_name = f"{owner}/{repo}"
    for allowed in allowed_repos:
        if allowed in ("*", full_name):
            return True
        if allowed.endswith("/*") and owner == allowed[:-2]:
            return True
    return False


def validate_webhook_event(event: WebhookEvent) -> None:
    if not event.platform:
        raise InvalidEventError("platform is required")
    if not event.repository.owner:
        raise InvalidEventError("repository owner is required")
    if not event.repository.name:
        raise InvalidEventError("repository name is required")
    if event.pull_request.number <= 0:
        raise InvalidEventError(f"invalid pull request number: {event.pull_request.number}")
    if not event.comment.body:
        raise InvalidEventError("comment body is empty")
    if not event.sender:
        raise InvalidEventError("sender login is required")
