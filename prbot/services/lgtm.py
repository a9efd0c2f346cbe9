"""
LGTM Vote Aggregation

Fuses platform reviews and /lgtm comment votes into the current set of
approvers.

Rules, in order:
1. Each reviewer's effective review is their latest APPROVED,
   CHANGES_REQUESTED or DISMISSED review (COMMENTED never displaces one).
2. Reviewers whose effective review is APPROVED are approvers.
3. Comments are replayed oldest first. /remove-lgtm and /lgtm cancel remove
   the commenter and /lgtm adds them, except that reviewers with an
   effective APPROVED review are left alone (reviews are authoritative).
   The PR author's /lgtm only counts in debug mode, and a /lgtm older than
   the commenter's latest CHANGES_REQUESTED or DISMISSED review is stale.
4. Each approver's permission is resolved; only those holding a required
   permission count as valid votes.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from prbot.commands.parser import normalize_comment
from prbot.integrations.base import PlatformClient
from prbot.models.platform import Comment, Review, ReviewState
from prbot.utils.helpers import parse_timestamp

logger = logging.getLogger(__name__)

# Matched in this order: "/lgtm cancel" must win over the bare "/lgtm" prefix
REMOVE_LGTM_RE = re.compile(r"^/remove-lgtm\b", re.MULTILINE)
LGTM_CANCEL_RE = re.compile(r"^/lgtm\s+cancel\b", re.MULTILINE)
LGTM_RE = re.compile(r"^/lgtm\b", re.MULTILINE)

ACTIONABLE_REVIEW_STATES = {
    ReviewState.APPROVED.value,
    ReviewState.CHANGES_REQUESTED.value,
    ReviewState.DISMISSED.value,
}


@dataclass
class LGTMResult:
    """Valid vote count plus every approver's actual permission (lowercase login keys)."""

    valid_votes: int = 0
    users: Dict[str, str] = field(default_factory=dict)


def classify_vote(body: str) -> Optional[str]:
    """Return "remove", "add" or None for a comment body."""
    text = normalize_comment(body)
    if REMOVE_LGTM_RE.search(text) or LGTM_CANCEL_RE.search(text):
        return "remove"
    if LGTM_RE.search(text):
        return "add"
    return None


def effective_reviews(reviews: List[Review], pr_author: str = "") -> Dict[str, Review]:
    """Latest actionable review per reviewer (lowercase login), excluding the PR author."""
    author = pr_author.lower()
    latest: Dict[str, Review] = {}
    for review in reviews:
        login = review.author.lower()
        if not login or login == author:
            continue
        if review.state not in ACTIONABLE_REVIEW_STATES:
            continue
        current = latest.get(login)
        if current is None or parse_timestamp(review.submitted_at) >= parse_timestamp(
            current.submitted_at
        ):
            latest[login] = review
    return latest


def _ignored_comment_index(comments: List[Comment], user: str) -> int:
    """Index of `user`'s latest comment when it is a removal vote, else -1."""
    target = user.lower()
    for index in range(len(comments) - 1, -1, -1):
        if comments[index].author.lower() != target:
            continue
        if classify_vote(comments[index].body) == "remove":
            return index
        return -1
    return -1


def _superseded_by_review(comment: Comment, review: Optional[Review]) -> bool:
    """A /lgtm comment older than a later CHANGES_REQUESTED or DISMISSED review does not count."""
    if review is None or not comment.created_at or not review.submitted_at:
        return False
    return parse_timestamp(review.submitted_at) > parse_timestamp(comment.created_at)


def collect_lgtm_users(
    reviews: List[Review],
    comments: List[Comment],
    pr_author: str,
    debug_mode: bool = False,
    ignore_user_remove: Optional[str] = None,
) -> List[str]:
    """Apply rules 1-3 and return approver logins (lowercase) in first-vote order."""
    effective = effective_reviews(reviews, pr_author)
    approved = {
        login for login, review in effective.items() if review.state == ReviewState.APPROVED.value
    }
    users: Dict[str, None] = {login: None for login in sorted(approved)}
    author = pr_author.lower()

    skip_index = _ignored_comment_index(comments, ignore_user_remove) if ignore_user_remove else -1

    for index, comment in enumerate(comments):
        if index == skip_index:
            continue
        login = comment.author.lower()
        vote = classify_vote(comment.body)
        if vote is None or login in approved:
            continue
        if vote == "remove":
            users.pop(login, None)
            continue
        if login == author and not debug_mode:
            logger.debug(f"Ignoring self /lgtm from PR author {comment.author}")
            continue
        if _superseded_by_review(comment, effective.get(login)):
            continue
        users.setdefault(login, None)
    return list(users)


def get_lgtm_votes(
    client: PlatformClient,
    comments: List[Comment],
    required_permissions: List[str],
    pr_author: str,
    debug_mode: bool = False,
    ignore_user_remove: Optional[str] = None,
) -> Tuple[int, Dict[str, str]]:
    """
    Count valid LGTM votes on the PR.

    Args:
        client: platform client (reviews and permissions are read from it)
        comments: PR comments, oldest first
        required_permissions: permissions that make a vote valid
        pr_author: PR author login
        debug_mode: allow the PR author to vote with /lgtm
        ignore_user_remove: ignore this user's latest /remove-lgtm comment

    Returns:
        (valid_votes, {login: permission})
    """
    reviews = client.get_reviews()
    logins = collect_lgtm_users(
        reviews, comments, pr_author, debug_mode=debug_mode, ignore_user_remove=ignore_user_remove
    )

    result = LGTMResult()
    for login in logins:
        try:
            allowed, permission = client.check_user_permissions(login, required_permissions)
        except Exception as e:
            logger.warning(f"Failed to resolve permission for {login}: {e}")
            allowed, permission = False, "none"
        result.users[login] = permission
        if allowed:
            result.valid_votes += 1

    logger.info(
        f"LGTM votes: {result.valid_votes} valid of {len(result.users)} voters ({', '.join(result.users)})"
    )
    return result.valid_votes, result.users
