"""
Merge Gate

/merge (and its alias /ready) runs a fixed sequence of gates:

    permission -> checks -> LGTM -> method selection -> [single-commit rule
    for rebase] -> merge -> post-merge bookkeeping

Every gate that refuses posts its own comment and raises CommentedError.
"""

import logging
import os
import re
from typing import TYPE_CHECKING, Dict, List, Optional

from prbot.commands.parser import normalize_comment
from prbot.config import MERGE_METHODS
from prbot.handlers import messages
from prbot.handlers.errors import CommandError, CommentedError
from prbot.integrations.base import PlatformClient
from prbot.models.platform import Comment

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)

AUTO_METHOD_PRIORITY = ("rebase", "squash", "merge")
DEFAULT_FALLBACK_METHOD = "squash"

CHERRY_PICK_COMMENT_RE = re.compile(r"^/cherry-?pick\s+(\S+)", re.MULTILINE)

RESULT_HAS_CHERRY_PICK = "has-cherry-pick-comments"
RESULT_MERGE_SUCCESSFUL = "merge-successful"


def _refuse(handler: "PRHandler", body: str, reason: str) -> CommentedError:
    handler.post_comment(body)
    return CommentedError(CommandError(reason))


def choose_merge_method(args: List[str], configured: str, client: PlatformClient) -> str:
    """
    Pick the merge method: a valid first argument overrides the configured
    default; "auto" takes the first available of rebase, squash, merge.
    """
    method = configured
    if args and args[0].lower() in MERGE_METHODS:
        method = args[0].lower()
    if method != "auto":
        return method

    try:
        available = client.get_available_merge_methods()
    except Exception as e:
        logger.warning(f"Failed to get available merge methods: {e}")
        available = []
    for candidate in AUTO_METHOD_PRIORITY:
        if candidate in available:
            return candidate
    return available[0] if available else DEFAULT_FALLBACK_METHOD


def find_cherry_pick_branches(comments: List[Comment]) -> List[str]:
    """Target branches of every /cherry-pick or /cherrypick comment, first occurrence order."""
    branches: List[str] = []
    for comment in comments:
        for branch in CHERRY_PICK_COMMENT_RE.findall(normalize_comment(comment.body)):
            if branch not in branches:
                branches.append(branch)
    return branches


def write_results(results_dir: Optional[str], results: Dict[str, str]) -> None:
    """Write one file per result into `results_dir`, if that directory exists."""
    if not results_dir or not os.path.isdir(results_dir):
        logger.debug(f"Results directory {results_dir!r} does not exist, skipping result files")
        return
    for name, value in results.items():
        path = os.path.join(results_dir, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(value)
        os.chmod(path, 0o644)
        logger.info(f"Wrote result {name}={value}")


def _check_permission(handler: "PRHandler") -> None:
    sender = handler.comment_sender
    required = handler.settings.lgtm_permissions
    try:
        allowed, permission = handler.client.check_user_permissions(sender, required)
    except Exception as e:
        if not handler.is_pr_author(sender):
            raise
        logger.warning(f"Permission lookup for {sender} failed, allowing as PR author: {e}")
        allowed, permission = False, "unknown"

    if allowed or handler.is_pr_author(sender):
        return
    raise _refuse(
        handler,
        messages.MERGE_INSUFFICIENT_PERMISSIONS_TEMPLATE.format(
            user=sender,
            permission=permission,
            required=", ".join(required),
            author=handler.pr_author,
        ),
        f"user {sender} does not have permission to merge",
    )


def _check_ci(handler: "PRHandler") -> None:
    all_passed, failed = handler.client.check_runs_status()
    if all_passed:
        return
    raise _refuse(
        handler,
        messages.MERGE_CHECKS_NOT_PASSING_TEMPLATE.format(
            table=messages.build_check_status_table(failed)
        ),
        f"{len(failed)} check(s) are not passing",
    )


def _validate_rebase(handler: "PRHandler") -> None:
    try:
        commits = handler.client.get_commits()
    except Exception as e:
        logger.warning(f"Failed to get commits for rebase validation, continuing with merge: {e}")
        return
    if len(commits) <= 1:
        return
    raise _refuse(
        handler,
        messages.MERGE_REBASE_MULTIPLE_COMMITS_TEMPLATE.format(
            count=len(commits), table=messages.build_commits_table(commits)
        ),
        f"rebase merge requires a single commit, PR has {len(commits)} commits",
    )


def handle_merge(handler: "PRHandler", args: List[str]) -> None:
    settings = handler.settings
    threshold = settings.lgtm_threshold

    _check_permission(handler)
    _check_ci(handler)

    comments = handler.get_comments_cached()
    votes, users = handler.get_lgtm_votes()
    if votes < threshold:
        raise _refuse(
            handler,
            messages.MERGE_NOT_ENOUGH_LGTM_TEMPLATE.format(
                votes=votes, threshold=threshold, needed=threshold - votes
            ),
            f"not enough LGTM approvals ({votes}/{threshold})",
        )

    method = choose_merge_method(args, settings.merge_method, handler.client)
    logger.info(f"Merging PR #{handler.pr_number} with method {method}")
    if method == "rebase":
        _validate_rebase(handler)

    try:
        handler.client.merge_pr(method)
    except Exception as e:
        handler.post_comment(
            messages.MERGE_FAILED_TEMPLATE.format(number=handler.pr_number, error=e)
        )
        raise CommentedError(e) from e

    branches = find_cherry_pick_branches(comments)
    write_results(
        settings.results_dir,
        {
            RESULT_HAS_CHERRY_PICK: "true" if branches else "false",
            RESULT_MERGE_SUCCESSFUL: "true",
        },
    )
    if branches:
        logger.info(f"Cherry-picks scheduled after merge: {', '.join(branches)}")

    handler.post_comment(
        messages.MERGE_SUCCESS_TEMPLATE.format(
            method=method,
            user=handler.comment_sender,
            votes=votes,
            threshold=threshold,
            table=messages.build_users_table(
                users, settings.lgtm_permissions, settings.robot_accounts
            ),
        )
    )
