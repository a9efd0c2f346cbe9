"""
Cherry-Pick Commands

/cherry-pick <branch> schedules a backport while the PR is open and
performs it once the PR is closed. The built-in __post-merge-cherry-pick
performs every backport requested in the PR comments after a merge.
"""

import logging
from typing import TYPE_CHECKING, List

from prbot.handlers import messages
from prbot.handlers.merge import find_cherry_pick_branches
from prbot.integrations.base import PlatformError
from prbot.integrations.git_cli.cherrypick import GitCherryPicker, cherry_pick_branch_name

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)


def _has_permission(handler: "PRHandler") -> bool:
    sender = handler.comment_sender
    allowed, permission = handler.client.check_user_permissions(
        sender, handler.settings.lgtm_permissions
    )
    if allowed or handler.is_pr_author(sender):
        return True
    handler.post_comment(
        messages.CHERRY_PICK_INSUFFICIENT_PERMISSIONS_TEMPLATE.format(
            user=sender,
            permission=permission,
            required=", ".join(handler.settings.lgtm_permissions),
            author=handler.pr_author,
        )
    )
    return False


def handle_cherry_pick(handler: "PRHandler", args: List[str]) -> None:
    if not args:
        handler.post_comment(messages.CHERRY_PICK_INVALID)
        return
    target_branch = args[0]

    if not _has_permission(handler):
        return

    pr = handler.client.get_pr()
    if pr.state == "open":
        handler.post_comment(messages.CHERRY_PICK_SCHEDULED_TEMPLATE.format(branch=target_branch))
    elif pr.state == "closed":
        perform_cherry_pick(handler, target_branch)
    else:
        handler.post_comment(
            messages.CHERRY_PICK_CLOSED_PR_TEMPLATE.format(number=handler.pr_number, state=pr.state)
        )


def perform_cherry_pick(handler: "PRHandler", target_branch: str) -> None:
    """
    Backport the PR's commits onto `target_branch` and open a PR for them.
    Outcomes are reported as comments; nothing is raised.
    """
    client = handler.client
    settings = handler.settings
    sender = handler.comment_sender

    def report_error(error: Exception) -> None:
        logger.error(f"Cherry-pick of PR #{handler.pr_number} to {target_branch} failed: {error}")
        handler.post_comment(
            messages.CHERRY_PICK_ERROR_TEMPLATE.format(
                number=handler.pr_number, branch=target_branch, user=sender, error=error
            )
        )

    try:
        pr = client.get_pr()
        commits = client.get_commits()
        if not commits:
            raise PlatformError(f"PR #{handler.pr_number} has no commits")
    except Exception as e:
        report_error(e)
        return

    try:
        if not client.branch_exists(target_branch):
            handler.post_comment(
                messages.CHERRY_PICK_BRANCH_NOT_FOUND_TEMPLATE.format(branch=target_branch)
            )
            return
    except Exception as e:
        logger.warning(f"Could not verify branch {target_branch} exists, continuing: {e}")

    latest_sha = commits[-1].sha
    try:
        if settings.use_git_cli_for_cherrypick:
            picker = GitCherryPicker(settings)
            branch = picker.cherry_pick_commits(commits, target_branch)
        else:
            branch = cherry_pick_branch_name(handler.pr_number, latest_sha, target_branch)
            client.create_branch(branch, target_branch)
            for commit in commits:
                latest_sha = client.cherry_pick_commit(commit.sha, branch)

        new_pr = client.create_pr(
            title=messages.CHERRY_PICK_PR_TITLE_TEMPLATE.format(title=pr.title),
            body=messages.CHERRY_PICK_PR_BODY_TEMPLATE.format(
                number=handler.pr_number, branch=target_branch, user=sender
            ),
            head=branch,
            base=target_branch,
        )
    except Exception as e:
        report_error(e)
        return

    logger.info(f"Created cherry-pick PR #{new_pr.number} for {target_branch}")
    handler.post_comment(
        messages.CHERRY_PICK_SUCCESS_TEMPLATE.format(
            number=handler.pr_number,
            branch=target_branch,
            new_number=new_pr.number,
            user=sender,
            sha=latest_sha[:7],
        )
    )


def handle_post_merge_cherry_pick(handler: "PRHandler", args: List[str]) -> None:
    pr = handler.client.get_pr()
    if pr.state == "open":
        logger.info(f"PR #{handler.pr_number} is still open, skipping post-merge cherry-picks")
        return

    branches = find_cherry_pick_branches(handler.get_comments_cached())
    if not branches:
        logger.info("No cherry-pick requests found in comments")
        return
    for branch in branches:
        logger.info(f"Performing post-merge cherry-pick to {branch}")
        perform_cherry_pick(handler, branch)
