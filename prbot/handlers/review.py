"""
Review Commands

/lgtm, /remove-lgtm, /assign and /unassign, plus the LGTM status report
shared with /check and /merge.
"""

import logging
from typing import TYPE_CHECKING, Dict, List

from prbot.handlers import messages
from prbot.handlers.errors import CommandError
from prbot.integrations.base import PlatformError
from prbot.utils.helpers import strip_mention

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)

SELF_APPROVAL_NOTICE = (
    "ℹ️ **Self-approval not allowed**\n\n"
    "@{user}, as the PR author, you cannot approve your own PR.\n\n"
    "However, I can show you the current LGTM status for this PR:\n\n"
)


def generate_lgtm_status_message(
    handler: "PRHandler", votes: int, users: Dict[str, str], include_tip: bool = False
) -> str:
    """LGTM table (ready or pending) followed by the check runs section."""
    settings = handler.settings
    table = messages.build_users_table(users, settings.lgtm_permissions, settings.robot_accounts)

    checks_section = ""
    try:
        all_passed, failed = handler.client.check_runs_status()
        checks_section = messages.build_check_runs_section(all_passed, failed)
    except Exception as e:
        logger.error(f"Failed to get check runs status: {e}")

    if votes >= settings.lgtm_threshold:
        message = messages.LGTM_STATUS_READY_TEMPLATE.format(
            votes=votes, threshold=settings.lgtm_threshold, table=table
        )
    else:
        message = messages.LGTM_STATUS_PENDING_TEMPLATE.format(
            votes=votes,
            threshold=settings.lgtm_threshold,
            needed=settings.lgtm_threshold - votes,
            table=table,
            required=", ".join(settings.lgtm_permissions),
        )
        if include_tip:
            message += messages.LGTM_STATUS_TIP
    return message + checks_section


def handle_lgtm(handler: "PRHandler", args: List[str]) -> None:
    sender = handler.comment_sender
    settings = handler.settings

    allowed, permission = handler.client.check_user_permissions(sender, settings.lgtm_permissions)
    if not allowed:
        handler.post_comment(
            messages.LGTM_PERMISSION_DENIED_TEMPLATE.format(
                user=sender, permission=permission, required=", ".join(settings.lgtm_permissions)
            )
        )
        return

    votes, users = handler.get_lgtm_votes()

    if handler.is_pr_author(sender) and not settings.debug:
        handler.post_comment(
            SELF_APPROVAL_NOTICE.format(user=sender)
            + generate_lgtm_status_message(handler, votes, users, include_tip=True)
        )
        return

    if votes >= settings.lgtm_threshold:
        logger.info(f"LGTM threshold met ({votes}/{settings.lgtm_threshold}), approving PR #{handler.pr_number}")
        handler.client.approve_pr(generate_lgtm_status_message(handler, votes, users))
    else:
        handler.post_comment(generate_lgtm_status_message(handler, votes, users, include_tip=True))


def handle_remove_lgtm(handler: "PRHandler", args: List[str]) -> None:
    """
    Withdraw the sender's vote. The bot's approval review is dismissed only
    when this removal takes the PR from meeting the threshold to below it.
    """
    sender = handler.comment_sender
    settings = handler.settings
    threshold = settings.lgtm_threshold

    allowed, permission = handler.client.check_user_permissions(sender, settings.lgtm_permissions)
    if not allowed:
        handler.post_comment(
            messages.REMOVE_LGTM_PERMISSION_DENIED_TEMPLATE.format(
                user=sender, permission=permission, required=", ".join(settings.lgtm_permissions)
            )
        )
        return

    # Votes as they were before this /remove-lgtm comment
    votes_before, users_before = handler.get_lgtm_votes(ignore_user_remove=sender)
    had_vote = sender.lower() in users_before
    if had_vote and votes_before >= threshold and votes_before - 1 < threshold:
        try:
            handler.client.dismiss_approve(messages.REMOVE_LGTM_DISMISS_MESSAGE.format(user=sender))
        except PlatformError as e:
            if "no approval review found" not in str(e):
                raise
            logger.info(f"No approval review to dismiss: {e}")

    try:
        votes, users = handler.get_lgtm_votes()
    except Exception as e:
        logger.error(f"Failed to refresh LGTM votes: {e}")
        handler.post_comment(
            messages.REMOVE_LGTM_SUCCESS_TEMPLATE.format(user=sender, permission=permission)
        )
        return

    status = messages.REMOVE_LGTM_STATUS_TEMPLATE.format(
        user=sender, votes=votes, threshold=threshold, needed=max(0, threshold - votes)
    )
    handler.post_comment(status + generate_lgtm_status_message(handler, votes, users, include_tip=True))


def _users_from_args(args: List[str]) -> List[str]:
    return [strip_mention(a) for a in args if strip_mention(a)]


def handle_assign(handler: "PRHandler", args: List[str]) -> None:
    users = _users_from_args(args)
    if not users:
        raise CommandError("no users specified for assignment")

    try:
        logger.info(f"Reviewers before assignment: {handler.client.get_requested_reviewers()}")
    except Exception as e:
        logger.warning(f"Failed to list requested reviewers: {e}")

    handler.client.assign_reviewers(users)

    try:
        logger.info(f"Reviewers after assignment: {handler.client.get_requested_reviewers()}")
    except Exception as e:
        logger.warning(f"Failed to list requested reviewers: {e}")

    handler.post_comment(messages.assignment_greeting(users, handler.comment_sender))


def handle_unassign(handler: "PRHandler", args: List[str]) -> None:
    users = _users_from_args(args)
    if not users:
        raise CommandError("no users specified for unassignment")
    handler.client.remove_reviewers(users)
    handler.post_comment(messages.unassignment_message(users))
