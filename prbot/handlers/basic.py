"""
Basic Commands

/help, /close, /rebase, /label and /unlabel.
"""

import logging
from typing import TYPE_CHECKING, List

from prbot.handlers import messages
from prbot.handlers.errors import CommandError, CommentedError

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)


def handle_help(handler: "PRHandler", args: List[str]) -> None:
    settings = handler.settings
    handler.post_comment(
        messages.help_message(settings.lgtm_threshold, settings.lgtm_permissions, settings.merge_method)
    )


def handle_close(handler: "PRHandler", args: List[str]) -> None:
    pr = handler.client.get_pr()
    if pr.state == "closed":
        handler.post_comment(messages.CLOSE_ALREADY_CLOSED_TEMPLATE.format(number=handler.pr_number))
        return
    handler.client.close_pr()
    handler.post_comment(
        messages.CLOSE_SUCCESS_TEMPLATE.format(number=handler.pr_number, user=handler.comment_sender)
    )


def handle_rebase(handler: "PRHandler", args: List[str]) -> None:
    try:
        handler.client.rebase_pr()
    except Exception as e:
        handler.post_comment(messages.REBASE_FAILED_TEMPLATE.format(error=e))
        raise CommentedError(e) from e
    handler.post_comment(messages.REBASE_SUCCESS)


def _labels_from_args(args: List[str]) -> List[str]:
    labels = [a.strip() for a in args if a.strip()]
    if not labels:
        raise CommandError("no labels specified")
    return labels


def handle_label(handler: "PRHandler", args: List[str]) -> None:
    labels = _labels_from_args(args)
    handler.client.add_labels(labels)
    handler.post_comment(
        messages.LABELS_ADDED_TEMPLATE.format(labels=", ".join(labels), user=handler.comment_sender)
    )


def handle_unlabel(handler: "PRHandler", args: List[str]) -> None:
    labels = _labels_from_args(args)
    handler.client.remove_labels(labels)
    handler.post_comment(
        messages.LABELS_REMOVED_TEMPLATE.format(labels=", ".join(labels), user=handler.comment_sender)
    )
