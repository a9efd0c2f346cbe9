"""
Batch Execution

/batch and /check share one engine: sub-commands are validated, run in
textual order, and summarized in a single comment.
"""

import logging
from typing import TYPE_CHECKING, List, Tuple

from prbot.commands.parser import SubCommand, is_builtin_command, parse_sub_commands
from prbot.handlers import messages
from prbot.handlers.errors import CommandError
from prbot.handlers.review import generate_lgtm_status_message

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)

PROHIBITED_BATCH_COMMANDS = {"batch", "lgtm", "remove-lgtm"}


def is_allowed_in_batch(command: str) -> bool:
    return not is_builtin_command(command) and command not in PROHIBITED_BATCH_COMMANDS


def run_sub_commands(handler: "PRHandler", commands: List[SubCommand]) -> Tuple[List[str], bool]:
    """
    Execute sub-commands in order.

    Returns:
        (result lines, whether any failed)
    """
    lines: List[str] = []
    failed = False
    for sub in commands:
        display = sub.display()
        if not is_allowed_in_batch(sub.command):
            lines.append(messages.COMMAND_NOT_ALLOWED_LINE.format(command=display))
            failed = True
            continue
        try:
            handler.execute_command(sub.command, sub.args)
            lines.append(messages.COMMAND_SUCCESS_LINE.format(command=display))
        except Exception as e:
            logger.warning(f"Sub-command {display} failed: {e}")
            lines.append(messages.COMMAND_FAILED_LINE.format(command=display, error=e))
            failed = True
    return lines, failed


def _run_and_summarize(handler: "PRHandler", header: str, commands: List[SubCommand]) -> None:
    lines, failed = run_sub_commands(handler, commands)
    handler.post_comment(messages.summarize_results(header, lines, failed))


def handle_batch(handler: "PRHandler", args: List[str]) -> None:
    commands = parse_sub_commands(args)
    if not commands:
        raise CommandError("no valid commands provided for batch execution")
    _run_and_summarize(handler, messages.BATCH_HEADER, commands)


def handle_check(handler: "PRHandler", args: List[str]) -> None:
    commands = parse_sub_commands(args)
    if not commands:
        votes, users = handler.get_lgtm_votes()
        handler.post_comment(generate_lgtm_status_message(handler, votes, users, include_tip=True))
        return
    _run_and_summarize(handler, messages.CHECK_HEADER, commands)
