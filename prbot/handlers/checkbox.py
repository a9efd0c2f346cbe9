"""
Checkbox Commands

/checkbox checks every unchecked task-list box in the PR description.
/checkbox-issue does the same for an issue, by number or found by title
and author (defaulting to the Renovate dependency dashboard).
"""

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple

from prbot.handlers import messages
from prbot.handlers.errors import CommandError, CommentedError
from prbot.models.platform import FindIssueOptions, Issue

if TYPE_CHECKING:
    from prbot.handlers.pr_handler import PRHandler

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_TITLE = "Dependency Dashboard"
DEFAULT_ISSUE_AUTHOR = "alaudaa-renovate[bot]"

# "- [ ] item", "* [ ] item" and "+ [ ] item", at any indentation
UNCHECKED_BOX_RE = re.compile(r"^(\s*[-*+]\s+)\[ \]", re.MULTILINE)


def has_unchecked_checkbox(body: str) -> bool:
    return bool(UNCHECKED_BOX_RE.search(body or ""))


def toggle_unchecked_checkboxes(body: str) -> Tuple[str, int]:
    """Check every unchecked box; returns the new body and how many were toggled."""
    return UNCHECKED_BOX_RE.subn(r"\1[x]", body or "")


class CheckboxArgumentError(ValueError):
    def __init__(self, template: str, **fields):
        self.template = template
        self.fields = fields
        super().__init__(template.format(**fields))


@dataclass
class CheckboxIssueOptions:
    number: Optional[int] = None
    title: str = DEFAULT_ISSUE_TITLE
    author: str = DEFAULT_ISSUE_AUTHOR


def _trim_quotes(value: str) -> str:
    return value.strip().strip("\"'")


def parse_checkbox_issue_args(args: List[str]) -> CheckboxIssueOptions:
    """
    Parse `[number] [--title T|-t T|--title=T] [--author A|-a A|--author=A]`.

    Raises:
        CheckboxArgumentError: unknown option, missing option value, a second
            number, or a non-numeric positional argument
    """
    opts = CheckboxIssueOptions()
    i = 0
    while i < len(args):
        token = args[i].strip()
        lower = token.lower()
        i += 1
        if not token:
            continue

        if lower in ("--title", "-t", "--author", "-a"):
            option = "--title" if lower in ("--title", "-t") else "--author"
            if i >= len(args):
                raise CheckboxArgumentError(messages.CHECKBOX_INVALID_OPTION_TEMPLATE, option=option)
            setattr(opts, option[2:], _trim_quotes(args[i]))
            i += 1
        elif lower.startswith("--title="):
            opts.title = _trim_quotes(token[len("--title="):])
        elif lower.startswith("--author="):
            opts.author = _trim_quotes(token[len("--author="):])
        elif token.startswith("-"):
            raise CheckboxArgumentError(messages.CHECKBOX_INVALID_OPTION_TEMPLATE, option=token)
        elif opts.number is not None:
            raise CheckboxArgumentError(messages.CHECKBOX_INVALID_OPTION_TEMPLATE, option=token)
        else:
            try:
                opts.number = int(token)
            except ValueError:
                raise CheckboxArgumentError(messages.CHECKBOX_INVALID_NUMBER_TEMPLATE, value=token)
    return opts


def _fail(handler: "PRHandler", message: str) -> CommentedError:
    handler.post_comment(message)
    return CommentedError(CommandError(f"checkbox command failed: {message}"))


def _issue_label(issue: Issue) -> str:
    ref = f"issue #{issue.number}"
    if issue.title:
        ref = f'{ref} "{issue.title}"'
    return f"[{ref}]({issue.url})" if issue.url else ref


def handle_checkbox(handler: "PRHandler", args: List[str]) -> None:
    try:
        pr = handler.client.get_pr()
    except Exception as e:
        logger.warning(f"Failed to fetch PR before checkbox update: {e}")
        pr = None

    if pr is None or not pr.body.strip():
        raise _fail(
            handler,
            messages.CHECKBOX_DESCRIPTION_NOT_FOUND_TEMPLATE.format(target="the pull request"),
        )

    label = f"[the pull request description]({pr.url})" if pr.url else "the pull request description"
    body, toggled = toggle_unchecked_checkboxes(pr.body)
    if toggled == 0:
        raise _fail(handler, messages.CHECKBOX_ALREADY_CHECKED_TEMPLATE.format(target=label))

    handler.client.update_pr_body(body)
    handler.post_comment(
        messages.CHECKBOX_UPDATE_SUCCESS_TEMPLATE.format(user=handler.comment_sender, target=label)
    )
    logger.info(f"Checked {toggled} checkbox(es) in PR #{handler.pr_number} description")


def handle_checkbox_issue(handler: "PRHandler", args: List[str]) -> None:
    try:
        opts = parse_checkbox_issue_args(args)
    except CheckboxArgumentError as e:
        raise _fail(handler, str(e))

    try:
        if opts.number is not None:
            issue = handler.client.get_issue(opts.number)
        else:
            issue = handler.client.find_issue(
                FindIssueOptions(title=opts.title, author=opts.author, state="open", sort="created", order="asc")
            )
    except Exception as e:
        logger.warning(f"Failed to locate issue for checkbox update: {e}")
        if opts.number is not None:
            detail = f"Could not find issue #{opts.number}."
        else:
            detail = f'Could not find an open issue titled "{opts.title}" by @{opts.author}.'
        raise _fail(handler, messages.CHECKBOX_ISSUE_NOT_FOUND_TEMPLATE.format(detail=detail))

    label = _issue_label(issue)
    if not issue.body.strip():
        raise _fail(handler, messages.CHECKBOX_DESCRIPTION_NOT_FOUND_TEMPLATE.format(target=label))

    body, toggled = toggle_unchecked_checkboxes(issue.body)
    if toggled == 0:
        raise _fail(handler, messages.CHECKBOX_ALREADY_CHECKED_TEMPLATE.format(target=label))

    handler.client.update_issue_body(issue.number, body)
    handler.post_comment(
        messages.CHECKBOX_UPDATE_SUCCESS_TEMPLATE.format(user=handler.comment_sender, target=label)
    )
    logger.info(f"Checked {toggled} checkbox(es) in issue #{issue.number}")
