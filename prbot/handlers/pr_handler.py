"""
PR Handler

Per-PR execution context shared by all command handlers: the platform
client, a settings snapshot, the PR author, and a comment cache that is
filled at most once per command execution.
"""

import logging
from typing import Dict, List, Optional, Tuple

from prbot.commands.parser import is_builtin_command
from prbot.config import Settings
from prbot.handlers.errors import CommandError, UnknownCommandError
from prbot.handlers.messages import BUILTIN_NOT_ALLOWED
from prbot.handlers.registry import BUILTIN_COMMANDS, COMMANDS
from prbot.integrations.base import PlatformClient
from prbot.models.platform import Comment, PullRequest
from prbot.services.lgtm import get_lgtm_votes

logger = logging.getLogger(__name__)


class PRHandler:
    """Executes slash commands against one pull request."""

    def __init__(
        self,
        client: PlatformClient,
        settings: Settings,
        pr: Optional[PullRequest] = None,
    ):
        self.client = client
        self.settings = settings
        self.pr = pr or client.get_pr()
        self.pr_author = self.pr.author or settings.pr_sender
        self.comment_sender = settings.comment_sender
        self._comments: Optional[List[Comment]] = None

    @property
    def pr_number(self) -> int:
        return self.pr.number

    # Comments

    def get_comments_cached(self) -> List[Comment]:
        if self._comments is None:
            self._comments = self.client.get_comments()
            logger.debug(f"Cached {len(self._comments)} comments for PR #{self.pr_number}")
        return self._comments

    def post_comment(self, body: str) -> None:
        self.client.post_comment(body)

    # Shared queries

    def get_lgtm_votes(self, ignore_user_remove: Optional[str] = None) -> Tuple[int, Dict[str, str]]:
        return get_lgtm_votes(
            self.client,
            self.get_comments_cached(),
            self.settings.lgtm_permissions,
            self.pr_author,
            debug_mode=self.settings.debug,
            ignore_user_remove=ignore_user_remove,
        )

    def is_pr_author(self, user: str) -> bool:
        return bool(user) and user.lower() == (self.pr_author or "").lower()

    # Dispatch

    def execute_command(self, command: str, args: List[str]) -> None:
        """Run a user-facing command."""
        if is_builtin_command(command):
            raise CommandError(BUILTIN_NOT_ALLOWED.format(command=command))
        handler = COMMANDS.get(command)
        if handler is None:
            raise UnknownCommandError(command)
        logger.info(f"Executing /{command} {' '.join(args)} on PR #{self.pr_number} for {self.comment_sender}")
        handler(self, args)

    def execute_builtin_command(self, command: str, args: List[str]) -> None:
        """Run an internal "__" command."""
        logger.info(f"Executing built-in {command} on PR #{self.pr_number}")
        handler = BUILTIN_COMMANDS.get(command)
        if handler is None:
            raise UnknownCommandError(command, builtin=True)
        handler(self, args)
