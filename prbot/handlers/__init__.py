"""
Command handlers
"""

from prbot.handlers.errors import CommandError, CommentedError, UnknownCommandError, is_commented
from prbot.handlers.pr_handler import PRHandler
from prbot.handlers.registry import BUILTIN_COMMANDS, COMMANDS

__all__ = [
    "CommandError",
    "CommentedError",
    "UnknownCommandError",
    "is_commented",
    "PRHandler",
    "BUILTIN_COMMANDS",
    "COMMANDS",
]
