"""
Handler errors
"""

from typing import Optional


class CommandError(Exception):
    """A command failed."""


class CommentedError(CommandError):
    """
    A command failed after already posting a user-visible comment.

    Callers must not post another comment for it. The original error is
    available as `.cause` (and as `__cause__` when raised with `from`).
    """

    def __init__(self, cause: Optional[BaseException] = None, message: str = ""):
        self.cause = cause
        super().__init__(message or (str(cause) if cause else "command failed"))


class UnknownCommandError(CommandError):
    def __init__(self, command: str, builtin: bool = False):
        self.command = command
        kind = "built-in command" if builtin else "command"
        super().__init__(f"unknown {kind}: {command}")


def is_commented(error: BaseException) -> bool:
    """True when `error` or anything in its cause chain is a CommentedError."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        if isinstance(current, CommentedError):
            return True
        seen.add(id(current))
        current = current.__cause__
    return False
