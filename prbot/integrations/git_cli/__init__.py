"""
Git CLI Integration Module
"""

from prbot.integrations.git_cli.cherrypick import (
    GitCherryPicker,
    GitCommandError,
    cherry_pick_branch_name,
)

__all__ = ["GitCherryPicker", "GitCommandError", "cherry_pick_branch_name"]
