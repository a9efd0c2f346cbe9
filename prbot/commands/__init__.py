"""
Slash command parsing
"""

from prbot.commands.parser import (
    BuiltInCommand,
    CommandParseError,
    MultiCommand,
    ParsedCommand,
    ParseErrorKind,
    SingleCommand,
    SubCommand,
    is_builtin_command,
    is_command,
    normalize_comment,
    parse_comment,
    parse_sub_commands,
)

__all__ = [
    "BuiltInCommand",
    "CommandParseError",
    "MultiCommand",
    "ParsedCommand",
    "ParseErrorKind",
    "SingleCommand",
    "SubCommand",
    "is_builtin_command",
    "is_command",
    "normalize_comment",
    "parse_comment",
    "parse_sub_commands",
]
