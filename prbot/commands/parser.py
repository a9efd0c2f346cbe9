"""
Command Parser

Turns a PR comment body into one of three parsed forms:

- SingleCommand: one slash command ("/merge squash")
- MultiCommand: two or more command lines in one comment
- BuiltInCommand: "/__name" commands reserved for internal pathways
"""

import re
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

KNOWN_COMMANDS = (
    "help",
    "rebase",
    "lgtm",
    "remove-lgtm",
    "cherry-pick",
    "cherrypick",
    "assign",
    "merge",
    "ready",
    "unassign",
    "label",
    "unlabel",
    "check",
    "retest",
    "close",
    "batch",
    "checkbox",
    "checkbox-issue",
)

COMMAND_ALIASES = {
    "ready": "merge",
    "cherrypick": "cherry-pick",
}

BUILTIN_PREFIX = "__"

_BUILTIN_RE = re.compile(r"^/(__[a-z_-]+)\s*(.*)$", re.DOTALL)
_COMMAND_RE = re.compile(
    r"^/(" + "|".join(re.escape(c) for c in sorted(KNOWN_COMMANDS, key=len, reverse=True)) + r")($|\s.*)",
    re.DOTALL,
)
_GENERIC_RE = re.compile(r"^/(\S+)")
_LGTM_CANCEL_RE = re.compile(r"^/lgtm\s+cancel\b")
_LINE_SPLIT_RE = re.compile(r"\r\n|\n|\r")
_TRAILING_ESCAPES = ("\\n", "\\r")


class ParseErrorKind(str, Enum):
    EMPTY = "empty"
    NOT_COMMAND = "not_command"
    UNKNOWN_COMMAND = "unknown_command"
    INVALID_ARGS = "invalid_args"


class CommandParseError(ValueError):
    """A comment could not be parsed into a command."""

    def __init__(self, kind: ParseErrorKind, message: str, command: str = ""):
        super().__init__(message)
        self.kind = kind
        self.command = command


@dataclass
class SubCommand:
    command: str
    args: List[str] = field(default_factory=list)

    def display(self) -> str:
        """Render as it would be typed: "/cmd arg1 arg2"."""
        if self.args:
            return f"/{self.command} {' '.join(self.args)}"
        return f"/{self.command}"


@dataclass
class SingleCommand:
    command: str
    args: List[str] = field(default_factory=list)


@dataclass
class BuiltInCommand:
    command: str
    args: List[str] = field(default_factory=list)


@dataclass
class MultiCommand:
    commands: List[SubCommand]
    # Raw command lines as typed, used to match the trigger comment
    raw_lines: List[str] = field(default_factory=list)


ParsedCommand = Union[SingleCommand, MultiCommand, BuiltInCommand]


def normalize_comment(body: str) -> str:
    """Trim whitespace and trailing literal "\\n"/"\\r" escape sequences."""
    text = (body or "").strip()
    changed = True
    while changed:
        changed = False
        for escape in _TRAILING_ESCAPES:
            if text.endswith(escape):
                text = text[: -len(escape)]
                changed = True
    return text.strip()


def is_command(body: str) -> bool:
    return normalize_comment(body).startswith("/")


def is_builtin_command(command: str) -> bool:
    return command.startswith(BUILTIN_PREFIX)


def canonical_command(command: str) -> str:
    return COMMAND_ALIASES.get(command, command)


def _rewrite_lgtm_cancel(line: str) -> str:
    match = _LGTM_CANCEL_RE.match(line)
    if match:
        return "/remove-lgtm" + line[match.end():]
    return line


def split_args(text: str) -> List[str]:
    """Split arguments shell-style so quoted values stay together."""
    try:
        return shlex.split(text)
    except ValueError as e:
        raise CommandParseError(ParseErrorKind.INVALID_ARGS, f"invalid arguments: {e}") from e


def get_command_lines(body: str) -> List[str]:
    """Trimmed lines that start with '/', in textual order."""
    lines = _LINE_SPLIT_RE.split(normalize_comment(body))
    return [line.strip() for line in lines if line.strip().startswith("/")]


def is_multi_command(body: str) -> bool:
    return is_command(body) and len(get_command_lines(body)) >= 2


def parse_command_line(line: str) -> SubCommand:
    """
    Parse one "/command args..." line.

    Raises:
        CommandParseError: empty, not a command, or unknown command
    """
    line = _rewrite_lgtm_cancel(line.strip())
    if not line:
        raise CommandParseError(ParseErrorKind.EMPTY, "empty comment")
    if not line.startswith("/"):
        raise CommandParseError(ParseErrorKind.NOT_COMMAND, "comment is not a command")

    match = _BUILTIN_RE.match(line)
    if match:
        return SubCommand(command=match.group(1), args=split_args(match.group(2)))

    match = _COMMAND_RE.match(line)
    if not match:
        generic = _GENERIC_RE.match(line)
        name = generic.group(1) if generic else line
        raise CommandParseError(
            ParseErrorKind.UNKNOWN_COMMAND, f"unknown command: {name}", command=name
        )
    return SubCommand(
        command=canonical_command(match.group(1)),
        args=split_args(match.group(2)),
    )


def parse_multi_command_lines(lines: List[str]) -> List[SubCommand]:
    """
    Parse each command line, skipping lines that fail to parse.

    Raises:
        CommandParseError: when no line yields a valid command
    """
    commands = []
    for line in lines:
        try:
            commands.append(parse_command_line(line))
        except CommandParseError:
            continue
    if not commands:
        raise CommandParseError(
            ParseErrorKind.UNKNOWN_COMMAND, "no valid commands found in multi-line comment"
        )
    return commands


def parse_comment(body: str) -> ParsedCommand:
    """
    Parse a comment body.

    Raises:
        CommandParseError: see ParseErrorKind
    """
    text = normalize_comment(body)
    if not text:
        raise CommandParseError(ParseErrorKind.EMPTY, "empty comment")
    if not text.startswith("/"):
        raise CommandParseError(ParseErrorKind.NOT_COMMAND, "comment is not a command")

    lines = get_command_lines(text)
    if len(lines) >= 2:
        return MultiCommand(commands=parse_multi_command_lines(lines), raw_lines=lines)

    first = parse_command_line(lines[0] if lines else text)
    if is_builtin_command(first.command):
        return BuiltInCommand(command=first.command, args=first.args)
    return SingleCommand(command=first.command, args=first.args)


def parse_sub_commands(args: List[str]) -> List[SubCommand]:
    """
    Group batch/check arguments into sub-commands at every '/'-prefixed token:
    ["/assign", "alice", "/merge", "squash"] → [/assign alice, /merge squash].
    Tokens before the first command are ignored.
    """
    commands: List[SubCommand] = []
    current: Optional[SubCommand] = None
    for token in args:
        if token.startswith("/") and len(token) > 1:
            current = SubCommand(command=canonical_command(token[1:]))
            commands.append(current)
        elif current is not None:
            current.args.append(token)
    return commands


def render_sub_commands(commands: List[SubCommand]) -> str:
    """Render sub-commands one per line, quoting arguments that need it."""
    return "\n".join(shlex.join([f"/{c.command}", *c.args]) for c in commands)
