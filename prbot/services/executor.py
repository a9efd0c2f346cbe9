"""
Command Executor

Runs a parsed trigger comment against a PRHandler with mode-specific
validation and error reporting. The CLI and the webhook workers share this
path and differ only in their ExecutionConfig.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from prbot.commands.parser import (
    BuiltInCommand,
    CommandParseError,
    MultiCommand,
    ParsedCommand,
    ParseErrorKind,
    SingleCommand,
    SubCommand,
    is_builtin_command,
    normalize_comment,
    parse_comment,
)
from prbot.handlers import messages
from prbot.handlers.errors import CommandError, is_commented
from prbot.handlers.pr_handler import PRHandler
from prbot.webhook import metrics

logger = logging.getLogger(__name__)

# Commands that act on merged or closed PRs
PR_STATUS_EXEMPT_COMMANDS = {"cherry-pick", "cherrypick"}


@dataclass
class ExecutionConfig:
    validate_comment_sender: bool = False
    validate_pr_status: bool = True
    post_errors: bool = True
    return_errors: bool = True
    stop_on_first_error: bool = False
    allow_builtin: bool = True
    post_unknown_commands: bool = True
    record_metrics: bool = False

    @classmethod
    def cli(cls) -> "ExecutionConfig":
        return cls()

    @classmethod
    def webhook(cls) -> "ExecutionConfig":
        # Unknown commands are usually meant for another bot ("/test e2e")
        return cls(
            validate_comment_sender=True,
            return_errors=False,
            allow_builtin=False,
            post_unknown_commands=False,
            record_metrics=True,
        )


@dataclass
class SubCommandResult:
    command: SubCommand
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ExecutionResult:
    kind: str
    error: Optional[BaseException] = None
    sub_results: List[SubCommandResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and all(r.success for r in self.sub_results)


class Validator:
    """Pre-execution checks: PR state and trigger comment authorship."""

    def __init__(self, handler: PRHandler, config: ExecutionConfig):
        self.handler = handler
        self.config = config

    @staticmethod
    def skips_pr_status_check(command: str) -> bool:
        return command in PR_STATUS_EXEMPT_COMMANDS or is_builtin_command(command)

    def _check_pr_open(self) -> None:
        try:
            self.handler.client.check_pr_status("open")
        except Exception as e:
            raise CommandError(f"PR status check failed: {e}") from e

    def _sender_comments(self) -> List[str]:
        try:
            comments = self.handler.get_comments_cached()
        except Exception as e:
            raise CommandError(f"comment sender validation failed: failed to get PR comments: {e}") from e
        sender = (self.handler.comment_sender or "").lower()
        return [normalize_comment(c.body) for c in comments if c.author.lower() == sender]

    def validate_single(self, command: str) -> None:
        if self.config.validate_pr_status and not self.skips_pr_status_check(command):
            self._check_pr_open()
        if self.config.validate_comment_sender:
            self._validate_sender()

    def validate_multi(self, commands: List[SubCommand], raw_lines: List[str]) -> None:
        needs_pr_check = any(not self.skips_pr_status_check(c.command) for c in commands)
        if self.config.validate_pr_status and needs_pr_check:
            self._check_pr_open()
        if self.config.validate_comment_sender:
            self._validate_sender_multi(raw_lines)

    def _validate_sender(self) -> None:
        sender = self.handler.comment_sender
        trigger = normalize_comment(self.handler.settings.trigger_comment)
        for body in self._sender_comments():
            if body == trigger or trigger in body:
                logger.info(f"Comment sender validation passed: {sender} posted the trigger")
                return
        raise CommandError(
            f"comment sender validation failed: comment sender '{sender}' "
            f"did not post a comment containing the trigger"
        )

    def _validate_sender_multi(self, raw_lines: List[str]) -> None:
        if not raw_lines:
            return
        sender = self.handler.comment_sender
        bodies = self._sender_comments()
        if not bodies:
            raise CommandError(
                f"comment sender validation failed: comment sender '{sender}' did not post any comment"
            )
        missing = [
            line for line in raw_lines
            if not any(normalize_comment(line) in body for body in bodies)
        ]
        if missing:
            raise CommandError(
                f"comment sender validation failed: comment sender '{sender}' "
                f"did not post commands: {', '.join(missing)}"
            )
        logger.info(f"Multi-command validation passed for sender: {sender}")


class CommandExecutor:
    """Validates, executes and reports one trigger comment."""

    def __init__(self, handler: PRHandler, config: ExecutionConfig):
        self.handler = handler
        self.config = config
        self.validator = Validator(handler, config)
        self.platform = handler.settings.platform

    def execute_comment(self, body: str) -> ExecutionResult:
        """Parse and execute a comment body."""
        try:
            parsed = parse_comment(body)
        except CommandParseError as e:
            return self._parse_failure(e)
        return self.execute(parsed)

    def execute(self, parsed: ParsedCommand) -> ExecutionResult:
        if isinstance(parsed, MultiCommand):
            return self.execute_multi(parsed)
        if isinstance(parsed, BuiltInCommand):
            return self.execute_builtin(parsed)
        return self.execute_single(parsed)

    def execute_single(self, parsed: SingleCommand) -> ExecutionResult:
        started = time.monotonic()
        command = parsed.command
        logger.info(f"Executing single command: {command}")

        try:
            self.validator.validate_single(command)
        except CommandError as e:
            self._record(command, "error", started)
            return self._finish(ExecutionResult("single", error=e))

        try:
            self.handler.execute_command(command, parsed.args)
        except Exception as e:
            self._record(command, "error", started)
            self._report_error(command, e)
            return self._finish(ExecutionResult("single", error=e))

        self._record(command, "success", started)
        return ExecutionResult("single")

    def execute_builtin(self, parsed: BuiltInCommand) -> ExecutionResult:
        started = time.monotonic()
        command = parsed.command
        if not self.config.allow_builtin:
            error = CommandError(messages.BUILTIN_NOT_ALLOWED.format(command=command))
            logger.warning(f"Refusing built-in command {command}: {error}")
            return self._finish(ExecutionResult("builtin", error=error))

        logger.info(f"Executing built-in command: {command}")
        try:
            self.handler.execute_builtin_command(command, parsed.args)
        except Exception as e:
            self._record(command, "error", started)
            logger.error(f"Built-in command {command} failed: {e}")
            return self._finish(ExecutionResult("builtin", error=e))

        self._record(command, "success", started)
        return ExecutionResult("builtin")

    def execute_multi(self, parsed: MultiCommand) -> ExecutionResult:
        started = time.monotonic()
        logger.info(f"Executing multi-command with {len(parsed.commands)} commands")

        try:
            self.validator.validate_multi(parsed.commands, parsed.raw_lines)
        except CommandError as e:
            self._record("multi", "error", started)
            return self._finish(ExecutionResult("multi", error=e))

        results: List[SubCommandResult] = []
        for sub in parsed.commands:
            result = self._run_sub_command(sub)
            results.append(result)
            if not result.success and self.config.stop_on_first_error:
                logger.info(f"Stopping multi-command execution due to error in: {sub.command}")
                break

        failed = any(not r.success for r in results)
        if self.config.post_errors:
            lines = [
                messages.COMMAND_SUCCESS_LINE.format(command=r.command.display())
                if r.success
                else messages.COMMAND_FAILED_LINE.format(command=r.command.display(), error=r.error)
                for r in results
            ]
            try:
                self.handler.post_comment(
                    messages.summarize_results(messages.MULTI_COMMAND_HEADER, lines, failed)
                )
            except Exception as e:
                logger.error(f"Failed to post multi-command summary: {e}")

        self._record("multi", "partial_error" if failed else "success", started)
        return ExecutionResult("multi", sub_results=results)

    def _run_sub_command(self, sub: SubCommand) -> SubCommandResult:
        logger.info(f"Executing sub-command: {sub.display()}")
        try:
            if is_builtin_command(sub.command):
                raise CommandError(messages.BUILTIN_NOT_ALLOWED.format(command=sub.command))
            self.handler.execute_command(sub.command, sub.args)
        except Exception as e:
            logger.error(f"Sub-command '{sub.command}' failed: {e}")
            if self.config.record_metrics:
                metrics.record_command_execution(self.platform, sub.command, "error")
            return SubCommandResult(sub, error=e)
        if self.config.record_metrics:
            metrics.record_command_execution(self.platform, sub.command, "success")
        return SubCommandResult(sub)

    def _parse_failure(self, error: CommandParseError) -> ExecutionResult:
        if error.kind in (ParseErrorKind.EMPTY, ParseErrorKind.NOT_COMMAND):
            logger.info(f"Ignoring comment: {error}")
            return ExecutionResult("none")

        if error.kind == ParseErrorKind.UNKNOWN_COMMAND:
            command = error.command or "unknown"
            if self.config.record_metrics:
                metrics.record_command_execution(self.platform, "unknown", "error")
            if not self.config.post_unknown_commands:
                logger.info(f"Ignoring unknown command: {command}")
                return ExecutionResult("single", error=error)
            self._report_error(command, error)
        else:
            self._report_error(error.command or "parse", error)
        return self._finish(ExecutionResult("single", error=error))

    def _report_error(self, command: str, error: BaseException) -> None:
        if is_commented(error):
            logger.info(f"Error comment already posted for command: {command}")
            return
        if not self.config.post_errors:
            return
        try:
            self.handler.post_comment(messages.command_error(command, error))
            logger.info(f"Posted command error as PR comment for command: {command}")
        except Exception as e:
            logger.error(f"Failed to post error comment: {e}")

    def _finish(self, result: ExecutionResult) -> ExecutionResult:
        if result.error is not None and self.config.return_errors:
            raise result.error
        if result.error is not None:
            logger.error(f"Command {result.kind} failed: {result.error}")
        return result

    def _record(self, command: str, status: str, started: float) -> None:
        if not self.config.record_metrics:
            return
        metrics.record_command_execution(self.platform, command, status)
        metrics.record_processing_duration(self.platform, command, time.monotonic() - started)
