"""
Command-line entry point.

Executes one trigger comment against one PR, e.g. from a CI pipeline:

    python -m prbot.cli --platform github --repo-owner org --repo-name repo \\
        --pr-num 42 --comment-sender alice --trigger-comment "/lgtm"

Every flag can also be set through PR_* environment variables
(PR_TOKEN, PR_PR_NUM, PR_LGTM_THRESHOLD, ...), a .env file or pr-cli.yaml.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from prbot.config import VERSION, ConfigurationError, Settings
from prbot.handlers.pr_handler import PRHandler
from prbot.integrations.base import create_client
from prbot.main import configure_logging
from prbot.services.executor import CommandExecutor, ExecutionConfig

logger = logging.getLogger("prbot.cli")

# flag dest -> Settings field
FLAG_FIELDS = {
    "platform": "platform",
    "token": "token",
    "comment_token": "comment_token",
    "base_url": "base_url",
    "repo_owner": "owner",
    "repo_name": "repo",
    "pr_num": "pr_num",
    "comment_sender": "comment_sender",
    "trigger_comment": "trigger_comment",
    "lgtm_threshold": "lgtm_threshold",
    "lgtm_permissions": "lgtm_permissions",
    "lgtm_review_event": "lgtm_review_event",
    "robot_accounts": "robot_accounts",
    "merge_method": "merge_method",
    "self_check_name": "self_check_name",
    "use_git_cli_for_cherrypick": "use_git_cli_for_cherrypick",
    "results_dir": "results_dir",
    "verbose": "verbose",
    "debug": "debug",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prbot",
        description="Execute a PR slash command (/lgtm, /merge, /cherry-pick, ...) on GitHub or GitLab",
    )
    parser.add_argument("--version", "-v", action="version", version=f"prbot {VERSION}")

    platform = parser.add_argument_group("platform")
    platform.add_argument("--platform", help="Git platform (github or gitlab)")
    platform.add_argument("--token", help="API token")
    platform.add_argument("--comment-token", help="API token for posting comments (defaults to --token)")
    platform.add_argument("--base-url", help="API base URL (defaults per platform)")

    target = parser.add_argument_group("pull request")
    target.add_argument("--repo-owner", help="Repository owner (organization or user)")
    target.add_argument("--repo-name", help="Repository name")
    target.add_argument("--pr-num", type=int, help="Pull request number")
    target.add_argument("--comment-sender", help="Username of the comment author")
    target.add_argument("--trigger-comment", help="The comment that triggered this run")

    policy = parser.add_argument_group("policy")
    policy.add_argument("--lgtm-threshold", type=int, help="Minimum number of LGTM votes")
    policy.add_argument("--lgtm-permissions", help="Permissions whose LGTM counts (comma-separated)")
    policy.add_argument("--lgtm-review-event", help="Review event used for approvals")
    policy.add_argument("--robot-accounts", help="Bot accounts whose approvals may be dismissed (comma-separated)")
    policy.add_argument("--merge-method", help="auto, merge, squash or rebase")
    policy.add_argument("--self-check-name", help="Name of this tool's own check run")
    policy.add_argument(
        "--use-git-cli-for-cherrypick",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Cherry-pick with the git CLI instead of the API",
    )

    output = parser.add_argument_group("output")
    output.add_argument("--results-dir", help="Directory for result files")
    output.add_argument("--verbose", action="store_true", default=None, help="Debug logging")
    output.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Debug mode: PR authors may /lgtm their own PR",
    )
    return parser


def settings_from_args(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """Overlay explicitly passed flags on settings loaded from the environment."""
    updates: Dict[str, Any] = {}
    for dest, field_name in FLAG_FIELDS.items():
        value = getattr(args, dest, None)
        if value is not None:
            updates[field_name] = value
    # Re-validate so list and choice fields are normalized
    data = (base or Settings()).model_dump()
    data.update(updates)
    return Settings.model_validate(data)


def run(settings: Settings) -> int:
    settings.validate_for_command()
    client = create_client(settings)
    handler = PRHandler(client, settings)
    executor = CommandExecutor(handler, ExecutionConfig.cli())
    result = executor.execute_comment(settings.trigger_comment)
    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = settings_from_args(args)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2
    configure_logging(settings)

    try:
        return run(settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Command failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
