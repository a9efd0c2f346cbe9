"""
Configuration

Two settings groups are loaded from the environment:

- Settings: per-command configuration (PR_ prefix), also readable from an
  optional YAML file named by PR_CONFIG_FILE (default: pr-cli.yaml)
- WebhookSettings: HTTP server, queue and pull_request event configuration
"""

import os
from functools import lru_cache
from typing import Annotated, Dict, List, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from prbot.utils.helpers import parse_key_value_pairs, split_comma_list

VERSION = "0.1.0"

MERGE_METHODS = ("merge", "squash", "rebase", "auto")

DEFAULT_PR_EVENT_ACTIONS = [
    "opened",
    "synchronize",
    "reopened",
    "ready_for_review",
    "edited",
]


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Command execution settings loaded from PR_* environment variables."""

    # Platform
    platform: str = "github"
    token: str = ""
    comment_token: str = ""
    base_url: str = ""

    # Target pull request
    owner: str = ""
    repo: str = ""
    pr_num: int = 0
    comment_sender: str = ""
    trigger_comment: str = ""
    pr_sender: str = ""

    # LGTM
    lgtm_threshold: int = 1
    lgtm_permissions: Annotated[List[str], NoDecode] = ["admin", "write"]
    lgtm_review_event: str = "APPROVE"
    robot_accounts: Annotated[List[str], NoDecode] = []

    # Merge and checks
    merge_method: str = "rebase"
    self_check_name: str = "pr-cli"

    # Retest: substrings (case-insensitive) of check names never retested
    retest_exclusions: Annotated[List[str], NoDecode] = [
        "merge conflict",
        "codecov",
        "sonarcloud",
        "license",
        "cla",
        "semantic",
        "dependabot",
        "gitguardian",
        "security",
    ]

    # Cherry-pick
    use_git_cli_for_cherrypick: bool = True

    # Output
    results_dir: str = "/tekton/results"
    log_level: str = "info"
    verbose: bool = False
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="PR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        str_strip_whitespace=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        yaml_file = os.getenv("PR_CONFIG_FILE", "pr-cli.yaml")
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
            file_secret_settings,
        )

    @field_validator(
        "lgtm_permissions", "robot_accounts", "retest_exclusions", mode="before"
    )
    @classmethod
    def _split_lists(cls, value):
        return split_comma_list(value)

    @field_validator("merge_method")
    @classmethod
    def _check_merge_method(cls, value: str) -> str:
        value = value.lower()
        if value not in MERGE_METHODS:
            raise ValueError(
                f"invalid merge method '{value}', expected one of {', '.join(MERGE_METHODS)}"
            )
        return value

    @property
    def is_debug(self) -> bool:
        """Debug logging: --debug, --verbose or log_level=debug."""
        return self.debug or self.verbose or self.log_level.lower() == "debug"

    def validate_for_command(self) -> None:
        """
        Check the fields a single command execution needs.

        Raises:
            ConfigurationError: naming the first missing field
        """
        if not self.platform:
            raise ConfigurationError("platform is required")
        if not self.token:
            raise ConfigurationError("token is required")
        if not self.owner:
            raise ConfigurationError("owner is required")
        if not self.repo:
            raise ConfigurationError("repo is required")
        if self.pr_num <= 0:
            raise ConfigurationError("pr-num must be a positive integer")
        if not self.comment_sender:
            raise ConfigurationError("comment-sender is required")
        if not self.trigger_comment:
            raise ConfigurationError("trigger-comment is required")

    def validate_for_webhook(self) -> None:
        """Webhook mode takes the PR coordinates from each event."""
        if not self.platform:
            raise ConfigurationError("platform is required")
        if not self.token:
            raise ConfigurationError("token is required")


class WebhookSettings(BaseSettings):
    """Webhook server settings."""

    listen_addr: str = ":8080"
    webhook_path: str = "/webhook"
    health_path: str = "/healthz"
    metrics_path: str = "/metrics"

    webhook_secret: str = ""
    webhook_secret_file: str = ""
    require_signature: bool = True
    allowed_repos: Annotated[List[str], NoDecode] = []

    tls_enabled: bool = False
    tls_cert_file: str = ""
    tls_key_file: str = ""

    async_processing: bool = True
    worker_count: int = 10
    queue_size: int = 100
    shutdown_grace_seconds: float = 30.0

    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100

    # pull_request events trigger a workflow dispatch
    pr_event_enabled: bool = False
    pr_event_actions: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_PR_EVENT_ACTIONS)
    )
    workflow_file: str = ""
    workflow_repo: str = ""
    workflow_ref: str = "main"
    workflow_inputs: Annotated[Dict[str, str], NoDecode] = {}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        str_strip_whitespace=True,
    )

    @field_validator("allowed_repos", "pr_event_actions", mode="before")
    @classmethod
    def _split_lists(cls, value):
        return split_comma_list(value)

    @field_validator("workflow_inputs", mode="before")
    @classmethod
    def _parse_inputs(cls, value):
        if isinstance(value, str):
            return parse_key_value_pairs(value)
        return value

    def resolved_secret(self) -> str:
        """Return the webhook secret, reading WEBHOOK_SECRET_FILE if set."""
        if self.webhook_secret:
            return self.webhook_secret
        if self.webhook_secret_file:
            with open(self.webhook_secret_file, "r", encoding="utf-8") as f:
                return f.read().strip()
        return ""

    def listen_host_port(self) -> Tuple[str, int]:
        """Split LISTEN_ADDR (e.g. ':8080' or '127.0.0.1:9000') into host and port."""
        host, _, port = self.listen_addr.rpartition(":")
        return host or "0.0.0.0", int(port)

    def validate_settings(self) -> None:
        if self.require_signature and not self.resolved_secret():
            raise ConfigurationError(
                "webhook secret is required when signature validation is enabled"
            )
        if self.tls_enabled and (not self.tls_cert_file or not self.tls_key_file):
            raise ConfigurationError(
                "TLS cert and key files are required when TLS is enabled"
            )
        if self.worker_count < 1:
            raise ConfigurationError("worker count must be at least 1")
        if self.queue_size < 1:
            raise ConfigurationError("queue size must be at least 1")
        if self.rate_limit_enabled and self.rate_limit_requests < 1:
            raise ConfigurationError("rate limit requests must be at least 1")
        if self.pr_event_enabled:
            if not self.workflow_file:
                raise ConfigurationError(
                    "workflow file is required when pull_request events are enabled"
                )
            if ".." in self.workflow_file:
                raise ConfigurationError("workflow file must not contain '..'")
            if not self.workflow_file.endswith((".yml", ".yaml")):
                raise ConfigurationError("workflow file must end with .yml or .yaml")


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_webhook_settings() -> WebhookSettings:
    return WebhookSettings()
