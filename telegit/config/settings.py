"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for every part of the bot: the
Telegram transport, the GitHub gateway, the intent classifier, workflow
thresholds, the background scheduler, reaction emoji, the work queue and
storage, plus the per-group repository bindings.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from telegit.exceptions import ConfigurationError


class TelegramConfig(BaseModel):
    """Telegram Bot API configuration."""

    bot_token: SecretStr = Field(..., description="Bot token issued by @BotFather")
    bot_username: str = Field(..., description="Bot username without the leading @")
    api_base_url: str = Field(default="https://api.telegram.org", description="Bot API base URL")
    allowed_chat_ids: list[int] = Field(
        default_factory=list, description="Chats the bot reacts in (empty means all chats)"
    )
    allowed_user_ids: list[int] = Field(
        default_factory=list, description="Users allowed to trigger the bot (empty means everyone)"
    )
    poll_timeout: int = Field(default=30, ge=0, le=50, description="Long-poll timeout for getUpdates in seconds")
    request_timeout: float = Field(default=40.0, gt=0, description="HTTP timeout for Bot API calls in seconds")

    @field_validator("bot_username")
    @classmethod
    def strip_at(cls, value: str) -> str:
        return value.lstrip("@")


class GitHubConfig(BaseModel):
    """GitHub REST API configuration."""

    base_url: str = Field(default="https://api.github.com", description="GitHub API base URL")
    default_token: SecretStr | None = Field(
        default=None,
        description="Plaintext token used for groups that do not carry their own encrypted token",
    )


class ClassifierConfig(BaseModel):
    """OpenAI-compatible intent classifier configuration."""

    base_url: str = Field(default="https://api.openai.com/v1", description="Chat completions API base URL")
    model: str = Field(default="gpt-4o-mini", description="Model identifier")
    api_key: SecretStr | None = Field(default=None, description="API key (optional for local servers)")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=1024, ge=1, description="Maximum tokens for the response")
    timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")


class SecurityConfig(BaseModel):
    """Secrets used to decrypt per-group credentials."""

    encryption_key: SecretStr | None = Field(
        default=None, description="64-character hex AES-256 key for stored GitHub tokens"
    )

    @field_validator("encryption_key", mode="before")
    @classmethod
    def blank_as_unset(cls, value: Any) -> Any:
        # An unset ${TELEGIT_ENCRYPTION_KEY:-} interpolates to ""
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WorkflowConfig(BaseModel):
    """Workflow behavior configuration."""

    confidence_threshold: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Minimum classifier confidence to act on an intent"
    )
    feedback_deletion_delay_ms: int = Field(
        default=600_000, ge=0, description="How long feedback replies stay in the chat"
    )
    action_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Deadline for a single tracker call (none means no deadline)"
    )
    context_ttl_minutes: int = Field(
        default=60, ge=1, le=10080, description="Lifetime of cached conversation context"
    )


class SchedulerConfig(BaseModel):
    """Background job configuration."""

    interval_ms: int = Field(default=60_000, ge=1000, description="Feedback sweep interval")
    cache_purge_interval_ms: int = Field(default=300_000, ge=1000, description="Expired cache purge interval")
    drain_timeout_seconds: float = Field(
        default=30.0, ge=0, description="Grace period for in-flight runs at shutdown"
    )
    setup_session_timeout_minutes: int = Field(default=30, ge=1, description="Lifetime of setup sessions")


class ReactionsConfig(BaseModel):
    """Emoji used for status reactions and for user controls."""

    analyzing: str = Field(default="👀", description="Set while the message is being classified")
    processing: str = Field(default="🤔", description="Set while the action is prepared and executed")
    success_bug: str = Field(default="👾", description="Set after a bug issue was created")
    success_task: str = Field(default="🫡", description="Set after a task issue was created")
    success_idea: str = Field(default="🦄", description="Set after an idea issue was created")
    success_default: str = Field(default="✅", description="Set after any other successful action")
    error: str = Field(default="😱", description="Set when the run failed")
    unknown: str = Field(default="🤷", description="Set when no action was taken")
    dismiss: str = Field(default="👍", description="User reaction that dismisses a feedback reply")
    undo: str = Field(default="👎", description="User reaction that undoes the operation")


class QueueConfig(BaseModel):
    """Work queue configuration."""

    max_concurrent: int = Field(default=5, ge=1, le=50, description="Maximum simultaneous workflow runs")


class StorageConfig(BaseModel):
    """Persistence configuration."""

    data_dir: str = Field(default=".telegit/data", description="Directory for JSON record files")


class GroupConfig(BaseModel):
    """Binding of a Telegram group to a GitHub repository."""

    chat_id: int = Field(..., description="Telegram chat identifier")
    repository: str = Field(..., description="Target repository in owner/repo form")
    github_token: str | None = Field(
        default=None, description="Encrypted GitHub token (iv:tag:ciphertext, base64 parts)"
    )

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, value: str) -> str:
        owner, _, repo = value.partition("/")
        if not owner or not repo or "/" in repo:
            raise ValueError(f"repository must be in owner/repo form, got: {value}")
        return value


class TeleGitSettings(BaseSettings):
    """Main TeleGit settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="TELEGIT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    telegram: TelegramConfig
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    reactions: ReactionsConfig = Field(default_factory=ReactionsConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    groups: list[GroupConfig] = Field(default_factory=list, description="Group to repository bindings")

    @property
    def data_dir(self) -> Path:
        """Get storage directory as Path object."""
        return Path(self.storage.data_dir)

    @classmethod
    def from_yaml(cls, config_path: str) -> TeleGitSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            TeleGitSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except TypeError as e:
            raise ConfigurationError(f"Missing or invalid configuration fields: {e}") from e
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
