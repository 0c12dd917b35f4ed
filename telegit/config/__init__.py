"""Configuration system for the TeleGit bot.

This package provides type-safe configuration management using Pydantic
settings loaded from YAML with environment variable interpolation.

Key Components:
    - TeleGitSettings: Main configuration container with YAML loading support
    - TelegramConfig: Bot API credentials and trigger whitelist
    - WorkflowConfig: Confidence threshold and feedback lifetime
    - SchedulerConfig: Background job intervals
    - ReactionsConfig: Status and control emoji
    - GroupConfig: Telegram group to GitHub repository binding

Example:
    >>> from telegit.config.settings import TeleGitSettings
    >>> settings = TeleGitSettings.from_yaml("telegit.yaml")
    >>> threshold = settings.workflow.confidence_threshold
"""
