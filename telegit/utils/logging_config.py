"""
Logging configuration using structlog for structured logging.

This module provides centralized logging setup for the whole bot, with
support for contextual logging (``chat_ref``/``message_ref`` bound per
workflow run) and either JSON or console output.
"""

import logging
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors for rich, structured logs
    that include timestamps, log levels, stack traces, and contextual information.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines when true, human-readable console output otherwise
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

