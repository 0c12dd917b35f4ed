"""Custom exception hierarchy for the TeleGit bot.

This module defines a structured exception hierarchy that lets workflow
steps, stores and adapters signal failures precisely, and lets the workflow
engine translate them into user-facing replies without string matching.

Exception Hierarchy:
    TeleGitError (base)
    ├── ConfigurationError
    ├── EncryptionError
    ├── NotFoundError
    ├── ExternalServiceError
    └── WorkflowError
        ├── ValidationError
        ├── ClassificationError
        ├── FormattingError
        ├── ActionExecutionError
        ├── StorageError
        ├── NotificationError
        │   └── MessageNotFoundError
        └── UndoError

Workflow errors carry a machine-readable ``code`` (see
:class:`telegit.enums.ErrorCode`) and a ``details`` mapping. The code is
what the workflow engine records on the run-state and what decides the
message shown to the user.

Example Usage:
    >>> from telegit.exceptions import FormattingError
    >>> if entities.issue_number is None:
    ...     raise FormattingError("Issue number is required for updates")
"""

from typing import Any

from telegit.enums import ErrorCode


class TeleGitError(Exception):
    """Base exception for all TeleGit errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(TeleGitError):
    """Configuration-related errors.

    Raised when configuration files are invalid, missing, or contain
    incompatible settings.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Missing required configuration fields
        - No group configured for a chat
    """

    pass


class EncryptionError(TeleGitError):
    """Token encryption or decryption failed.

    Raised for malformed keys, malformed ciphertext, and authentication
    tag mismatches (tampered data).
    """

    pass


class NotFoundError(TeleGitError):
    """A stored record does not exist.

    Attributes:
        message: Human-readable error description
        entity: Kind of record that was looked up (e.g. ``"operation"``)
        key: Identifier that was looked up
    """

    def __init__(self, message: str, entity: str | None = None, key: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            entity: Kind of record that was looked up
            key: Identifier that was looked up
        """
        self.entity = entity
        self.key = key
        super().__init__(message)


class ExternalServiceError(TeleGitError):
    """External service communication errors.

    Raised when an HTTP call to Telegram, GitHub or the classifier endpoint
    fails.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code, if any
        response_text: Response body text, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


# =============================================================================
# Workflow Errors
# =============================================================================


class WorkflowError(TeleGitError):
    """Base class for errors raised inside workflow steps and the undo path.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
        details: Extra structured context for logs
    """

    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            code: Error code, defaults to the class ``default_code``
            details: Optional structured context
        """
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(WorkflowError):
    """The trigger carries nothing that can be classified."""

    default_code = ErrorCode.MISSING_MESSAGE_TEXT


class ClassificationError(WorkflowError):
    """The intent classifier call failed. Fatal for the run."""

    default_code = ErrorCode.INTENT_CLASSIFICATION_ERROR


class FormattingError(WorkflowError):
    """Mapping an intent to an action descriptor failed. Fatal for the run."""

    default_code = ErrorCode.FORMATTING_ERROR


class ActionExecutionError(WorkflowError):
    """The action gateway call failed or timed out. Fatal for the run."""

    default_code = ErrorCode.GITHUB_EXECUTION_ERROR


class StorageError(WorkflowError):
    """Persisting an operation or feedback record failed. Non-fatal."""

    default_code = ErrorCode.STORAGE_ERROR


class NotificationError(WorkflowError):
    """A chat reply or reaction could not be delivered. Non-fatal."""

    default_code = ErrorCode.NOTIFICATION_ERROR


class MessageNotFoundError(NotificationError):
    """The chat message being acted upon no longer exists.

    Raised by the chat transport on delete of an already-deleted message.
    Callers that only need the message gone treat this as success.
    """

    pass


class UndoError(WorkflowError):
    """A compensating action failed. The operation stays completed."""

    default_code = ErrorCode.UNDO_ERROR
