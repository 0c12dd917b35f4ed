"""Enumerations shared across the TeleGit bot."""

from enum import Enum


class IntentType(str, Enum):
    """Intent categories produced by the classifier."""

    CREATE_BUG = "create_bug"
    CREATE_TASK = "create_task"
    CREATE_IDEA = "create_idea"
    UPDATE_ISSUE = "update_issue"
    SEARCH_ISSUES = "search_issues"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @property
    def is_create(self) -> bool:
        """Whether this intent creates a new issue."""
        return self in (IntentType.CREATE_BUG, IntentType.CREATE_TASK, IntentType.CREATE_IDEA)


class ActionKind(str, Enum):
    """Kind of call an action descriptor asks the gateway to perform."""

    CREATE = "create"
    UPDATE = "update"
    SEARCH = "search"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


class ActionType(str, Enum):
    """Recorded type of an executed operation.

    Every value except ``SEARCH_ISSUES`` has a compensating action.
    """

    CREATE_ISSUE = "create_issue"
    UPDATE_ISSUE = "update_issue"
    CLOSE_ISSUE = "close_issue"
    REOPEN_ISSUE = "reopen_issue"
    ADD_LABELS = "add_labels"
    REMOVE_LABELS = "remove_labels"
    SEARCH_ISSUES = "search_issues"

    def __str__(self) -> str:
        return self.value

    @property
    def is_undoable(self) -> bool:
        """Whether a completed operation of this type can be reversed."""
        return self != ActionType.SEARCH_ISSUES


class OperationStatus(str, Enum):
    """Lifecycle status of a persisted operation.

    ``pending -> processing -> completed | failed`` and ``completed -> undone``.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNDONE = "undone"

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(str, Enum):
    """Position of a workflow run in the state machine."""

    ANALYZING = "analyzing"
    FORMATTING = "formatting"
    EXECUTING = "executing"
    STORING = "storing"
    NOTIFYING = "notifying"
    COMPLETED = "completed"
    ERROR = "error"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class ErrorCode(str, Enum):
    """Machine-readable codes attached to workflow and undo errors."""

    MISSING_MESSAGE_TEXT = "MISSING_MESSAGE_TEXT"
    INTENT_CLASSIFICATION_ERROR = "INTENT_CLASSIFICATION_ERROR"
    FORMATTING_ERROR = "FORMATTING_ERROR"
    GITHUB_EXECUTION_ERROR = "GITHUB_EXECUTION_ERROR"
    ACTION_TIMEOUT = "ACTION_TIMEOUT"
    STORAGE_ERROR = "STORAGE_ERROR"
    NOTIFICATION_ERROR = "NOTIFICATION_ERROR"
    UNDO_ERROR = "UNDO_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    def __str__(self) -> str:
        return self.value


class QueuePriority(int, Enum):
    """Work queue priorities. Lower values run first.

    Explicit bot mentions are queued as HIGH, hashtag-only triggers as NORMAL.
    """

    URGENT = 1
    HIGH = 3
    NORMAL = 5
    LOW = 7


class SetupStep(str, Enum):
    """Steps of the private-chat conversation that links a group to a repository."""

    AWAITING_REPOSITORY = "awaiting_repository"
    AWAITING_TOKEN = "awaiting_token"

    def __str__(self) -> str:
        return self.value


class BindingSource(str, Enum):
    """Where a group's repository binding came from."""

    CONFIG = "config"
    SETUP = "setup"

    def __str__(self) -> str:
        return self.value
