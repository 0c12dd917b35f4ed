"""Type definitions for workflow runs.

A workflow run is described by a single immutable :class:`RunState`. Every
step receives the current value and returns the next one, built with
:meth:`RunState.advance` or :func:`dataclasses.replace`; no step mutates
state in place and no field is merged implicitly.

Example:
    Moving a run from classification to formatting::

        state = state.advance(WorkflowStatus.FORMATTING, intent=intent)
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from telegit.enums import ErrorCode, WorkflowStatus
from telegit.exceptions import WorkflowError
from telegit.models.domain import (
    ActionDescriptor,
    ActionResult,
    FeedbackMessage,
    Intent,
    Operation,
    TriggerMessage,
    utcnow,
)

if TYPE_CHECKING:
    from telegit.config.settings import ReactionsConfig, WorkflowConfig
    from telegit.engine.feedback import FeedbackLifecycle
    from telegit.providers.base import ActionGateway, ChatTransport, IntentClassifier
    from telegit.storage.base import OperationRepository
    from telegit.storage.context import ConversationContextStore


@dataclass(frozen=True)
class StepError:
    """Structured error attached to a run by the step that caught it."""

    message: str
    code: ErrorCode
    details: dict[str, Any] = field(default_factory=dict)
    step: str | None = None

    @classmethod
    def from_exception(cls, error: Exception, step: str, fallback: ErrorCode) -> "StepError":
        """Build a step error, keeping the code of :class:`WorkflowError` subclasses."""
        if isinstance(error, WorkflowError):
            return cls(message=error.message, code=error.code, details=error.details, step=step)
        return cls(message=str(error) or type(error).__name__, code=fallback, step=step)


@dataclass(frozen=True)
class RunState:
    """Complete state of one workflow run.

    Attributes:
        trigger: The chat message being processed.
        repository: Target repository (``owner/repo``) of the trigger's group.
        status: Current position in the state machine.
        path: Every status the run has entered, in order.
        intent: Classifier output, once analyzed.
        context: Conversation context handed to the classifier.
        descriptor: Formatted tracker call, once formatted.
        prior_state: Issue snapshot taken before an update, for undo.
        result: Gateway outcome, once executed.
        operation: Persisted operation record, once stored.
        feedback: Feedback record for the posted reply, once notified.
        error: The fatal error that routed the run to ERROR.
        warnings: Non-fatal errors collected along the way.
        deadline: ``time.monotonic()`` value after which the tracker call
            is abandoned, or None for no deadline.
    """

    trigger: TriggerMessage
    repository: str
    status: WorkflowStatus = WorkflowStatus.ANALYZING
    path: tuple[WorkflowStatus, ...] = (WorkflowStatus.ANALYZING,)
    intent: Intent | None = None
    context: tuple[dict[str, Any], ...] = ()
    descriptor: ActionDescriptor | None = None
    prior_state: dict[str, Any] | None = None
    result: ActionResult | None = None
    operation: Operation | None = None
    feedback: FeedbackMessage | None = None
    error: StepError | None = None
    warnings: tuple[StepError, ...] = ()
    deadline: float | None = None
    started_at: datetime = field(default_factory=utcnow)
    analyzed_at: datetime | None = None
    executed_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def start(cls, trigger: TriggerMessage, repository: str, timeout_seconds: float | None = None) -> "RunState":
        """Create the initial state of a run."""
        deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
        return cls(trigger=trigger, repository=repository, deadline=deadline)

    def advance(self, status: WorkflowStatus, **changes: Any) -> "RunState":
        """Return the next state, entering ``status`` and applying ``changes``."""
        return replace(self, status=status, path=self.path + (status,), **changes)

    def with_warning(self, warning: StepError) -> "RunState":
        return replace(self, warnings=self.warnings + (warning,))

    def remaining_seconds(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class WorkflowServices:
    """Collaborators shared by every workflow step.

    Built once by the application and passed to each step, so steps hold no
    module-level clients.
    """

    transport: "ChatTransport"
    gateway: "ActionGateway"
    classifier: "IntentClassifier"
    operations: "OperationRepository"
    feedback: "FeedbackLifecycle"
    reactions: "ReactionsConfig"
    workflow: "WorkflowConfig"
    contexts: "ConversationContextStore | None" = None
