"""
Base class for workflow steps.

This module provides the WorkflowStep abstract base class that every step of
the message workflow (analyze, format, execute, store, notify, error,
unknown) derives from.

Step Contract:
    - ``execute()`` receives the current :class:`RunState` and returns the
      next one. It may raise; :meth:`WorkflowStep.run` catches everything.
    - A *fatal* step records the caught error on ``state.error``, which
      routes the run to the ERROR terminal.
    - A non-fatal step appends the caught error to ``state.warnings`` and the
      run continues as if unaffected.
    - Reaction updates are best effort and never change routing.

Example:
    >>> class MyStep(WorkflowStep):
    ...     name = "my_step"
    ...     status = WorkflowStatus.EXECUTING
    ...     error_code = ErrorCode.GITHUB_EXECUTION_ERROR
    ...
    ...     async def execute(self, state: RunState) -> RunState:
    ...         await self.react(state, "🤔")
    ...         return state.advance(self.status)
"""

from abc import ABC, abstractmethod
from dataclasses import replace

import structlog

from telegit.enums import ErrorCode, WorkflowStatus
from telegit.engine.types import RunState, StepError, WorkflowServices
from telegit.exceptions import NotificationError

log = structlog.get_logger(__name__)


class WorkflowStep(ABC):
    """Abstract base class for all workflow steps.

    Attributes:
        name: Step identifier used in logs and on recorded errors.
        status: Workflow status the run enters when this step runs.
        fatal: Whether a failure in this step ends the run in ERROR.
        error_code: Code recorded for failures that carry no code of their own.
        services: Shared collaborators (transport, gateway, stores, config).
    """

    name: str = "step"
    status: WorkflowStatus = WorkflowStatus.ANALYZING
    fatal: bool = True
    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, services: WorkflowServices) -> None:
        """Initialize the step with the shared collaborators.

        Steps are instantiated once and reused for every run; do not store
        run-specific data on the instance.
        """
        self.services = services

    @abstractmethod
    async def execute(self, state: RunState) -> RunState:
        """Perform the step and return the next run-state."""
        pass

    async def run(self, state: RunState) -> RunState:
        """Execute the step, converting any exception into a step error."""
        try:
            return await self.execute(state)
        except Exception as e:
            error = StepError.from_exception(e, step=self.name, fallback=self.error_code)
            log.error(
                "workflow_step_failed",
                step=self.name,
                code=str(error.code),
                error=error.message,
                fatal=self.fatal,
                exc_info=not isinstance(e, NotificationError),
            )
            if self.fatal:
                return replace(state, error=error)
            return state.advance(self.status).with_warning(error)

    async def react(self, state: RunState, emoji: str) -> None:
        """Set a status reaction on the trigger message, logging failures."""
        trigger = state.trigger
        try:
            await self.services.transport.set_reaction(trigger.chat_ref, trigger.message_ref, emoji)
        except NotificationError as e:
            log.warning("status_reaction_failed", step=self.name, emoji=emoji, error=e.message)
