"""
Workflow state machine for trigger messages.

This module provides :class:`WorkflowEngine`, which drives one trigger
message through the steps in :mod:`telegit.engine.stages`:

    ANALYZING ──► FORMATTING ──► EXECUTING ──► STORING ──► NOTIFYING ──► COMPLETED
        │              │              │
        │              └──────────────┴──► ERROR ──► COMPLETED
        ├──► ERROR ──► COMPLETED
        └──► UNKNOWN (no action)

Routing after classification:
    - a fatal error            -> ERROR
    - no intent, intent
      ``unknown`` or confidence
      below the threshold      -> UNKNOWN
    - otherwise                -> FORMATTING

A fatal error in formatting or execution routes to ERROR. Failures while
storing or notifying are collected as warnings; the run still completes.

Nothing escapes :meth:`WorkflowEngine.run`: every outcome, including
failures, is described by the returned :class:`RunState`.

Example:
    >>> engine = WorkflowEngine(services)
    >>> state = await engine.run(trigger, repository="acme/app")
    >>> state.status, state.path
"""

import structlog

from telegit.enums import IntentType, WorkflowStatus
from telegit.engine.stages.analyze import AnalyzeStep
from telegit.engine.stages.error import ErrorStep
from telegit.engine.stages.execute import ExecuteStep
from telegit.engine.stages.format import FormatStep
from telegit.engine.stages.notify import NotifyStep
from telegit.engine.stages.store import StoreStep
from telegit.engine.stages.unknown import UnknownStep
from telegit.engine.types import RunState, WorkflowServices
from telegit.models.domain import TriggerMessage, utcnow

log = structlog.get_logger(__name__)


class WorkflowEngine:
    """Run trigger messages through the workflow state machine.

    Runs are independent: the engine keeps no per-run data, so any number of
    runs may be in flight concurrently.

    Attributes:
        services: Collaborators shared by every step.
        confidence_threshold: Minimum confidence to act on an intent.
    """

    def __init__(self, services: WorkflowServices) -> None:
        self.services = services
        self.confidence_threshold = services.workflow.confidence_threshold
        self.analyze = AnalyzeStep(services)
        self.format = FormatStep(services)
        self.execute = ExecuteStep(services)
        self.store = StoreStep(services)
        self.notify = NotifyStep(services)
        self.error = ErrorStep(services)
        self.unknown = UnknownStep(services)

    def is_actionable(self, state: RunState) -> bool:
        """Whether the classified intent clears the routing rules for action."""
        intent = state.intent
        if intent is None or intent.type == IntentType.UNKNOWN:
            return False
        return intent.confidence >= self.confidence_threshold

    async def run(self, trigger: TriggerMessage, repository: str) -> RunState:
        """Process one trigger message to a terminal state.

        Args:
            trigger: The message that passed the trigger filter.
            repository: Target repository of the trigger's group.

        Returns:
            The final run-state, with status COMPLETED or UNKNOWN.
        """
        state = RunState.start(trigger, repository, timeout_seconds=self.services.workflow.action_timeout_seconds)

        with structlog.contextvars.bound_contextvars(chat_ref=trigger.chat_ref, message_ref=trigger.message_ref):
            log.info("workflow_started", repository=repository, mentioned=trigger.mentioned)

            state = await self.analyze.run(state)
            if state.failed:
                return await self._fail(state)

            if not self.is_actionable(state):
                state = await self.unknown.run(state)
                log.info("workflow_finished", status=str(state.status), path=[str(s) for s in state.path])
                return state

            for step in (self.format, self.execute):
                state = await step.run(state)
                if state.failed:
                    return await self._fail(state)

            state = await self.store.run(state)
            state = await self.notify.run(state)
            return self._complete(state)

    async def _fail(self, state: RunState) -> RunState:
        state = await self.error.run(state)
        return self._complete(state)

    def _complete(self, state: RunState) -> RunState:
        state = state.advance(WorkflowStatus.COMPLETED, completed_at=state.completed_at or utcnow())
        log.info(
            "workflow_finished",
            status=str(state.status),
            path=[str(s) for s in state.path],
            failed=state.failed,
            warnings=[str(w.code) for w in state.warnings],
        )
        return state
