"""Error step: tell the user a run failed."""

import structlog

from telegit.enums import ErrorCode, WorkflowStatus
from telegit.engine import messages
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.models.domain import utcnow

log = structlog.get_logger(__name__)


class ErrorStep(WorkflowStep):
    """Set the error reaction and post a generic message chosen by error code.

    No operation is recorded for a failed run. Details stay in the logs.
    """

    name = "error"
    status = WorkflowStatus.ERROR
    fatal = False
    error_code = ErrorCode.NOTIFICATION_ERROR

    async def execute(self, state: RunState) -> RunState:
        trigger = state.trigger
        error = state.error

        log.error(
            "workflow_failed",
            code=str(error.code) if error else None,
            step=error.step if error else None,
            error=error.message if error else None,
            details=error.details if error else None,
        )

        await self.react(state, self.services.reactions.error)
        await self.services.transport.reply(
            trigger.chat_ref,
            trigger.message_ref,
            messages.error_reply(error.code if error else None),
        )
        return state.advance(self.status, completed_at=utcnow())
