"""Unknown step: explain why no action was taken."""

import structlog

from telegit.enums import ErrorCode, WorkflowStatus
from telegit.engine import messages
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.models.domain import utcnow

log = structlog.get_logger(__name__)


class UnknownStep(WorkflowStep):
    """Terminal step for unclear or low-confidence intents.

    Sets the questioning reaction and replies with either the "couldn't
    determine" text or the low-confidence text. Nothing is executed and no
    operation is recorded.
    """

    name = "unknown"
    status = WorkflowStatus.UNKNOWN
    fatal = False
    error_code = ErrorCode.NOTIFICATION_ERROR

    async def execute(self, state: RunState) -> RunState:
        trigger = state.trigger
        intent = state.intent

        log.info(
            "intent_not_actionable",
            intent=str(intent.type) if intent else None,
            confidence=intent.confidence if intent else None,
            threshold=self.services.workflow.confidence_threshold,
        )

        await self.react(state, self.services.reactions.unknown)
        await self.services.transport.reply(trigger.chat_ref, trigger.message_ref, messages.unknown_reply(intent))
        return state.advance(self.status, completed_at=utcnow())
