"""Notify step: report a successful action back to the chat."""

import structlog

from telegit.config.settings import ReactionsConfig
from telegit.enums import ErrorCode, IntentType, WorkflowStatus
from telegit.engine import messages
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.exceptions import NotificationError

log = structlog.get_logger(__name__)


def success_emoji(intent_type: IntentType | None, reactions: ReactionsConfig) -> str:
    """Terminal reaction for a successful run of the given intent."""
    return {
        IntentType.CREATE_BUG: reactions.success_bug,
        IntentType.CREATE_TASK: reactions.success_task,
        IntentType.CREATE_IDEA: reactions.success_idea,
    }.get(intent_type, reactions.success_default)


class NotifyStep(WorkflowStep):
    """Set the success reaction and post the result reply.

    With a stored operation the reply becomes a tracked feedback message that
    expires and can be dismissed or used to undo. Without one (storage
    failed) it is a plain reply. Non-fatal: the action already happened.
    """

    name = "notify"
    status = WorkflowStatus.NOTIFYING
    fatal = False
    error_code = ErrorCode.NOTIFICATION_ERROR

    async def execute(self, state: RunState) -> RunState:
        if state.descriptor is None or state.result is None:
            raise NotificationError("Nothing to report: run has no executed action")

        trigger = state.trigger
        emoji = success_emoji(state.intent.type if state.intent else None, self.services.reactions)
        await self.react(state, emoji)

        text = messages.success_reply(emoji, state.descriptor, state.result)
        if state.operation is None:
            await self.services.transport.reply(trigger.chat_ref, trigger.message_ref, text)
            log.info("result_reply_untracked", reason="no_operation")
            return state.advance(self.status)

        feedback = await self.services.feedback.post_feedback(
            trigger.chat_ref,
            trigger.message_ref,
            text,
            operation_id=state.operation.id,
        )
        log.info("feedback_posted", operation_id=state.operation.id, feedback_message_ref=feedback.message_ref)
        return state.advance(self.status, feedback=feedback)
