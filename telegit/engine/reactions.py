"""
User reaction controls on feedback replies.

Two emoji act as controls on the bot's own feedback replies:

    - undo (👎 by default): reverse the operation the reply reports on
    - dismiss (👍 by default): remove the reply before it expires

Both are checked independently in that order. Reactions on any other
message, and any other emoji, are ignored.
"""

import structlog

from telegit.config.settings import ReactionsConfig
from telegit.engine.compensation import UndoEngine
from telegit.engine.feedback import FeedbackLifecycle
from telegit.exceptions import NotificationError
from telegit.models.domain import ReactionEvent
from telegit.providers.base import ChatTransport

log = structlog.get_logger(__name__)


class ReactionInterpreter:
    """Route reaction changes on feedback replies to undo and dismiss.

    Example:
        >>> interpreter = ReactionInterpreter(lifecycle, undo_engine, transport, settings.reactions)
        >>> await interpreter.handle(event)
        ['undo']
    """

    def __init__(
        self,
        feedback: FeedbackLifecycle,
        undo: UndoEngine,
        transport: ChatTransport,
        reactions: ReactionsConfig,
    ) -> None:
        self.feedback = feedback
        self.undo = undo
        self.transport = transport
        self.reactions = reactions

    async def handle(self, event: ReactionEvent) -> list[str]:
        """Apply the controls contained in ``event``.

        Returns:
            Names of the controls that were acted on (``undo``,
            ``undo_refused``, ``dismiss``), in order.
        """
        feedback = await self.feedback.repository.get_by_message(event.chat_ref, event.message_ref)
        if feedback is None:
            log.debug("reaction_ignored", chat_ref=event.chat_ref, message_ref=event.message_ref)
            return []

        handled: list[str] = []

        if self.reactions.undo in event.added_emojis:
            log.info("undo_requested", operation_id=feedback.operation_id, user_ref=event.user_ref)
            result = await self.undo.undo(feedback.operation_id)
            if result.refused:
                await self._inform(event, result.message)
                handled.append("undo_refused")
            else:
                handled.append("undo")

        if self.reactions.dismiss in event.added_emojis:
            await self.feedback.dismiss(event.chat_ref, event.message_ref)
            handled.append("dismiss")

        return handled

    async def _inform(self, event: ReactionEvent, text: str) -> None:
        try:
            await self.transport.reply(event.chat_ref, event.message_ref, text)
        except NotificationError as e:
            log.warning("reaction_reply_failed", message_ref=event.message_ref, error=e.message)
