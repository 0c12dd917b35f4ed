"""Analyze step: classify the trigger message into an intent."""

from dataclasses import replace
from typing import Any

import structlog

from telegit.enums import ErrorCode, WorkflowStatus
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.exceptions import StorageError, ValidationError
from telegit.models.domain import utcnow

log = structlog.get_logger(__name__)


class AnalyzeStep(WorkflowStep):
    """Set the analyzing reaction and ask the classifier for an intent.

    When the trigger replies to another message, the cached conversation
    context of that thread is passed to the classifier. A context lookup
    failure only costs the extra context.
    """

    name = "analyze"
    status = WorkflowStatus.ANALYZING
    fatal = True
    error_code = ErrorCode.INTENT_CLASSIFICATION_ERROR

    async def execute(self, state: RunState) -> RunState:
        trigger = state.trigger
        await self.react(state, self.services.reactions.analyzing)

        text = (trigger.text or "").strip()
        if not text:
            raise ValidationError("No message text found")

        context = state.context or await self._load_context(state)
        intent = await self.services.classifier.classify(text, list(context) or None)

        log.info(
            "message_analyzed",
            intent=str(intent.type),
            confidence=intent.confidence,
            context_messages=len(context),
        )
        return replace(state, intent=intent, context=context, analyzed_at=utcnow())

    async def _load_context(self, state: RunState) -> tuple[dict[str, Any], ...]:
        contexts = self.services.contexts
        trigger = state.trigger
        if contexts is None or trigger.reply_to_ref is None:
            return ()

        try:
            cached = await contexts.get(trigger.chat_ref, trigger.reply_to_ref)
        except (StorageError, OSError, ValueError) as e:
            log.warning("conversation_context_unavailable", error=str(e))
            return ()
        if cached is None:
            return ()
        return tuple(m for m in cached.messages if m.get("message_ref") != trigger.message_ref)
