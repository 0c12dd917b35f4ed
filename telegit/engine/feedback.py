"""
Feedback message lifecycle: post, auto-expire, dismiss.

Every successful workflow run leaves one reply in the chat that reports the
outcome. Such replies are ephemeral: they are removed either when the user
dismisses them (👍 reaction) or when their scheduled deletion time passes and
the background sweep picks them up.

Deletion is idempotent. A remote message that is already gone counts as
deleted, and so does a record that no longer exists, so the sweep, a
dismissal and an undo may race on the same message without harm.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from telegit.exceptions import MessageNotFoundError, NotificationError
from telegit.models.domain import FeedbackMessage, utcnow
from telegit.providers.base import ChatTransport
from telegit.storage.base import FeedbackRepository

log = structlog.get_logger(__name__)

DEFAULT_DELETION_DELAY_MS = 600_000


@dataclass
class SweepResult:
    """Counters from one pass over due feedback messages."""

    processed: int = 0
    deleted: int = 0
    errors: int = 0


class FeedbackLifecycle:
    """Owns feedback replies from posting until deletion.

    Example:
        >>> lifecycle = FeedbackLifecycle(transport, feedback_repo)
        >>> fb = await lifecycle.post_feedback(-100123, 42, "✅ Done", operation.id)
        >>> await lifecycle.dismiss(fb.chat_ref, fb.message_ref)
        True
    """

    def __init__(
        self,
        transport: ChatTransport,
        repository: FeedbackRepository,
        deletion_delay_ms: int = DEFAULT_DELETION_DELAY_MS,
    ) -> None:
        self.transport = transport
        self.repository = repository
        self.deletion_delay_ms = deletion_delay_ms

    async def post_feedback(
        self,
        chat_ref: int,
        reply_to_ref: int,
        text: str,
        operation_id: str,
        deletion_delay_ms: int | None = None,
        now: datetime | None = None,
    ) -> FeedbackMessage:
        """Post a reply and record it for scheduled deletion.

        Args:
            chat_ref: Chat to post in
            reply_to_ref: Message being answered
            text: Reply text
            operation_id: Operation the reply reports on
            deletion_delay_ms: Lifetime of the reply, defaults to the configured delay
            now: Reference time for the schedule (defaults to the current time)

        Raises:
            NotificationError: If the reply could not be posted
            StorageError: If the reply was posted but could not be recorded
        """
        message_ref = await self.transport.reply(chat_ref, reply_to_ref, text)

        delay = self.deletion_delay_ms if deletion_delay_ms is None else deletion_delay_ms
        scheduled = (now or utcnow()) + timedelta(milliseconds=delay)
        return await self.repository.create(operation_id, chat_ref, message_ref, scheduled)

    async def delete_now(self, chat_ref: int, message_ref: int) -> bool:
        """Delete a feedback message from the chat and from storage.

        Returns:
            True when the message is gone (including when it already was),
            False when the chat platform refused the deletion. In that case the
            record is kept so a later sweep can try again.
        """
        try:
            await self.transport.delete_message(chat_ref, message_ref)
        except MessageNotFoundError:
            log.info("feedback_already_deleted", chat_ref=chat_ref, message_ref=message_ref)
        except NotificationError as e:
            log.warning("feedback_delete_failed", chat_ref=chat_ref, message_ref=message_ref, error=e.message)
            return False

        removed = await self.repository.delete(chat_ref, message_ref)
        log.info("feedback_deleted", chat_ref=chat_ref, message_ref=message_ref, record_removed=removed)
        return True

    async def dismiss(self, chat_ref: int, message_ref: int) -> bool:
        """Mark a feedback message as dismissed, then delete it.

        Dismissing an unknown message is a no-op that reports success.
        """
        record = await self.repository.mark_dismissed(chat_ref, message_ref)
        if record is None:
            log.debug("feedback_dismiss_unknown", chat_ref=chat_ref, message_ref=message_ref)
            return True

        log.info("feedback_dismissed", chat_ref=chat_ref, message_ref=message_ref, operation_id=record.operation_id)
        return await self.delete_now(chat_ref, message_ref)

    async def list_due(self, now: datetime | None = None) -> list[FeedbackMessage]:
        """Return non-dismissed feedback whose deletion time has passed."""
        return await self.repository.list_due(now or utcnow())

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Delete every due feedback message.

        Dismissed messages whose earlier deletion failed are retried here
        too. A failure on one message is logged and counted; it never stops
        the sweep from processing the rest.
        """
        result = SweepResult()
        for feedback in await self.repository.list_pending_deletion(now or utcnow()):
            result.processed += 1
            try:
                if await self.delete_now(feedback.chat_ref, feedback.message_ref):
                    result.deleted += 1
                else:
                    result.errors += 1
            except Exception as e:
                result.errors += 1
                log.error(
                    "feedback_sweep_item_failed",
                    chat_ref=feedback.chat_ref,
                    message_ref=feedback.message_ref,
                    error=str(e),
                    exc_info=True,
                )

        if result.processed:
            log.info("feedback_swept", processed=result.processed, deleted=result.deleted, errors=result.errors)
        return result
