"""Feedback message records stored as JSON documents.

Documents are keyed by ``{chat_ref}_{message_ref}`` so that a chat message
can have at most one record and lookups from reaction events are direct
file reads.
"""

from datetime import datetime
from pathlib import Path

import structlog

from telegit.exceptions import StorageError
from telegit.models.domain import FeedbackMessage, new_id, utcnow
from telegit.storage.base import FeedbackRepository
from telegit.storage.json_store import JsonDocumentStore

log = structlog.get_logger(__name__)


def _key(chat_ref: int, message_ref: int) -> str:
    return f"{chat_ref}_{message_ref}"


class JsonFeedbackRepository(FeedbackRepository):
    """Feedback repository backed by one JSON file per chat message."""

    def __init__(self, data_dir: str | Path) -> None:
        self._store = JsonDocumentStore(data_dir, "feedback")

    async def create(
        self,
        operation_id: str,
        chat_ref: int,
        message_ref: int,
        scheduled_deletion: datetime,
    ) -> FeedbackMessage:
        if await self.get_by_operation(operation_id) is not None:
            raise StorageError(
                f"Operation {operation_id} already has a feedback message",
                details={"operation_id": operation_id},
            )

        feedback = FeedbackMessage(
            id=new_id(),
            operation_id=operation_id,
            chat_ref=chat_ref,
            message_ref=message_ref,
            scheduled_deletion=scheduled_deletion,
            dismissed=False,
            created_at=utcnow(),
        )

        try:
            inserted = await self._store.insert(_key(chat_ref, message_ref), feedback.to_dict())
        except OSError as e:
            raise StorageError(f"Failed to store feedback message: {e}") from e
        if not inserted:
            raise StorageError(
                f"Feedback message {message_ref} in chat {chat_ref} already exists",
                details={"chat_ref": chat_ref, "message_ref": message_ref},
            )

        log.info(
            "feedback_created",
            operation_id=operation_id,
            chat_ref=chat_ref,
            message_ref=message_ref,
            scheduled_deletion=scheduled_deletion.isoformat(),
        )
        return feedback

    async def get_by_message(self, chat_ref: int, message_ref: int) -> FeedbackMessage | None:
        document = await self._store.read(_key(chat_ref, message_ref))
        return FeedbackMessage.from_dict(document) if document is not None else None

    async def get_by_operation(self, operation_id: str) -> FeedbackMessage | None:
        async for document in self._store.iter_documents():
            if document.get("operation_id") == operation_id:
                return FeedbackMessage.from_dict(document)
        return None

    async def mark_dismissed(self, chat_ref: int, message_ref: int) -> FeedbackMessage | None:
        try:
            async with self._store.transaction(_key(chat_ref, message_ref)) as document:
                if document is None:
                    return None
                document["dismissed"] = True
                updated = FeedbackMessage.from_dict(document)
        except OSError as e:
            raise StorageError(f"Failed to update feedback message {message_ref}: {e}") from e
        return updated

    async def delete(self, chat_ref: int, message_ref: int) -> bool:
        try:
            return await self._store.delete(_key(chat_ref, message_ref))
        except OSError as e:
            raise StorageError(f"Failed to delete feedback message {message_ref}: {e}") from e

    async def list_due(self, now: datetime) -> list[FeedbackMessage]:
        due = []
        async for document in self._store.iter_documents():
            feedback = FeedbackMessage.from_dict(document)
            if feedback.is_due(now):
                due.append(feedback)
        return sorted(due, key=lambda feedback: feedback.scheduled_deletion)

    async def list_pending_deletion(self, now: datetime) -> list[FeedbackMessage]:
        pending = []
        async for document in self._store.iter_documents():
            feedback = FeedbackMessage.from_dict(document)
            if feedback.dismissed or feedback.is_due(now):
                pending.append(feedback)
        return sorted(pending, key=lambda feedback: feedback.scheduled_deletion)
