"""
Abstract repository interfaces for persisted records.

One interface per entity. The workflow engine, the feedback lifecycle and
the undo engine depend only on these; the JSON document implementations in
:mod:`telegit.storage.operations` and :mod:`telegit.storage.feedback` are
the single concrete engine.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from telegit.enums import ActionType, OperationStatus
from telegit.models.domain import FeedbackMessage, Operation


class OperationRepository(ABC):
    """Persistence for :class:`Operation` records.

    This is dumb persistence: it does not validate status transitions.
    Callers (the undo engine in particular) check preconditions themselves.
    """

    @abstractmethod
    async def create(
        self,
        group_id: int,
        source_message_id: int,
        action_type: ActionType,
        status: OperationStatus,
        result_ref: str | None = None,
        prior_state: dict[str, Any] | None = None,
        repository: str | None = None,
        issue_number: int | None = None,
    ) -> Operation:
        """Persist a new operation and return it with its assigned id.

        Raises:
            StorageError: If the record cannot be written.
        """
        pass

    @abstractmethod
    async def update_status(self, operation_id: str, status: OperationStatus) -> Operation:
        """Set the status of an existing operation and bump ``updated_at``.

        Raises:
            NotFoundError: If no operation has this id.
            StorageError: If the record cannot be written.
        """
        pass

    @abstractmethod
    async def get_by_id(self, operation_id: str) -> Operation | None:
        """Return the operation with this id, or None."""
        pass

    @abstractmethod
    async def get_by_message(self, group_id: int, source_message_id: int) -> Operation | None:
        """Return the most recent operation triggered by a chat message, or None."""
        pass

    @abstractmethod
    async def list_by_group(self, group_id: int, limit: int | None = None) -> list[Operation]:
        """Return a group's operations, newest first."""
        pass

    @abstractmethod
    async def list_by_status(self, status: OperationStatus) -> list[Operation]:
        """Return all operations currently in ``status``, oldest first."""
        pass


class FeedbackRepository(ABC):
    """Persistence for :class:`FeedbackMessage` records.

    Implementations enforce that ``message_ref`` is unique per chat and that
    an operation has at most one feedback message.
    """

    @abstractmethod
    async def create(
        self,
        operation_id: str,
        chat_ref: int,
        message_ref: int,
        scheduled_deletion: datetime,
    ) -> FeedbackMessage:
        """Persist a new, non-dismissed feedback record.

        Raises:
            StorageError: If the message or the operation already has a record,
                or the record cannot be written.
        """
        pass

    @abstractmethod
    async def get_by_message(self, chat_ref: int, message_ref: int) -> FeedbackMessage | None:
        """Return the feedback record for a chat message, or None."""
        pass

    @abstractmethod
    async def get_by_operation(self, operation_id: str) -> FeedbackMessage | None:
        """Return the feedback record attached to an operation, or None."""
        pass

    @abstractmethod
    async def mark_dismissed(self, chat_ref: int, message_ref: int) -> FeedbackMessage | None:
        """Set ``dismissed=True``. Returns the updated record, or None if absent."""
        pass

    @abstractmethod
    async def delete(self, chat_ref: int, message_ref: int) -> bool:
        """Remove the record. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_due(self, now: datetime) -> list[FeedbackMessage]:
        """Return non-dismissed records whose ``scheduled_deletion <= now``."""
        pass

    @abstractmethod
    async def list_pending_deletion(self, now: datetime) -> list[FeedbackMessage]:
        """Return due records plus dismissed records still awaiting deletion.

        A dismissed record only survives when its remote delete failed, so
        the sweep retries it regardless of ``scheduled_deletion``.
        """
        pass
