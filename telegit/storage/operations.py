"""Operation records stored as JSON documents."""

from pathlib import Path
from typing import Any

import structlog

from telegit.enums import ActionType, OperationStatus
from telegit.exceptions import NotFoundError, StorageError
from telegit.models.domain import Operation, new_id, utcnow
from telegit.storage.base import OperationRepository
from telegit.storage.json_store import JsonDocumentStore

log = structlog.get_logger(__name__)


class JsonOperationRepository(OperationRepository):
    """Operation repository backed by one JSON file per operation.

    Example:
        >>> repo = JsonOperationRepository(".telegit/data")
        >>> op = await repo.create(-100123, 42, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED)
        >>> await repo.update_status(op.id, OperationStatus.UNDONE)
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._store = JsonDocumentStore(data_dir, "operations")

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
        now = utcnow()
        operation = Operation(
            id=new_id(),
            group_id=group_id,
            source_message_id=source_message_id,
            action_type=action_type,
            status=status,
            result_ref=result_ref,
            prior_state=prior_state,
            repository=repository,
            issue_number=issue_number,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._store.write(operation.id, operation.to_dict())
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(
                f"Failed to store operation: {e}",
                details={"group_id": group_id, "source_message_id": source_message_id},
            ) from e

        log.info(
            "operation_created",
            operation_id=operation.id,
            action_type=str(action_type),
            status=str(status),
        )
        return operation

    async def update_status(self, operation_id: str, status: OperationStatus) -> Operation:
        try:
            async with self._store.transaction(operation_id) as document:
                if document is None:
                    raise NotFoundError(f"Operation not found: {operation_id}", entity="operation", key=operation_id)
                document["status"] = status.value
                document["updated_at"] = utcnow().isoformat()
                updated = Operation.from_dict(document)
        except OSError as e:
            raise StorageError(f"Failed to update operation {operation_id}: {e}") from e

        log.info("operation_status_updated", operation_id=operation_id, status=str(status))
        return updated

    async def get_by_id(self, operation_id: str) -> Operation | None:
        document = await self._store.read(operation_id)
        return Operation.from_dict(document) if document is not None else None

    async def get_by_message(self, group_id: int, source_message_id: int) -> Operation | None:
        matches = [
            op
            for op in await self._all()
            if op.group_id == group_id and op.source_message_id == source_message_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda op: op.created_at)

    async def list_by_group(self, group_id: int, limit: int | None = None) -> list[Operation]:
        operations = sorted(
            (op for op in await self._all() if op.group_id == group_id),
            key=lambda op: op.created_at,
            reverse=True,
        )
        return operations[:limit] if limit is not None else operations

    async def list_by_status(self, status: OperationStatus) -> list[Operation]:
        return sorted(
            (op for op in await self._all() if op.status == status),
            key=lambda op: op.created_at,
        )

    async def _all(self) -> list[Operation]:
        return [Operation.from_dict(doc) for doc in await self._store.list_all()]
