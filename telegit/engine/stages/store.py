"""Store step: persist the executed action as an operation record."""

from typing import Any

import structlog

from telegit.enums import ActionKind, ActionType, ErrorCode, OperationStatus, WorkflowStatus
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.exceptions import StorageError
from telegit.models.domain import ActionDescriptor

log = structlog.get_logger(__name__)


def derive_action_type(descriptor: ActionDescriptor, prior_state: dict[str, Any] | None) -> ActionType:
    """Classify an executed descriptor into the operation type used for undo.

    Updates that only change the state become close/reopen operations;
    updates that only change labels become add/remove label operations
    depending on whether the new set keeps all previous labels.
    """
    if descriptor.kind == ActionKind.CREATE:
        return ActionType.CREATE_ISSUE
    if descriptor.kind == ActionKind.SEARCH:
        return ActionType.SEARCH_ISSUES
    if descriptor.kind != ActionKind.UPDATE:
        raise StorageError(f"Cannot record an operation for action kind {descriptor.kind}")

    changed = set(descriptor.payload) - {"issue_number"}
    if changed == {"state"}:
        return ActionType.CLOSE_ISSUE if descriptor.payload["state"] == "closed" else ActionType.REOPEN_ISSUE
    if changed == {"labels"}:
        previous = set((prior_state or {}).get("labels") or [])
        new = set(descriptor.payload["labels"])
        return ActionType.ADD_LABELS if new >= previous else ActionType.REMOVE_LABELS
    return ActionType.UPDATE_ISSUE


class StoreStep(WorkflowStep):
    """Create the operation record for a successful action.

    Non-fatal: when persistence fails the user still gets the result reply,
    the run just has no operation (and therefore cannot be undone).
    """

    name = "store"
    status = WorkflowStatus.STORING
    fatal = False
    error_code = ErrorCode.STORAGE_ERROR

    async def execute(self, state: RunState) -> RunState:
        descriptor = state.descriptor
        result = state.result
        if descriptor is None or result is None:
            raise StorageError("Nothing to store: run has no executed action")

        action_type = derive_action_type(descriptor, state.prior_state)
        operation = await self.services.operations.create(
            group_id=state.trigger.chat_ref,
            source_message_id=state.trigger.message_ref,
            action_type=action_type,
            status=OperationStatus.COMPLETED,
            result_ref=result.result_ref,
            prior_state=state.prior_state,
            repository=descriptor.target,
            issue_number=result.issue_number or descriptor.payload.get("issue_number"),
        )

        log.info("operation_stored", operation_id=operation.id, action_type=str(action_type))
        return state.advance(self.status, operation=operation)
