"""
Compensating actions for completed operations (undo).

Each undoable :class:`~telegit.enums.ActionType` has a type-specific
reversal, performed through the same action gateway that executed it:

    create_issue   -> close the issue and append an undo note to its body
    update_issue   -> re-apply the fields captured before the update
    close_issue    -> reopen
    reopen_issue   -> close
    add_labels     -> restore the previous label set
    remove_labels  -> restore the previous label set
    search_issues  -> not undoable

Only ``completed`` operations can be undone. On success the operation
becomes ``undone``, its feedback message is dismissed and a confirmation is
posted. On failure the operation stays ``completed`` so the user can try
again; nothing is retried automatically.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from telegit.enums import ActionKind, ActionType, ErrorCode, OperationStatus
from telegit.engine import messages
from telegit.engine.feedback import FeedbackLifecycle
from telegit.exceptions import NotificationError, StorageError, UndoError, WorkflowError
from telegit.models.domain import ActionDescriptor, Operation
from telegit.providers.base import ActionGateway, ChatTransport
from telegit.storage.base import OperationRepository

log = structlog.get_logger(__name__)

UNDO_NOTE = "\n\n---\n\n**Note**: This issue was automatically undone by TeleGit at the user's request."

_RESTORABLE_FIELDS = ("title", "body", "labels", "assignees", "state")


@dataclass
class UndoResult:
    """Outcome of an undo request.

    Attributes:
        success: Whether the compensating action was applied.
        operation_id: The operation the request was about.
        message: User-facing summary.
        refused: True when the operation was not eligible, so nothing was attempted.
        error_code: Code of the failure, if any.
    """

    success: bool
    operation_id: str
    message: str
    refused: bool = False
    error_code: ErrorCode | None = None


class UndoEngine:
    """Apply compensating actions to completed operations.

    Example:
        >>> engine = UndoEngine(operations, gateway, lifecycle, transport)
        >>> if await engine.can_undo(operation_id):
        ...     result = await engine.undo(operation_id)
    """

    def __init__(
        self,
        operations: OperationRepository,
        gateway: ActionGateway,
        feedback: FeedbackLifecycle,
        transport: ChatTransport,
    ) -> None:
        self.operations = operations
        self.gateway = gateway
        self.feedback = feedback
        self.transport = transport

    @staticmethod
    def is_eligible(operation: Operation) -> bool:
        return (
            operation.status == OperationStatus.COMPLETED
            and operation.action_type.is_undoable
        )

    async def can_undo(self, operation_id: str) -> bool:
        """Whether the operation exists, is completed and has a compensating action."""
        operation = await self.operations.get_by_id(operation_id)
        return operation is not None and self.is_eligible(operation)

    async def undo(self, operation_id: str) -> UndoResult:
        """Reverse a completed operation.

        Ineligible operations are left untouched and reported as refused.
        Once the compensating action has been applied the confirmation is
        always posted; bookkeeping failures after that point are logged.
        """
        operation = await self.operations.get_by_id(operation_id)
        if operation is None or not self.is_eligible(operation):
            already_undone = operation is not None and operation.status == OperationStatus.UNDONE
            log.info(
                "undo_refused",
                operation_id=operation_id,
                status=str(operation.status) if operation else None,
                action_type=str(operation.action_type) if operation else None,
            )
            return UndoResult(
                success=False,
                operation_id=operation_id,
                message=messages.UNDO_ALREADY_DONE if already_undone else messages.UNDO_NOT_POSSIBLE,
                refused=True,
            )

        try:
            await self._compensate(operation)
        except Exception as e:
            code = e.code if isinstance(e, WorkflowError) else ErrorCode.UNDO_ERROR
            reason = e.message if isinstance(e, WorkflowError) else str(e)
            log.error(
                "undo_failed",
                operation_id=operation_id,
                action_type=str(operation.action_type),
                code=str(code),
                error=reason,
                exc_info=not isinstance(e, WorkflowError),
            )
            text = messages.undo_failed(reason)
            await self._reply(operation, text)
            return UndoResult(success=False, operation_id=operation_id, message=text, error_code=code)

        try:
            await self.operations.update_status(operation_id, OperationStatus.UNDONE)
        except StorageError as e:
            log.error("undo_status_update_failed", operation_id=operation_id, error=e.message)

        await self._dismiss_feedback(operation_id)

        await self._reply(operation, messages.UNDO_SUCCESS)
        log.info("operation_undone", operation_id=operation_id, action_type=str(operation.action_type))
        return UndoResult(success=True, operation_id=operation_id, message=messages.UNDO_SUCCESS)

    async def _dismiss_feedback(self, operation_id: str) -> None:
        try:
            feedback = await self.feedback.repository.get_by_operation(operation_id)
            if feedback is not None:
                await self.feedback.dismiss(feedback.chat_ref, feedback.message_ref)
        except StorageError as e:
            log.warning("undo_feedback_dismiss_failed", operation_id=operation_id, error=e.message)

    async def _compensate(self, operation: Operation) -> None:
        descriptor = await self.build_compensation(operation)
        result = await self.gateway.invoke(descriptor)
        if not result.success:
            raise UndoError(result.error or "Issue tracker rejected the compensating action")

    async def build_compensation(self, operation: Operation) -> ActionDescriptor:
        """Build the update that reverses ``operation``.

        Raises:
            UndoError: If the operation lacks what its reversal needs.
        """
        if not operation.repository or operation.issue_number is None:
            raise UndoError("Operation has no issue reference", details={"operation_id": operation.id})

        payload: dict[str, Any] = {"issue_number": operation.issue_number}
        action_type = operation.action_type

        if action_type == ActionType.CREATE_ISSUE:
            current = await self.gateway.get_issue(operation.repository, operation.issue_number)
            payload["state"] = "closed"
            payload["body"] = (current.get("body") or "") + UNDO_NOTE
        elif action_type == ActionType.UPDATE_ISSUE:
            prior = self._require_prior_state(operation)
            payload.update({key: prior[key] for key in _RESTORABLE_FIELDS if key in prior})
        elif action_type == ActionType.CLOSE_ISSUE:
            payload["state"] = "open"
        elif action_type == ActionType.REOPEN_ISSUE:
            payload["state"] = "closed"
        elif action_type in (ActionType.ADD_LABELS, ActionType.REMOVE_LABELS):
            prior = self._require_prior_state(operation)
            payload["labels"] = list(prior.get("labels") or [])
        else:
            raise UndoError(f"Operation type {action_type} cannot be undone")

        return ActionDescriptor(kind=ActionKind.UPDATE, target=operation.repository, payload=payload)

    @staticmethod
    def _require_prior_state(operation: Operation) -> dict[str, Any]:
        if not operation.prior_state:
            raise UndoError("Previous issue state was not recorded", details={"operation_id": operation.id})
        return operation.prior_state

    async def _reply(self, operation: Operation, text: str) -> None:
        try:
            await self.transport.reply(operation.group_id, operation.source_message_id, text)
        except NotificationError as e:
            log.warning("undo_reply_failed", operation_id=operation.id, error=e.message)
