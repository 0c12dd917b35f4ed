"""Tests for telegit/engine/compensation.py - undoing completed operations."""

from datetime import timedelta

import pytest

from telegit.enums import ActionKind, ActionType, ErrorCode, OperationStatus
from telegit.engine import messages
from telegit.engine.compensation import UNDO_NOTE, UndoEngine
from telegit.exceptions import ActionExecutionError, StorageError, UndoError
from telegit.models.domain import ActionResult, utcnow

CHAT = -1001234567890


@pytest.fixture
def undo_engine(operations, gateway, lifecycle, transport):
    return UndoEngine(operations, gateway, lifecycle, transport)


async def _operation(operations, action_type, status=OperationStatus.COMPLETED, prior_state=None, issue_number=7):
    return await operations.create(
        group_id=CHAT,
        source_message_id=42,
        action_type=action_type,
        status=status,
        result_ref="https://github.com/acme/app/issues/7",
        prior_state=prior_state,
        repository="acme/app",
        issue_number=issue_number,
    )


class TestCanUndo:
    """Tests for undo eligibility."""

    @pytest.mark.asyncio
    async def test_completed_create_is_undoable(self, undo_engine, operations):
        """A completed create should be undoable."""
        operation = await _operation(operations, ActionType.CREATE_ISSUE)

        assert await undo_engine.can_undo(operation.id) is True

    @pytest.mark.asyncio
    async def test_search_is_not_undoable(self, undo_engine, operations):
        """Searches have no compensating action."""
        operation = await _operation(operations, ActionType.SEARCH_ISSUES, issue_number=None)

        assert await undo_engine.can_undo(operation.id) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [OperationStatus.PENDING, OperationStatus.PROCESSING, OperationStatus.FAILED, OperationStatus.UNDONE]
    )
    async def test_only_completed_is_undoable(self, undo_engine, operations, status):
        """Operations in any other status should not be undoable."""
        operation = await _operation(operations, ActionType.CREATE_ISSUE, status=status)

        assert await undo_engine.can_undo(operation.id) is False

    @pytest.mark.asyncio
    async def test_unknown_operation(self, undo_engine):
        """Unknown operation IDs should not be undoable."""
        assert await undo_engine.can_undo("does-not-exist") is False


class TestBuildCompensation:
    """Tests for the compensating descriptor of each operation type."""

    @pytest.mark.asyncio
    async def test_create_closes_and_annotates(self, undo_engine, operations, gateway):
        """Undoing a create should close the issue and append the undo note."""
        operation = await _operation(operations, ActionType.CREATE_ISSUE)

        descriptor = await undo_engine.build_compensation(operation)

        assert descriptor.kind == ActionKind.UPDATE
        assert descriptor.target == "acme/app"
        assert descriptor.payload == {"issue_number": 7, "state": "closed", "body": "Original body" + UNDO_NOTE}

    @pytest.mark.asyncio
    async def test_update_restores_prior_fields(self, undo_engine, operations):
        """Undoing an update should re-apply the recorded fields."""
        prior = {"title": "Old title", "body": "Old body", "labels": ["bug"], "assignees": [], "state": "open", "url": "x"}
        operation = await _operation(operations, ActionType.UPDATE_ISSUE, prior_state=prior)

        descriptor = await undo_engine.build_compensation(operation)

        assert descriptor.payload == {
            "issue_number": 7,
            "title": "Old title",
            "body": "Old body",
            "labels": ["bug"],
            "assignees": [],
            "state": "open",
        }

    @pytest.mark.asyncio
    async def test_close_reopens(self, undo_engine, operations):
        """Undoing a close should reopen."""
        operation = await _operation(operations, ActionType.CLOSE_ISSUE, prior_state={"state": "open"})

        descriptor = await undo_engine.build_compensation(operation)

        assert descriptor.payload == {"issue_number": 7, "state": "open"}

    @pytest.mark.asyncio
    async def test_reopen_closes(self, undo_engine, operations):
        """Undoing a reopen should close."""
        operation = await _operation(operations, ActionType.REOPEN_ISSUE, prior_state={"state": "closed"})

        descriptor = await undo_engine.build_compensation(operation)

        assert descriptor.payload == {"issue_number": 7, "state": "closed"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action_type", [ActionType.ADD_LABELS, ActionType.REMOVE_LABELS])
    async def test_label_changes_restore_previous_set(self, undo_engine, operations, action_type):
        """Undoing a label change should restore the previous label set."""
        operation = await _operation(operations, action_type, prior_state={"labels": ["bug", "ui"]})

        descriptor = await undo_engine.build_compensation(operation)

        assert descriptor.payload == {"issue_number": 7, "labels": ["bug", "ui"]}

    @pytest.mark.asyncio
    async def test_update_without_prior_state_fails(self, undo_engine, operations):
        """An update recorded without a snapshot cannot be reversed."""
        operation = await _operation(operations, ActionType.UPDATE_ISSUE)

        with pytest.raises(UndoError, match="Previous issue state"):
            await undo_engine.build_compensation(operation)

    @pytest.mark.asyncio
    async def test_missing_issue_number_fails(self, undo_engine, operations):
        """Operations without an issue reference cannot be reversed."""
        operation = await _operation(operations, ActionType.CLOSE_ISSUE, issue_number=None)

        with pytest.raises(UndoError, match="no issue reference"):
            await undo_engine.build_compensation(operation)


class TestUndo:
    """Tests for the full undo flow."""

    @pytest.mark.asyncio
    async def test_undo_create_end_to_end(self, undo_engine, operations, lifecycle, feedback_repository, transport):
        """Undo should compensate, mark undone, dismiss the feedback and confirm."""
        operation = await _operation(operations, ActionType.CREATE_ISSUE)
        feedback = await lifecycle.post_feedback(CHAT, 42, "👾 Issue created successfully!", operation.id)

        result = await undo_engine.undo(operation.id)

        assert result.success is True
        assert result.message == messages.UNDO_SUCCESS
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.UNDONE
        assert await feedback_repository.get_by_message(CHAT, feedback.message_ref) is None
        assert (CHAT, feedback.message_ref) in transport.deleted
        assert transport.replies[-1] == (CHAT, 42, messages.UNDO_SUCCESS)

    @pytest.mark.asyncio
    async def test_undo_twice_is_refused(self, undo_engine, operations, gateway):
        """A second undo should be refused without calling GitHub again."""
        operation = await _operation(operations, ActionType.CLOSE_ISSUE)
        await undo_engine.undo(operation.id)
        gateway.invoke.reset_mock()

        result = await undo_engine.undo(operation.id)

        assert result.success is False
        assert result.refused is True
        assert result.message == messages.UNDO_ALREADY_DONE
        gateway.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undo_search_is_refused(self, undo_engine, operations, gateway):
        """Undoing a search should be refused as not possible."""
        operation = await _operation(operations, ActionType.SEARCH_ISSUES, issue_number=None)

        result = await undo_engine.undo(operation.id)

        assert result.refused is True
        assert result.message == messages.UNDO_NOT_POSSIBLE
        gateway.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_failure_keeps_operation_completed(self, undo_engine, operations, gateway, transport):
        """A rejected compensating call should leave the operation completed and report the failure."""
        gateway.invoke.return_value = ActionResult(success=False, error="GitHub API error (403): Forbidden")
        operation = await _operation(operations, ActionType.CLOSE_ISSUE)

        result = await undo_engine.undo(operation.id)

        assert result.success is False
        assert result.refused is False
        assert result.error_code == ErrorCode.UNDO_ERROR
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.COMPLETED
        assert transport.reply_texts[-1] == messages.undo_failed("GitHub API error (403): Forbidden")

    @pytest.mark.asyncio
    async def test_snapshot_failure_keeps_operation_completed(self, undo_engine, operations, gateway):
        """Failing to read the issue before closing it should fail the undo."""
        gateway.get_issue.side_effect = ActionExecutionError("GitHub API error (404): Not Found")
        operation = await _operation(operations, ActionType.CREATE_ISSUE)

        result = await undo_engine.undo(operation.id)

        assert result.success is False
        assert result.error_code == ErrorCode.GITHUB_EXECUTION_ERROR
        gateway.invoke.assert_not_awaited()
        assert await undo_engine.can_undo(operation.id) is True

    @pytest.mark.asyncio
    async def test_undo_without_feedback(self, undo_engine, operations, transport):
        """Undo should work for operations whose feedback already expired."""
        operation = await _operation(operations, ActionType.REOPEN_ISSUE)

        result = await undo_engine.undo(operation.id)

        assert result.success is True
        assert transport.deleted == []

    @pytest.mark.asyncio
    async def test_updated_at_changes(self, undo_engine, operations):
        """Marking an operation undone should refresh its update time."""
        operation = await _operation(operations, ActionType.CLOSE_ISSUE)

        await undo_engine.undo(operation.id)

        updated = await operations.get_by_id(operation.id)
        assert updated.updated_at >= operation.updated_at
        assert updated.updated_at <= utcnow() + timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_dismiss_storage_failure_still_confirms(
        self, undo_engine, operations, lifecycle, feedback_repository, transport, monkeypatch
    ):
        """A storage failure while dismissing feedback should not hide a completed undo."""
        operation = await _operation(operations, ActionType.CLOSE_ISSUE)
        await lifecycle.post_feedback(CHAT, 42, "🔒 Issue closed", operation.id)

        async def failing_mark_dismissed(chat_ref, message_ref):
            raise StorageError("disk full")

        monkeypatch.setattr(feedback_repository, "mark_dismissed", failing_mark_dismissed)

        result = await undo_engine.undo(operation.id)

        assert result.success is True
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.UNDONE
        assert transport.replies[-1] == (CHAT, 42, messages.UNDO_SUCCESS)

    @pytest.mark.asyncio
    async def test_status_update_failure_still_confirms(self, undo_engine, operations, gateway, transport, monkeypatch):
        """The issue is already reverted, so a failed status write is logged and the user is told."""
        operation = await _operation(operations, ActionType.REOPEN_ISSUE)

        async def failing_update_status(operation_id, status):
            raise StorageError("disk full")

        monkeypatch.setattr(operations, "update_status", failing_update_status)

        result = await undo_engine.undo(operation.id)

        assert result.success is True
        gateway.invoke.assert_awaited_once()
        assert transport.reply_texts[-1] == messages.UNDO_SUCCESS
