"""Tests for telegit/engine/reactions.py - dismiss and undo reaction controls."""

import pytest

from telegit.config.settings import ReactionsConfig
from telegit.enums import ActionType, OperationStatus
from telegit.engine import messages
from telegit.engine.compensation import UndoEngine
from telegit.engine.reactions import ReactionInterpreter
from telegit.models.domain import ReactionEvent

CHAT = -1001234567890


@pytest.fixture
def interpreter(operations, gateway, lifecycle, transport):
    undo = UndoEngine(operations, gateway, lifecycle, transport)
    return ReactionInterpreter(lifecycle, undo, transport, ReactionsConfig())


async def _completed_create(operations, lifecycle):
    operation = await operations.create(
        group_id=CHAT,
        source_message_id=42,
        action_type=ActionType.CREATE_ISSUE,
        status=OperationStatus.COMPLETED,
        result_ref="https://github.com/acme/app/issues/7",
        repository="acme/app",
        issue_number=7,
    )
    feedback = await lifecycle.post_feedback(CHAT, 42, "👾 Issue created successfully!", operation.id)
    return operation, feedback


def _event(message_ref, added=(), removed=()):
    return ReactionEvent(
        chat_ref=CHAT,
        message_ref=message_ref,
        user_ref=1001,
        added_emojis=list(added),
        removed_emojis=list(removed),
    )


class TestUndoReaction:
    """Tests for the 👎 control."""

    @pytest.mark.asyncio
    async def test_thumbs_down_undoes_create(self, interpreter, operations, lifecycle, feedback_repository, gateway, transport):
        """👎 on the feedback of a completed create should close the issue and confirm."""
        operation, feedback = await _completed_create(operations, lifecycle)

        handled = await interpreter.handle(_event(feedback.message_ref, added=["👎"]))

        assert handled == ["undo"]
        descriptor = gateway.invoke.await_args.args[0]
        assert descriptor.payload["state"] == "closed"
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.UNDONE
        assert await feedback_repository.get_by_message(CHAT, feedback.message_ref) is None
        assert (CHAT, feedback.message_ref) in transport.deleted
        assert transport.reply_texts[-1] == messages.UNDO_SUCCESS

    @pytest.mark.asyncio
    async def test_undo_refused_for_search(self, interpreter, operations, lifecycle, gateway, transport):
        """👎 on a search result should explain that it cannot be undone."""
        operation = await operations.create(
            group_id=CHAT,
            source_message_id=42,
            action_type=ActionType.SEARCH_ISSUES,
            status=OperationStatus.COMPLETED,
            repository="acme/app",
        )
        feedback = await lifecycle.post_feedback(CHAT, 42, "🔍 Found 2 issue(s)", operation.id)

        handled = await interpreter.handle(_event(feedback.message_ref, added=["👎"]))

        assert handled == ["undo_refused"]
        gateway.invoke.assert_not_awaited()
        assert transport.replies[-1] == (CHAT, feedback.message_ref, messages.UNDO_NOT_POSSIBLE)

    @pytest.mark.asyncio
    async def test_removed_thumbs_down_is_ignored(self, interpreter, operations, lifecycle, gateway):
        """Removing a 👎 should not trigger anything."""
        _, feedback = await _completed_create(operations, lifecycle)

        handled = await interpreter.handle(_event(feedback.message_ref, removed=["👎"]))

        assert handled == []
        gateway.invoke.assert_not_awaited()


class TestDismissReaction:
    """Tests for the 👍 control."""

    @pytest.mark.asyncio
    async def test_thumbs_up_dismisses(self, interpreter, operations, lifecycle, feedback_repository, transport):
        """👍 should delete the feedback message and keep the operation as is."""
        operation, feedback = await _completed_create(operations, lifecycle)

        handled = await interpreter.handle(_event(feedback.message_ref, added=["👍"]))

        assert handled == ["dismiss"]
        assert (CHAT, feedback.message_ref) in transport.deleted
        assert await feedback_repository.get_by_message(CHAT, feedback.message_ref) is None
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_thumbs_up_on_message_deleted_out_of_band(self, interpreter, operations, lifecycle, transport):
        """Dismissing a message that is already gone should still succeed."""
        _, feedback = await _completed_create(operations, lifecycle)
        transport.gone.add((CHAT, feedback.message_ref))

        handled = await interpreter.handle(_event(feedback.message_ref, added=["👍"]))

        assert handled == ["dismiss"]

    @pytest.mark.asyncio
    async def test_undo_checked_before_dismiss(self, interpreter, operations, lifecycle):
        """With both controls added, undo runs first and dismiss still succeeds."""
        operation, feedback = await _completed_create(operations, lifecycle)

        handled = await interpreter.handle(_event(feedback.message_ref, added=["👍", "👎"]))

        assert handled == ["undo", "dismiss"]
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.UNDONE


class TestIgnoredReactions:
    """Tests for reactions that are not controls."""

    @pytest.mark.asyncio
    async def test_reaction_on_other_message(self, interpreter, transport):
        """Reactions on messages that are not feedback should be ignored."""
        handled = await interpreter.handle(_event(12345, added=["👎"]))

        assert handled == []
        assert transport.replies == []

    @pytest.mark.asyncio
    async def test_other_emoji(self, interpreter, operations, lifecycle, transport):
        """Other emoji on a feedback message should be ignored."""
        _, feedback = await _completed_create(operations, lifecycle)

        handled = await interpreter.handle(_event(feedback.message_ref, added=["🔥"]))

        assert handled == []
        assert transport.deleted == []
