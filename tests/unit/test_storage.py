"""Tests for telegit/storage - JSON document engine, repositories and caches."""

import asyncio
import gc
from datetime import timedelta

import pytest

from telegit.enums import ActionType, OperationStatus
from telegit.exceptions import NotFoundError, StorageError
from telegit.models.domain import SetupSession, utcnow
from telegit.storage.context import MAX_MESSAGES, ConversationContextStore
from telegit.storage.json_store import JsonDocumentStore
from telegit.storage.sessions import SetupSessionStore

CHAT = -1001234567890


class TestJsonDocumentStore:
    """Tests for JsonDocumentStore."""

    @pytest.mark.asyncio
    async def test_write_and_read(self, data_dir):
        """Written documents should read back unchanged."""
        store = JsonDocumentStore(data_dir, "things")

        await store.write("a", {"value": 1, "text": "ünïcode"})

        assert await store.read("a") == {"value": 1, "text": "ünïcode"}
        assert await store.read("missing") is None
        assert not list((data_dir / "things").glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_insert_only_once(self, data_dir):
        """insert should refuse to overwrite an existing document."""
        store = JsonDocumentStore(data_dir, "things")

        assert await store.insert("a", {"v": 1}) is True
        assert await store.insert("a", {"v": 2}) is False
        assert await store.read("a") == {"v": 1}

    @pytest.mark.asyncio
    async def test_delete(self, data_dir):
        """delete should report whether a document existed."""
        store = JsonDocumentStore(data_dir, "things")
        await store.write("a", {})

        assert await store.delete("a") is True
        assert await store.delete("a") is False

    @pytest.mark.asyncio
    async def test_transaction_saves_changes(self, data_dir):
        """In-place changes inside a transaction should be saved."""
        store = JsonDocumentStore(data_dir, "things")
        await store.write("a", {"count": 0})

        async with store.transaction("a") as document:
            document["count"] += 1

        assert await store.read("a") == {"count": 1}

    @pytest.mark.asyncio
    async def test_transaction_discards_on_error(self, data_dir):
        """A failing transaction body should save nothing."""
        store = JsonDocumentStore(data_dir, "things")
        await store.write("a", {"count": 0})

        with pytest.raises(RuntimeError):
            async with store.transaction("a") as document:
                document["count"] = 99
                raise RuntimeError("abort")

        assert await store.read("a") == {"count": 0}

    @pytest.mark.asyncio
    async def test_concurrent_transactions_serialize(self, data_dir):
        """Concurrent read-modify-write cycles on one key should not lose updates."""
        store = JsonDocumentStore(data_dir, "things")
        await store.write("counter", {"count": 0})

        async def increment():
            async with store.transaction("counter") as document:
                value = document["count"]
                await asyncio.sleep(0)
                document["count"] = value + 1

        await asyncio.gather(*(increment() for _ in range(10)))

        assert (await store.read("counter"))["count"] == 10

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self, data_dir):
        """Per-document locks should not outlive the operations that use them."""
        store = JsonDocumentStore(data_dir, "things")

        for i in range(50):
            await store.write(f"doc-{i}", {"i": i})
            async with store.transaction(f"doc-{i}") as document:
                document["seen"] = True
            await store.delete(f"doc-{i}")
        gc.collect()

        assert len(store._locks) == 0

    @pytest.mark.asyncio
    async def test_iteration_skips_corrupt_files(self, data_dir):
        """Unparseable files should not break a scan."""
        store = JsonDocumentStore(data_dir, "things")
        await store.write("good", {"ok": True})
        (data_dir / "things" / "bad.json").write_text("{not json")

        assert await store.list_all() == [{"ok": True}]

    @pytest.mark.asyncio
    async def test_keys_cannot_escape_directory(self, data_dir):
        """Path separators in keys should be neutralized."""
        store = JsonDocumentStore(data_dir, "things")

        await store.write("../escape", {"v": 1})

        assert not (data_dir / "escape.json").exists()
        assert await store.read("../escape") == {"v": 1}


class TestJsonOperationRepository:
    """Tests for JsonOperationRepository."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, operations):
        """Created operations should be retrievable by ID."""
        operation = await operations.create(
            group_id=CHAT,
            source_message_id=42,
            action_type=ActionType.CREATE_ISSUE,
            status=OperationStatus.COMPLETED,
            result_ref="https://github.com/acme/app/issues/7",
            repository="acme/app",
            issue_number=7,
        )

        loaded = await operations.get_by_id(operation.id)

        assert loaded == operation
        assert await operations.get_by_id("unknown") is None

    @pytest.mark.asyncio
    async def test_update_status(self, operations):
        """Status updates should persist and refresh updated_at."""
        operation = await operations.create(CHAT, 42, ActionType.CLOSE_ISSUE, OperationStatus.COMPLETED)

        updated = await operations.update_status(operation.id, OperationStatus.UNDONE)

        assert updated.status == OperationStatus.UNDONE
        assert updated.updated_at >= operation.updated_at
        assert (await operations.get_by_id(operation.id)).status == OperationStatus.UNDONE

    @pytest.mark.asyncio
    async def test_update_unknown_operation(self, operations):
        """Updating a missing operation should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await operations.update_status("unknown", OperationStatus.UNDONE)

    @pytest.mark.asyncio
    async def test_get_by_message(self, operations):
        """Lookup by source message should find the operation in that group only."""
        operation = await operations.create(CHAT, 42, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED)
        await operations.create(-1, 42, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED)

        assert (await operations.get_by_message(CHAT, 42)).id == operation.id
        assert await operations.get_by_message(CHAT, 43) is None

    @pytest.mark.asyncio
    async def test_list_by_group_newest_first(self, operations):
        """Group listings should be newest first and honor the limit."""
        created = []
        for message_ref in range(3):
            created.append(await operations.create(CHAT, message_ref, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED))
            await asyncio.sleep(0.001)
        await operations.create(-1, 99, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED)

        listed = await operations.list_by_group(CHAT)
        limited = await operations.list_by_group(CHAT, limit=2)

        assert [op.id for op in listed] == [op.id for op in reversed(created)]
        assert len(limited) == 2

    @pytest.mark.asyncio
    async def test_list_by_status(self, operations):
        """Status listings should only include matching operations."""
        done = await operations.create(CHAT, 1, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED)
        undone = await operations.create(CHAT, 2, ActionType.CREATE_ISSUE, OperationStatus.COMPLETED)
        await operations.update_status(undone.id, OperationStatus.UNDONE)

        assert [op.id for op in await operations.list_by_status(OperationStatus.COMPLETED)] == [done.id]


class TestJsonFeedbackRepository:
    """Tests for JsonFeedbackRepository."""

    @pytest.mark.asyncio
    async def test_one_feedback_per_operation(self, feedback_repository):
        """An operation may have at most one feedback message."""
        when = utcnow()
        await feedback_repository.create("op-1", CHAT, 500, when)

        with pytest.raises(StorageError, match="already has a feedback message"):
            await feedback_repository.create("op-1", CHAT, 501, when)

    @pytest.mark.asyncio
    async def test_duplicate_message(self, feedback_repository):
        """A chat message can back only one feedback record."""
        when = utcnow()
        await feedback_repository.create("op-1", CHAT, 500, when)

        with pytest.raises(StorageError, match="already exists"):
            await feedback_repository.create("op-2", CHAT, 500, when)

    @pytest.mark.asyncio
    async def test_same_message_id_in_different_chats(self, feedback_repository):
        """Message IDs are per chat, so the same ID in two chats is two records."""
        when = utcnow()
        await feedback_repository.create("op-1", CHAT, 500, when)
        await feedback_repository.create("op-2", -1, 500, when)

        assert (await feedback_repository.get_by_message(CHAT, 500)).operation_id == "op-1"
        assert (await feedback_repository.get_by_message(-1, 500)).operation_id == "op-2"

    @pytest.mark.asyncio
    async def test_list_due_ordered(self, feedback_repository):
        """Due feedback should be listed earliest deadline first."""
        now = utcnow()
        await feedback_repository.create("late", CHAT, 2, now - timedelta(minutes=1))
        await feedback_repository.create("early", CHAT, 1, now - timedelta(minutes=5))
        await feedback_repository.create("future", CHAT, 3, now + timedelta(minutes=5))

        due = await feedback_repository.list_due(now)

        assert [f.operation_id for f in due] == ["early", "late"]

    @pytest.mark.asyncio
    async def test_list_pending_deletion_includes_dismissed(self, feedback_repository):
        """Dismissed records are pending deletion whatever their schedule."""
        now = utcnow()
        await feedback_repository.create("due", CHAT, 1, now - timedelta(minutes=1))
        await feedback_repository.create("dismissed", CHAT, 2, now + timedelta(minutes=5))
        await feedback_repository.create("future", CHAT, 3, now + timedelta(minutes=5))
        await feedback_repository.mark_dismissed(CHAT, 2)

        pending = await feedback_repository.list_pending_deletion(now)

        assert [f.operation_id for f in pending] == ["due", "dismissed"]
        assert [f.operation_id for f in await feedback_repository.list_due(now)] == ["due"]

    @pytest.mark.asyncio
    async def test_mark_dismissed_unknown(self, feedback_repository):
        """Dismissing an unknown message should return None."""
        assert await feedback_repository.mark_dismissed(CHAT, 404) is None


class TestConversationContextStore:
    """Tests for ConversationContextStore."""

    @pytest.mark.asyncio
    async def test_append_and_get(self, contexts):
        """Appended messages should be returned in order."""
        await contexts.append_message(CHAT, 10, {"message_ref": 10, "text": "first"})
        await contexts.append_message(CHAT, 10, {"message_ref": 11, "text": "second"})

        context = await contexts.get(CHAT, 10)

        assert [m["text"] for m in context.messages] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_keeps_most_recent_messages(self, contexts):
        """Only the most recent messages should be kept."""
        for i in range(MAX_MESSAGES + 5):
            await contexts.append_message(CHAT, 10, {"message_ref": i})

        context = await contexts.get(CHAT, 10)

        assert len(context.messages) == MAX_MESSAGES
        assert context.messages[-1]["message_ref"] == MAX_MESSAGES + 4

    @pytest.mark.asyncio
    async def test_expired_context_is_ignored_and_purged(self, contexts):
        """Expired threads should not be returned and should be purged."""
        await contexts.append_message(CHAT, 10, {"message_ref": 10})
        later = utcnow() + timedelta(minutes=61)

        assert await contexts.get(CHAT, 10, now=later) is None
        assert await contexts.purge_expired(now=later) == 1
        assert await contexts.get(CHAT, 10) is None

    @pytest.mark.asyncio
    async def test_many_threads_leave_no_locks_behind(self, contexts):
        """Caching and purging many threads should not accumulate document locks."""
        for i in range(200):
            await contexts.append_message(CHAT, i, {"message_ref": i})

        assert await contexts.purge_expired(now=utcnow() + timedelta(minutes=61)) == 200
        gc.collect()
        assert len(contexts._store._locks) == 0

    def test_ttl_is_clamped(self, data_dir):
        """TTL should be clamped to one minute through one week."""
        assert ConversationContextStore(data_dir, ttl_minutes=0).ttl == timedelta(minutes=1)
        assert ConversationContextStore(data_dir, ttl_minutes=100_000).ttl == timedelta(minutes=10080)


class TestSetupSessionStore:
    """Tests for SetupSessionStore."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        """Sessions should be stored per user and deletable."""
        sessions = SetupSessionStore(timeout_minutes=30)
        await sessions.set(SetupSession(user_ref=1, step="await_token"))

        assert (await sessions.get(1)).step == "await_token"
        assert await sessions.delete(1) is True
        assert await sessions.get(1) is None

    @pytest.mark.asyncio
    async def test_cleanup_expired(self):
        """Timed-out sessions should be removed by cleanup."""
        sessions = SetupSessionStore(timeout_minutes=30)
        await sessions.set(SetupSession(user_ref=1))
        await sessions.set(SetupSession(user_ref=2))

        removed = await sessions.cleanup_expired(now=utcnow() + timedelta(minutes=31))

        assert removed == 2
        assert len(sessions) == 0
