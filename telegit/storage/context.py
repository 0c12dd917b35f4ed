"""Conversation context cache persisted as JSON documents.

When a trigger message is a reply, the messages of its thread give the
classifier useful context ("close it", "add the bug label to that one").
Threads are cached by ``(chat_ref, thread_root_ref)`` with a TTL; expired
entries are ignored on read and removed by the scheduler's purge job.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import structlog

from telegit.exceptions import StorageError
from telegit.models.domain import ConversationContext, utcnow
from telegit.storage.json_store import JsonDocumentStore

log = structlog.get_logger(__name__)

MIN_TTL_MINUTES = 1
MAX_TTL_MINUTES = 10080
MAX_MESSAGES = 20


def _key(chat_ref: int, thread_root_ref: int) -> str:
    return f"{chat_ref}_{thread_root_ref}"


class ConversationContextStore:
    """TTL cache of reply-thread message chains."""

    def __init__(self, data_dir: str | Path, ttl_minutes: int = 60) -> None:
        """Initialize the store.

        Args:
            data_dir: Root data directory.
            ttl_minutes: Entry lifetime, clamped to one minute through one week.
        """
        self._store = JsonDocumentStore(data_dir, "context")
        self.ttl = timedelta(minutes=min(MAX_TTL_MINUTES, max(MIN_TTL_MINUTES, ttl_minutes)))

    async def get(self, chat_ref: int, thread_root_ref: int, now: datetime | None = None) -> ConversationContext | None:
        """Return the cached thread, or None when absent or expired."""
        document = await self._store.read(_key(chat_ref, thread_root_ref))
        if document is None:
            return None
        context = ConversationContext.from_dict(document)
        if context.is_expired(now or utcnow()):
            return None
        return context

    async def append_message(self, chat_ref: int, thread_root_ref: int, message: dict[str, Any]) -> ConversationContext:
        """Add a message to the thread and refresh its expiry.

        Only the most recent messages are kept.
        """
        now = utcnow()
        key = _key(chat_ref, thread_root_ref)
        context = await self.get(chat_ref, thread_root_ref, now)
        if context is None:
            context = ConversationContext(chat_ref=chat_ref, thread_root_ref=thread_root_ref)
        context.messages = (context.messages + [message])[-MAX_MESSAGES:]
        context.cached_at = now
        context.expires_at = now + self.ttl
        try:
            await self._store.write(key, context.to_dict())
        except OSError as e:
            raise StorageError(f"Failed to cache conversation context: {e}") from e
        return context

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete every expired thread.

        Returns:
            Number of entries removed.
        """
        now = now or utcnow()
        removed = 0
        async for document in self._store.iter_documents():
            context = ConversationContext.from_dict(document)
            if context.is_expired(now):
                if await self._store.delete(_key(context.chat_ref, context.thread_root_ref)):
                    removed += 1

        if removed:
            log.info("conversation_context_purged", count=removed)
        return removed
