"""Group links created through the private-chat setup, stored as JSON documents.

Documents are keyed by ``{chat_ref}``: a group is linked to at most one
repository at a time, and linking again replaces the previous link.
"""

from pathlib import Path

import structlog

from telegit.exceptions import StorageError
from telegit.models.domain import GroupLink
from telegit.storage.json_store import JsonDocumentStore

log = structlog.get_logger(__name__)


class JsonGroupLinkRepository:
    """Group link records, one JSON file per chat."""

    def __init__(self, data_dir: str | Path) -> None:
        self._store = JsonDocumentStore(data_dir, "groups")

    async def get(self, chat_ref: int) -> GroupLink | None:
        document = await self._store.read(str(chat_ref))
        return GroupLink.from_dict(document) if document is not None else None

    async def save(self, link: GroupLink) -> GroupLink:
        """Create or replace the link for ``link.chat_ref``.

        Raises:
            StorageError: If the record cannot be written.
        """
        try:
            await self._store.write(str(link.chat_ref), link.to_dict())
        except OSError as e:
            raise StorageError(f"Failed to store group link for chat {link.chat_ref}: {e}") from e

        log.info("group_link_saved", chat_ref=link.chat_ref, repository=link.repository)
        return link

    async def delete(self, chat_ref: int) -> bool:
        """Remove the chat's link. Returns False if there was none."""
        try:
            return await self._store.delete(str(chat_ref))
        except OSError as e:
            raise StorageError(f"Failed to delete group link for chat {chat_ref}: {e}") from e

    async def list_all(self) -> list[GroupLink]:
        return [GroupLink.from_dict(document) for document in await self._store.list_all()]
