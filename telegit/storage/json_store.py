"""
JSON document persistence with atomic writes.

This module provides :class:`JsonDocumentStore`, the single storage engine
behind every repository in :mod:`telegit.storage`. Each collection is a
directory and each record a ``{key}.json`` file::

    .telegit/data/
        operations/
            3f2a9c....json
        feedback/
            81bd02....json

Integrity:
    - Writes go to a ``.tmp`` sibling first and are renamed into place, so
      a crash never leaves a half-written document behind.
    - Each document has its own asyncio lock while in use. Different
      documents can be touched concurrently; a single document is accessed
      serially.

Example:
    >>> store = JsonDocumentStore(".telegit/data", "operations")
    >>> await store.write("op-1", {"id": "op-1", "status": "completed"})
    >>> doc = await store.read("op-1")
"""

import asyncio
import json
import re
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiofiles
import structlog

log = structlog.get_logger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class JsonDocumentStore:
    """Store JSON documents as individual files in one collection directory.

    Attributes:
        directory: Directory holding the collection's documents.
    """

    def __init__(self, data_dir: str | Path, collection: str) -> None:
        """Initialize the store, creating the collection directory if needed.

        Args:
            data_dir: Root data directory shared by all collections.
            collection: Collection name, used as the subdirectory name.
        """
        self.directory = Path(data_dir) / collection
        self.directory.mkdir(parents=True, exist_ok=True)
        # An entry lives only while some coroutine references its lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        # Guards creation of entries in self._locks
        self._locks_lock = asyncio.Lock()

    async def _get_lock(self, key: str) -> asyncio.Lock:
        async with self._locks_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    def _path(self, key: str) -> Path:
        return self.directory / f"{_SAFE_KEY.sub('_', key)}.json"

    async def _read_internal(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        async with aiofiles.open(path) as f:
            content = await f.read()
        data: dict[str, Any] = json.loads(content)
        return data

    async def _write_internal(self, key: str, document: dict[str, Any]) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(document, indent=2, ensure_ascii=False))

        # Atomic rename on POSIX when source and target share a filesystem
        tmp_path.replace(path)

    async def read(self, key: str) -> dict[str, Any] | None:
        """Return the document stored under ``key``, or None if absent."""
        lock = await self._get_lock(key)
        async with lock:
            return await self._read_internal(key)

    async def write(self, key: str, document: dict[str, Any]) -> None:
        """Atomically create or replace the document stored under ``key``."""
        lock = await self._get_lock(key)
        async with lock:
            await self._write_internal(key, document)

    async def insert(self, key: str, document: dict[str, Any]) -> bool:
        """Write the document only if ``key`` is not taken yet.

        Returns:
            True if the document was written, False if one already existed.
        """
        lock = await self._get_lock(key)
        async with lock:
            if self._path(key).exists():
                return False
            await self._write_internal(key, document)
            return True

    async def delete(self, key: str) -> bool:
        """Delete the document under ``key``.

        Returns:
            True if a document was removed, False if none existed.
        """
        lock = await self._get_lock(key)
        async with lock:
            path = self._path(key)
            if not path.exists():
                return False
            path.unlink()
            return True

    @asynccontextmanager
    async def transaction(self, key: str) -> AsyncIterator[dict[str, Any] | None]:
        """Read, modify and save one document while holding its lock.

        Yields the current document (None when absent). Modifications made in
        place are saved on a clean exit. If the body raises, nothing is saved.

        Example:
            >>> async with store.transaction("op-1") as doc:
            ...     doc["status"] = "undone"
        """
        lock = await self._get_lock(key)
        async with lock:
            document = await self._read_internal(key)
            try:
                yield document
                if document is not None:
                    await self._write_internal(key, document)
            except Exception:
                log.error("document_transaction_failed", collection=self.directory.name, key=key)
                raise

    async def iter_documents(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every document in the collection.

        Files that disappear or fail to parse while iterating are skipped and
        logged, so one corrupt record cannot block a scan.
        """
        for path in sorted(self.directory.glob("*.json")):
            try:
                async with aiofiles.open(path) as f:
                    content = await f.read()
                yield json.loads(content)
            except FileNotFoundError:
                continue
            except json.JSONDecodeError as e:
                log.warning("document_unreadable", collection=self.directory.name, path=str(path), error=str(e))

    async def list_all(self) -> list[dict[str, Any]]:
        """Return every document in the collection."""
        return [doc async for doc in self.iter_documents()]
