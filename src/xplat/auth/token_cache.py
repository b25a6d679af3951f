"""Token cache used by the authentication layer.

``TokenCache`` puts lookup on top of a TokenStorage backend. It keeps nothing in
memory between calls: every operation re-reads the store, so callers always see
what was last persisted, also by another process.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from threading import Lock
from typing import Any, Iterator, List, Mapping, Sequence, Tuple

from xplat.auth.errors import TokenCacheError
from xplat.auth.internal.token_cache import Entry, TokenStorage, find
from xplat.auth.internal.token_cache._base import contains_entry
from xplat.auth.internal.token_cache._entry import normalize_entry

log = logging.getLogger(__name__)

# Ignored when matching entries to remove, a refreshed token changes it
VOLATILE_FIELDS = ("expiresOn",)


@contextmanager
def _logged(operation: str) -> Iterator[None]:
    try:
        yield
    except TokenCacheError as e:
        log.error("Token cache %s failed: %s", operation, e)
        raise


def _partition_for_removal(existing: Sequence[Entry], entries: Sequence[Entry]) -> Tuple[List[Entry], List[Entry]]:
    to_remove, to_keep = [], []
    for entry in existing:
        query = {k: v for k, v in entry.items() if k not in VOLATILE_FIELDS}
        if find(query, entries):
            to_remove.append(entry)
        else:
            to_keep.append(entry)
    return to_remove, to_keep


class TokenCache:
    """Add, remove and find cache entries in one storage backend.

    Calls on one instance are serialized. Storage failures are logged and re-raised
    as TokenCacheError subclasses; callers should treat them as "nothing cached".
    """

    def __init__(self, storage: TokenStorage) -> None:
        self.storage = storage
        self._lock = Lock()

    @property
    def is_secure(self) -> bool:
        return self.storage.is_secure

    def load_entries(self) -> List[Entry]:
        with self._lock, _logged("load"):
            return self.storage.load_entries()

    def find(self, query: Mapping[str, Any]) -> List[Entry]:
        """Return all entries matching every field in ``query``, ``userId`` case-insensitively.

        The query is compared in the form the store reads entries back, so a textual
        ``expiresIn="3599"`` matches a stored ``3599``.
        """
        with self._lock, _logged("find"):
            return find(self.storage.stored_form(query), self.storage.load_entries())

    def add(self, entries: Sequence[Mapping[str, Any]]) -> None:
        """Add ``entries`` in one batch. An existing identical entry is replaced, not duplicated."""
        new = [normalize_entry(entry) for entry in entries]
        with self._lock, _logged("add"):
            existing = self.storage.load_entries()
            stored = [self.storage.stored_form(entry) for entry in new]
            duplicates = [entry for entry in existing if contains_entry(stored, entry)]
            self.storage.add_entries(new, duplicates)

    def remove(self, entries: Sequence[Mapping[str, Any]]) -> None:
        """Remove every stored entry that matches one of ``entries``.

        A stored entry matches when all of its fields except ``expiresOn`` equal the
        fields of a given entry, with ``userId`` compared case-insensitively.
        """
        with self._lock, _logged("remove"):
            removal = [self.storage.stored_form(entry) for entry in entries]
            to_remove, to_keep = _partition_for_removal(self.storage.load_entries(), removal)
            if not to_remove:
                log.debug("No token cache entries matched for removal")
                return
            self.storage.remove_entries(to_remove, to_keep)

    def clear(self) -> None:
        with self._lock, _logged("clear"):
            self.storage.clear()


class AsyncTokenCache:
    """Asyncio flavour of TokenCache.

    Storage I/O runs in a worker thread so the event loop is never blocked, and an
    asyncio.Lock serializes operations on the instance.
    """

    def __init__(self, storage: TokenStorage) -> None:
        self._cache = TokenCache(storage)
        self._lock = asyncio.Lock()

    @property
    def storage(self) -> TokenStorage:
        return self._cache.storage

    @property
    def is_secure(self) -> bool:
        return self._cache.is_secure

    async def load_entries(self) -> List[Entry]:
        async with self._lock:
            return await asyncio.to_thread(self._cache.load_entries)

    async def find(self, query: Mapping[str, Any]) -> List[Entry]:
        async with self._lock:
            return await asyncio.to_thread(self._cache.find, query)

    async def add(self, entries: Sequence[Mapping[str, Any]]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._cache.add, entries)

    async def remove(self, entries: Sequence[Mapping[str, Any]]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._cache.remove, entries)

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._cache.clear)
