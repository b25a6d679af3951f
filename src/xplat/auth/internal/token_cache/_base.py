from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Set, Type

from xplat.auth.errors import HelperProcessError, StorageReadError, StorageWriteError, TokenCacheError
from xplat.auth.internal.token_cache._entry import (
    Entry,
    EntryValue,
    deserialize_entry,
    dump_entries,
    load_entries_document,
    normalize_entry,
)
from xplat.auth.internal.token_cache._lookup import same_entry
from xplat.auth.internal.token_cache._process import ProcessRunner

log = logging.getLogger(__name__)

SERVICE_NAME = "xplat-auth"
KEYCHAIN_DESCRIPTION = "xplat access token"
CREDSTORE_TARGET_PREFIX = "AzureXplatCli:target="


def contains_entry(entries: Iterable[Mapping[str, EntryValue]], entry: Mapping[str, EntryValue]) -> bool:
    return any(same_entry(entry, other) for other in entries)


def merge_entries(
    existing: Sequence[Entry],
    new: Sequence[Entry],
    remove_first: Sequence[Entry] = (),
    stored_form: Optional[Callable[[Mapping[str, EntryValue]], Entry]] = None,
) -> List[Entry]:
    """Compute the entry set after removing ``remove_first`` and appending ``new``.

    An existing entry equal field-for-field to an incoming one is replaced by it.
    Incoming entries are only compared with the existing set, not with each other.
    ``stored_form`` maps an incoming entry to what the store reads back, since
    ``existing`` comes from the store.
    """
    convert = stored_form or dict
    dropped = [convert(entry) for entry in remove_first] + [convert(entry) for entry in new]
    kept = [entry for entry in existing if not contains_entry(dropped, entry)]
    return kept + list(new)


class TokenStorage(ABC):
    """Persists the full set of cache entries for one namespace.

    Every mutation rewrites the whole set. A store that does not exist yet reads as empty.
    """

    is_secure: bool = False

    @abstractmethod
    def load_entries(self) -> List[Entry]:
        """Return every persisted entry. Raises StorageReadError on I/O failure."""

    @abstractmethod
    def add_entries(self, new_entries: Sequence[Entry], entries_to_remove_first: Sequence[Entry] = ()) -> None:
        """Remove ``entries_to_remove_first``, then add ``new_entries``, as one update."""

    @abstractmethod
    def remove_entries(self, entries_to_remove: Sequence[Entry], entries_to_keep: Sequence[Entry]) -> None:
        """Persist exactly ``entries_to_keep``."""

    @abstractmethod
    def clear(self) -> None:
        """Persist an empty set."""

    def stored_form(self, entry: Mapping[str, EntryValue]) -> Entry:
        """Return ``entry`` the way ``load_entries`` reads it back once stored."""
        return deserialize_entry(normalize_entry(entry))


class DocumentTokenStorage(TokenStorage):
    """Base for stores that keep the entry set as one JSON document."""

    @abstractmethod
    def _read_document(self) -> Optional[str]:
        """Return the stored document, or None if nothing has been stored yet."""

    @abstractmethod
    def _write_document(self, document: str) -> None:
        """Replace the stored document."""

    @property
    def _location(self) -> str:
        return type(self).__name__

    def load_entries(self) -> List[Entry]:
        document = self._read_document()
        if document is None:
            return []
        try:
            return load_entries_document(document)
        except ValueError as e:
            raise StorageReadError(f"Token cache in {self._location} is corrupt: {e}") from e

    def _save(self, entries: Sequence[Entry]) -> None:
        try:
            document = dump_entries(entries)
        except TypeError as e:
            raise StorageWriteError(str(e)) from e
        self._write_document(document)
        log.debug("Saved %d token cache entries to %s", len(entries), self._location)

    def add_entries(self, new_entries: Sequence[Entry], entries_to_remove_first: Sequence[Entry] = ()) -> None:
        self._save(merge_entries(self.load_entries(), new_entries, entries_to_remove_first, self.stored_form))

    def remove_entries(self, entries_to_remove: Sequence[Entry], entries_to_keep: Sequence[Entry]) -> None:
        self._save(entries_to_keep)

    def clear(self) -> None:
        self._save([])


class HelperTokenStorage(TokenStorage):
    """Base for stores that keep one or more OS credential items per entry via a helper process.

    Subclasses name the items an entry occupies. Writes go first and stale items
    are deleted afterwards, skipping any item name the new set still uses.
    """

    is_secure = True

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    def _run(self, args: Sequence[str], error_cls: Type[TokenCacheError]) -> str:
        try:
            return self.runner(args)
        except HelperProcessError as e:
            raise error_cls(str(e)) from e

    @abstractmethod
    def _item_names(self, entry: Entry) -> List[str]:
        """Names of the OS credential items holding ``entry``."""

    @abstractmethod
    def _write_entry(self, entry: Entry) -> None:
        ...

    @abstractmethod
    def _delete_item(self, name: str) -> None:
        ...

    def _live_names(self, entries: Iterable[Entry]) -> Set[str]:
        return {name for entry in entries for name in self._item_names(entry)}

    def _delete_entry(self, entry: Entry, keep: Set[str]) -> None:
        for name in self._item_names(entry):
            if name not in keep:
                self._delete_item(name)

    def add_entries(self, new_entries: Sequence[Entry], entries_to_remove_first: Sequence[Entry] = ()) -> None:
        existing = self.load_entries()
        target = merge_entries(existing, new_entries, entries_to_remove_first, self.stored_form)
        for entry in new_entries:
            self._write_entry(entry)
        live = self._live_names(target)
        for entry in existing:
            if not any(entry is kept for kept in target):
                self._delete_entry(entry, live)
        log.debug("Stored %d token cache entries, %d in total", len(new_entries), len(target))

    def remove_entries(self, entries_to_remove: Sequence[Entry], entries_to_keep: Sequence[Entry]) -> None:
        live = self._live_names(entries_to_keep)
        for entry in entries_to_remove:
            self._delete_entry(entry, live)
        log.debug("Removed %d token cache entries", len(entries_to_remove))

    def clear(self) -> None:
        for entry in self.load_entries():
            self._delete_entry(entry, set())
