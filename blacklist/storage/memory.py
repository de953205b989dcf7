"""In-memory storage handle for tests and development."""

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import replace

from blacklist.entries.schemas import EntryType, StorageResult
from blacklist.sources.schemas import Metadata
from blacklist.storage.base import Handle, StorageError


class InMemoryHandle(Handle):
    """
    Dict-backed Handle.

    Entries are kept per entry type and indexed by value, mirroring the
    per-type tables of the database backend.
    """

    def __init__(self) -> None:
        self._lists: dict[str, Metadata] = {}
        self._entries: dict[EntryType, dict[str, list[StorageResult]]] = {}

    async def get_registered_lists(self) -> list[Metadata]:
        return [replace(meta) for meta in self._lists.values()]

    async def register_list(self, meta: Metadata) -> None:
        if meta.name in self._lists:
            raise StorageError(f"List '{meta.name}' is already registered", source_name=meta.name)
        for entry_type in meta.types:
            self._entries.setdefault(entry_type, defaultdict(list))
        self._lists[meta.name] = replace(meta)

    async def remove_list(self, meta: Metadata) -> None:
        self._drop_results(meta)
        self._lists.pop(meta.name, None)

    async def update_list_metadata(self, meta: Metadata) -> None:
        if meta.name not in self._lists:
            raise StorageError(f"List '{meta.name}' is not registered", source_name=meta.name)
        self._lists[meta.name] = replace(meta)

    async def clear_cache(self, meta: Metadata) -> None:
        self._drop_results(meta)

    def _drop_results(self, meta: Metadata) -> None:
        for entry_type in meta.types:
            table = self._entries.get(entry_type)
            if table is None:
                continue
            for index in list(table):
                kept = [r for r in table[index] if r.list_name != meta.name]
                if kept:
                    table[index] = kept
                else:
                    del table[index]

    async def insert_batch(self, entry_type: EntryType, results: Sequence[StorageResult]) -> None:
        table = self._entries.setdefault(entry_type, defaultdict(list))
        for result in results:
            table[result.index].append(result)

    async def find_entries(self, entry_type: EntryType, index: str) -> list[StorageResult]:
        table = self._entries.get(entry_type)
        if table is None:
            return []
        return list(table.get(index, ()))

    def count(self, entry_type: EntryType, list_name: str | None = None) -> int:
        """Number of cached results of a type, optionally for one source."""
        table = self._entries.get(entry_type, {})
        return sum(
            1
            for results in table.values()
            for r in results
            if list_name is None or r.list_name == list_name
        )
