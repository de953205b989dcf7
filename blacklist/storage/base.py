"""
Storage handle interface for the blacklist cache.

A Handle persists the source registry (one Metadata row per source) and the
cached entries (one collection per entry type). Implementations create any
backing schema lazily, on first registration.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, Sequence

from blacklist.entries.schemas import Entry, EntryType, StorageResult
from blacklist.queues.error_sink import ErrorReporter
from blacklist.sources.schemas import Metadata

DEFAULT_BATCH_SIZE = 50_000


class StorageError(Exception):
    """Raised (or reported) when a registry or cache operation fails."""

    def __init__(
        self,
        message: str,
        source_name: str | None = None,
        entry_type: EntryType | None = None,
    ):
        super().__init__(message)
        self.source_name = source_name
        self.entry_type = entry_type


class Handle(ABC):
    """
    Abstract storage backend.

    Subclasses implement the registry operations, find_entries and
    insert_batch. insert_entries (batching over a stream) is shared.
    """

    @abstractmethod
    async def get_registered_lists(self) -> list[Metadata]:
        """Return every registered source's metadata."""
        ...

    @abstractmethod
    async def register_list(self, meta: Metadata) -> None:
        """Register a new source, creating backing tables as needed."""
        ...

    @abstractmethod
    async def remove_list(self, meta: Metadata) -> None:
        """Delete a source's cached entries and its registry row."""
        ...

    @abstractmethod
    async def update_list_metadata(self, meta: Metadata) -> None:
        """Overwrite a registered source's metadata."""
        ...

    @abstractmethod
    async def clear_cache(self, meta: Metadata) -> None:
        """Delete a source's cached entries for all of its entry types."""
        ...

    @abstractmethod
    async def insert_batch(self, entry_type: EntryType, results: Sequence[StorageResult]) -> None:
        """Write one batch of results of a single entry type."""
        ...

    @abstractmethod
    async def find_entries(self, entry_type: EntryType, index: str) -> list[StorageResult]:
        """Find cached results of a type matching `index` exactly."""
        ...

    async def insert_entries(
        self,
        entry_type: EntryType,
        entries: AsyncIterable[Entry],
        errors: ErrorReporter,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Drain `entries` into storage in batches of `batch_size`.

        A failed batch is reported and dropped; draining continues so the
        upstream stages are never left blocked. An entry that cannot be
        converted to a StorageResult is reported and skipped on its own. The
        final partial batch is flushed when the stream ends.

        Returns:
            Number of entries successfully written
        """
        batch: list[StorageResult] = []
        written = 0

        async for entry in entries:
            try:
                result = entry.to_storage_result()
            except ValueError as e:
                error = StorageError(
                    f"Cannot store '{entry_type}' entry {entry.index!r}: {e}",
                    source_name=entry.list_name,
                    entry_type=entry_type,
                )
                error.__cause__ = e
                errors.report(error)
                continue
            batch.append(result)
            if len(batch) >= batch_size:
                written += await self._flush(entry_type, batch, errors)
                batch = []

        if batch:
            written += await self._flush(entry_type, batch, errors)

        return written

    async def _flush(
        self,
        entry_type: EntryType,
        batch: list[StorageResult],
        errors: ErrorReporter,
    ) -> int:
        try:
            await self.insert_batch(entry_type, batch)
        except Exception as e:
            error = StorageError(
                f"Failed to insert {len(batch)} '{entry_type}' entries: {e}",
                source_name=batch[0].list_name,
                entry_type=entry_type,
            )
            error.__cause__ = e
            errors.report(error)
            return 0
        return len(batch)

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None
