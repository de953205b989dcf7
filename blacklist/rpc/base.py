"""
Remote procedure calls checked at query time.

An RPC answers membership for one entry type without going through the
cache. Its results are merged into check_entries() output and never stored.
"""

from abc import ABC, abstractmethod

from blacklist.entries.schemas import EntryType, StorageResult


class RPCError(Exception):
    """Reported when an RPC call fails or exceeds its deadline."""

    def __init__(self, message: str, rpc_name: str | None = None, entry_type: EntryType | None = None):
        super().__init__(message)
        self.rpc_name = rpc_name
        self.entry_type = entry_type
        self.source_name = rpc_name


class RPC(ABC):
    """Abstract base class for live lookups."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    @abstractmethod
    def entry_type(self) -> EntryType:
        """The entry type this RPC can check."""
        ...

    @abstractmethod
    async def check(self, *indexes: str) -> dict[str, StorageResult]:
        """
        Check a batch of indexes.

        Returns:
            Mapping of index -> hit, for the indexes that were hits only
        """
        ...
