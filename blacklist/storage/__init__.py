"""Storage layer: registry and entry cache backends."""

from blacklist.storage.base import DEFAULT_BATCH_SIZE, Handle, StorageError
from blacklist.storage.database import Database
from blacklist.storage.memory import InMemoryHandle
from blacklist.storage.postgres import PostgresHandle

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "Database",
    "Handle",
    "InMemoryHandle",
    "PostgresHandle",
    "StorageError",
]
