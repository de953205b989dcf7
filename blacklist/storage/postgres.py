"""
PostgreSQL storage handle.

The registry lives in `blacklist_lists`; entries of each type live in their
own `blacklist_entries_<type>` table, created the first time a source
declaring that type registers.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

import asyncpg

from blacklist.entries.schemas import EntryType, StorageResult
from blacklist.sources.schemas import Metadata
from blacklist.storage.base import Handle, StorageError
from blacklist.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_LISTS_SQL = """
CREATE TABLE IF NOT EXISTS blacklist_lists (
    name         TEXT PRIMARY KEY,
    types        TEXT[] NOT NULL,
    cache_time   INTERVAL NOT NULL,
    last_update  TIMESTAMPTZ NOT NULL
);
"""

_INSERT_LIST_SQL = """
INSERT INTO blacklist_lists (name, types, cache_time, last_update)
VALUES ($1, $2, $3, $4)
"""

_UPDATE_LIST_SQL = """
UPDATE blacklist_lists
SET types = $2, cache_time = $3, last_update = $4
WHERE name = $1
"""


def _entries_table(entry_type: EntryType) -> str:
    # EntryType names are restricted to [a-z0-9_], so they are safe to inline
    return f"blacklist_entries_{entry_type.name}"


def _create_entries_sql(entry_type: EntryType) -> str:
    table = _entries_table(entry_type)
    return f"""
CREATE TABLE IF NOT EXISTS {table} (
    id          BIGSERIAL PRIMARY KEY,
    list_name   TEXT NOT NULL,
    idx         TEXT NOT NULL,
    extra_data  JSONB NOT NULL DEFAULT '{{}}'
);

CREATE INDEX IF NOT EXISTS idx_{table}_idx ON {table}(idx);
CREATE INDEX IF NOT EXISTS idx_{table}_list_name ON {table}(list_name);
"""


def _record_to_metadata(record: Any) -> Metadata:
    """Convert an asyncpg Record to a Metadata dataclass."""
    return Metadata(
        name=record["name"],
        types=tuple(EntryType(t) for t in record["types"]),
        cache_time=record["cache_time"],
        last_update=record["last_update"],
    )


def _record_to_result(record: Any) -> StorageResult:
    """Convert an asyncpg Record to a StorageResult."""
    extra_data = record["extra_data"]
    if isinstance(extra_data, str):
        extra_data = json.loads(extra_data)
    return StorageResult(
        index=record["idx"],
        list_name=record["list_name"],
        extra_data=extra_data or {},
    )


class PostgresHandle(Handle):
    """Handle backed by PostgreSQL through a Database pool."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._schema_ready = False

    async def create_tables(self) -> None:
        """Create the registry table (idempotent)."""
        if self._schema_ready:
            return
        await self._db.execute(_CREATE_LISTS_SQL)
        self._schema_ready = True
        logger.info("Blacklist registry table ensured")

    async def get_registered_lists(self) -> list[Metadata]:
        await self.create_tables()
        rows = await self._db.fetch("SELECT * FROM blacklist_lists ORDER BY name")
        return [_record_to_metadata(r) for r in rows]

    async def register_list(self, meta: Metadata) -> None:
        await self.create_tables()
        try:
            async with self._db.transaction() as conn:
                for entry_type in meta.types:
                    await conn.execute(_create_entries_sql(entry_type))
                await conn.execute(
                    _INSERT_LIST_SQL,
                    meta.name,
                    [t.name for t in meta.types],
                    meta.cache_time,
                    meta.last_update,
                )
        except asyncpg.UniqueViolationError as e:
            raise StorageError(
                f"List '{meta.name}' is already registered", source_name=meta.name
            ) from e
        logger.info("Registered list %s (%s)", meta.name, ",".join(str(t) for t in meta.types))

    async def remove_list(self, meta: Metadata) -> None:
        async with self._db.transaction() as conn:
            for entry_type in meta.types:
                await self._delete_entries(conn, entry_type, meta.name)
            await conn.execute("DELETE FROM blacklist_lists WHERE name = $1", meta.name)
        logger.info("Removed list %s", meta.name)

    async def update_list_metadata(self, meta: Metadata) -> None:
        result = await self._db.execute(
            _UPDATE_LIST_SQL,
            meta.name,
            [t.name for t in meta.types],
            meta.cache_time,
            meta.last_update,
        )
        if result.endswith(" 0"):
            raise StorageError(f"List '{meta.name}' is not registered", source_name=meta.name)

    async def clear_cache(self, meta: Metadata) -> None:
        async with self._db.transaction() as conn:
            for entry_type in meta.types:
                await self._delete_entries(conn, entry_type, meta.name)

    async def insert_batch(self, entry_type: EntryType, results: Sequence[StorageResult]) -> None:
        if not results:
            return

        list_names = [r.list_name for r in results]
        indexes = [r.index for r in results]
        extra_data = [json.dumps(r.extra_data) for r in results]

        await self._db.execute(
            f"""
            INSERT INTO {_entries_table(entry_type)} (list_name, idx, extra_data)
            SELECT * FROM unnest($1::text[], $2::text[], $3::jsonb[])
            """,
            list_names, indexes, extra_data,
        )
        logger.debug("Inserted %d %s entries", len(results), entry_type)

    async def find_entries(self, entry_type: EntryType, index: str) -> list[StorageResult]:
        try:
            rows = await self._db.fetch(
                f"SELECT list_name, idx, extra_data FROM {_entries_table(entry_type)} "
                "WHERE idx = $1 ORDER BY id",
                index,
            )
        except asyncpg.UndefinedTableError:
            # No source of this type has ever registered
            return []
        return [_record_to_result(r) for r in rows]

    async def close(self) -> None:
        await self._db.close()

    @staticmethod
    async def _delete_entries(conn: asyncpg.Connection, entry_type: EntryType, list_name: str) -> None:
        try:
            async with conn.transaction():
                await conn.execute(
                    f"DELETE FROM {_entries_table(entry_type)} WHERE list_name = $1",
                    list_name,
                )
        except asyncpg.UndefinedTableError:
            pass
