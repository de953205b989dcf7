"""Tests for the in-memory handle and shared batching."""

from datetime import timedelta

import pytest

from blacklist.entries.schemas import HOSTNAME, IP, StorageResult
from blacklist.queues.streams import EntryStream
from blacklist.sources.schemas import Metadata
from blacklist.storage.base import StorageError
from blacklist.storage.memory import InMemoryHandle


def _meta(name: str, *types) -> Metadata:
    return Metadata(name=name, types=types, cache_time=timedelta(hours=1))


class TestInMemoryHandle:
    """Tests for InMemoryHandle."""

    @pytest.mark.asyncio
    async def test_register_and_list(self, handle):
        await handle.register_list(_meta("feed1", IP))

        [meta] = await handle.get_registered_lists()
        assert meta.name == "feed1"

    @pytest.mark.asyncio
    async def test_register_duplicate_raises(self, handle):
        await handle.register_list(_meta("feed1", IP))

        with pytest.raises(StorageError):
            await handle.register_list(_meta("feed1", IP))

    @pytest.mark.asyncio
    async def test_update_unregistered_raises(self, handle):
        with pytest.raises(StorageError):
            await handle.update_list_metadata(_meta("feed1", IP))

    @pytest.mark.asyncio
    async def test_registry_returns_copies(self, handle):
        await handle.register_list(_meta("feed1", IP))

        [meta] = await handle.get_registered_lists()
        meta.cache_time = timedelta(0)

        [stored] = await handle.get_registered_lists()
        assert stored.cache_time == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_clear_cache_only_touches_one_source(self, handle):
        await handle.insert_batch(
            IP,
            [
                StorageResult(index="10.0.0.1", list_name="feed1"),
                StorageResult(index="10.0.0.1", list_name="feed2"),
            ],
        )

        await handle.clear_cache(_meta("feed1", IP))

        assert [r.list_name for r in await handle.find_entries(IP, "10.0.0.1")] == ["feed2"]

    @pytest.mark.asyncio
    async def test_remove_list(self, handle):
        meta = _meta("feed1", IP, HOSTNAME)
        await handle.register_list(meta)
        await handle.insert_batch(HOSTNAME, [StorageResult(index="bad.test", list_name="feed1")])

        await handle.remove_list(meta)

        assert await handle.get_registered_lists() == []
        assert await handle.find_entries(HOSTNAME, "bad.test") == []

    @pytest.mark.asyncio
    async def test_find_unknown_type(self, handle):
        assert await handle.find_entries(IP, "10.0.0.1") == []


class TestInsertEntries:
    """Tests for Handle.insert_entries batching."""

    @pytest.mark.asyncio
    async def test_batches_and_flushes_remainder(self, make_source, reporter):
        class CountingHandle(InMemoryHandle):
            def __init__(self):
                super().__init__()
                self.sizes = []

            async def insert_batch(self, entry_type, results):
                self.sizes.append(len(results))
                await super().insert_batch(entry_type, results)

        source = make_source()
        stream = EntryStream(IP, capacity=10)
        for i in range(7):
            await stream.send(source.entry(f"10.0.0.{i}"))
        stream.close()
        handle = CountingHandle()

        written = await handle.insert_entries(IP, stream, reporter, batch_size=3)

        assert written == 7
        assert handle.sizes == [3, 3, 1]
        assert handle.count(IP, "feed1") == 7

    @pytest.mark.asyncio
    async def test_failed_batch_reported(self, make_source, reporter):
        class FailingHandle(InMemoryHandle):
            async def insert_batch(self, entry_type, results):
                raise ConnectionError("connection lost")

        source = make_source()
        stream = EntryStream(IP, capacity=10)
        await stream.send(source.entry("10.0.0.1"))
        stream.close()

        written = await FailingHandle().insert_entries(IP, stream, reporter)

        assert written == 0
        [error] = reporter.of_type(StorageError)
        assert error.source_name == "feed1"
        assert error.entry_type == IP
        assert isinstance(error.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_unstorable_entry_skipped(self, handle, make_source, reporter):
        """An entry with unsupported extra data is reported; the rest are stored."""
        source = make_source()
        stream = EntryStream(IP, capacity=10)
        await stream.send(source.entry("10.0.0.1", {"score": 1.5}))
        for i in range(2, 6):
            await stream.send(source.entry(f"10.0.0.{i}"))
        stream.close()

        written = await handle.insert_entries(IP, stream, reporter, batch_size=2)

        assert written == 4
        assert handle.count(IP, "feed1") == 4
        assert await handle.find_entries(IP, "10.0.0.1") == []
        [error] = reporter.of_type(StorageError)
        assert error.source_name == "feed1"
        assert error.entry_type == IP
        assert "10.0.0.1" in str(error)
