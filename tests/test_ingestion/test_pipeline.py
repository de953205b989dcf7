"""Tests for the fetch -> validate -> insert pipeline."""

import asyncio
from collections.abc import Sequence
from datetime import timedelta

import pytest

from blacklist.entries.schemas import HOSTNAME, IP, EntryType, StorageResult
from blacklist.entries.validators import EntryValidationError, UnknownEntryTypeError
from blacklist.ingestion.pipeline import IngestionPipeline
from blacklist.queues.streams import StreamClosedError
from blacklist.sources.base import BlacklistSource, FetchError, FetchTimeoutError
from blacklist.sources.schemas import Metadata
from blacklist.storage.base import StorageError
from blacklist.storage.memory import InMemoryHandle


class RecordingHandle(InMemoryHandle):
    """In-memory handle that records batch sizes and can fail chosen batches."""

    def __init__(self, fail_batches: Sequence[int] = ()):
        super().__init__()
        self.batches: list[int] = []
        self._fail_batches = set(fail_batches)

    async def insert_batch(self, entry_type: EntryType, results: Sequence[StorageResult]) -> None:
        batch_number = len(self.batches)
        self.batches.append(len(results))
        if batch_number in self._fail_batches:
            raise ConnectionError("connection to storage lost")
        await super().insert_batch(entry_type, results)


class PartialCloseSource(BlacklistSource):
    """Closes its IP stream but leaves the hostname stream open."""

    def __init__(self):
        super().__init__(Metadata(name="partial", types=(IP, HOSTNAME), cache_time=timedelta(0)))

    async def fetch_data(self, streams, errors) -> None:
        await streams[IP].send(self.entry("10.0.0.1"))
        streams[IP].close()
        await streams[HOSTNAME].send(self.entry("example.com"))


class DoubleCloseSource(BlacklistSource):
    def __init__(self):
        super().__init__(Metadata(name="double", types=(IP,), cache_time=timedelta(0)))

    async def fetch_data(self, streams, errors) -> None:
        streams[IP].close()
        streams[IP].close()


def _pipeline(handle, type_registry, pipeline_config, metrics) -> IngestionPipeline:
    return IngestionPipeline(handle, type_registry, pipeline_config, metrics)


class TestPipelineRun:
    """Tests for IngestionPipeline.run."""

    @pytest.mark.asyncio
    async def test_inserts_every_valid_entry(
        self, handle, type_registry, pipeline_config, metrics, reporter, make_source
    ):
        source = make_source(entries={IP: ["10.0.0.1", "10.0.0.2", "10.0.0.3"]})
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await pipeline.run(source, reporter)

        assert result.complete
        assert result.counts[IP].fetched == 3
        assert result.counts[IP].inserted == 3
        assert handle.count(IP, "feed1") == 3
        assert reporter.errors == []

    @pytest.mark.asyncio
    async def test_multi_type_source_rejects_invalid(
        self, handle, type_registry, pipeline_config, metrics, reporter, make_source
    ):
        """Each type gets its own validation; invalid entries are dropped and reported."""
        source = make_source(
            entries={
                IP: ["10.0.0.1", "not-an-ip", "10.0.0.2"],
                HOSTNAME: ["example.com", "bad!host", "example.org"],
            }
        )
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await pipeline.run(source, reporter)

        assert result.complete
        assert result.counts[IP].rejected == 1
        assert result.counts[HOSTNAME].rejected == 1
        assert handle.count(IP) == 2
        assert handle.count(HOSTNAME) == 2
        assert len(reporter.of_type(EntryValidationError)) == 2

    @pytest.mark.asyncio
    async def test_inserts_in_batches(self, type_registry, pipeline_config, metrics, reporter, make_source):
        """Batches of insert_batch_size, with the remainder flushed on close."""
        handle = RecordingHandle()
        source = make_source(entries={IP: [f"10.0.0.{i}" for i in range(5)]})
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        await pipeline.run(source, reporter)

        assert handle.batches == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_closes_streams_left_open(
        self, handle, type_registry, pipeline_config, metrics, reporter
    ):
        """Streams a source forgets to close are closed once the fetch returns."""
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await asyncio.wait_for(pipeline.run(PartialCloseSource(), reporter), timeout=2)

        assert result.complete
        assert handle.count(IP) == 1
        assert handle.count(HOSTNAME) == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_partial_data(
        self, handle, type_registry, pipeline_config, metrics, reporter, make_source
    ):
        """A failing fetch is reported; entries sent before the failure are stored."""
        source = make_source(entries={IP: ["10.0.0.1", "10.0.0.2", "10.0.0.3"]}, fail_after=2)
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await pipeline.run(source, reporter)

        assert not result.fetch_ok
        assert not result.complete
        assert handle.count(IP) == 2
        [error] = reporter.of_type(FetchError)
        assert error.source_name == "feed1"
        assert isinstance(error.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_fetch_deadline(
        self, handle, type_registry, pipeline_config, metrics, reporter, make_source
    ):
        """A fetch exceeding its deadline is cancelled and its streams closed."""
        source = make_source(entries={IP: ["10.0.0.1"]}, hang=True)
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await asyncio.wait_for(pipeline.run(source, reporter), timeout=5)

        assert not result.complete
        assert handle.count(IP) == 1
        [error] = reporter.of_type(FetchTimeoutError)
        assert error.source_name == "feed1"

    @pytest.mark.asyncio
    async def test_failed_batch_is_reported_and_draining_continues(
        self, type_registry, pipeline_config, metrics, reporter, make_source
    ):
        handle = RecordingHandle(fail_batches=[0])
        source = make_source(entries={IP: [f"10.0.0.{i}" for i in range(5)]})
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await pipeline.run(source, reporter)

        assert result.fetch_ok
        assert not result.complete
        assert result.counts[IP].accepted == 5
        assert result.counts[IP].inserted == 3
        [error] = reporter.of_type(StorageError)
        assert error.entry_type == IP
        assert error.source_name == "feed1"

    @pytest.mark.asyncio
    async def test_unknown_type_is_not_fetched(
        self, handle, type_registry, pipeline_config, metrics, reporter, make_source
    ):
        source = make_source(entries={EntryType("asn"): ["AS15169"]})
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await pipeline.run(source, reporter)

        assert not result.complete
        assert source.fetch_count == 0
        [error] = reporter.of_type(UnknownEntryTypeError)
        assert error.source_name == "feed1"

    @pytest.mark.asyncio
    async def test_double_close_reported_as_fetch_error(
        self, handle, type_registry, pipeline_config, metrics, reporter
    ):
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        result = await pipeline.run(DoubleCloseSource(), reporter)

        assert not result.fetch_ok
        [error] = reporter.of_type(FetchError)
        assert isinstance(error.__cause__, StreamClosedError)

    @pytest.mark.asyncio
    async def test_records_metrics(
        self, handle, type_registry, pipeline_config, metrics, metrics_registry, reporter, make_source
    ):
        source = make_source(entries={IP: ["10.0.0.1", "bogus"]})
        pipeline = _pipeline(handle, type_registry, pipeline_config, metrics)

        await pipeline.run(source, reporter)

        labels = {"entry_type": "ip"}
        assert metrics_registry.get_sample_value("blacklist_entries_fetched_total", labels) == 2
        assert metrics_registry.get_sample_value("blacklist_entries_rejected_total", labels) == 1
        assert metrics_registry.get_sample_value("blacklist_entries_inserted_total", labels) == 1
