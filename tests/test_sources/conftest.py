"""Shared fixtures for sources tests."""

from collections.abc import AsyncIterator, Callable

import pytest

from blacklist.entries.schemas import Entry, EntryType
from blacklist.queues.streams import EntryTypeMap
from blacklist.sources.base import BlacklistSource


@pytest.fixture
def static_lines() -> Callable[..., Callable[[], AsyncIterator[str]]]:
    """Factory for LineSources yielding fixed lines."""

    def _make(*lines: str) -> Callable[[], AsyncIterator[str]]:
        async def _lines() -> AsyncIterator[str]:
            for line in lines:
                yield line

        return _lines

    return _make


@pytest.fixture
def run_fetch(reporter):
    """
    Run a source's fetch_data to completion and collect what it emitted.

    Streams are large enough that the fetch never waits on a consumer.
    """

    async def _run(source: BlacklistSource) -> dict[EntryType, list[Entry]]:
        streams = EntryTypeMap(source.get_metadata().types, capacity=1000)
        await source.fetch_data(streams, reporter)
        assert streams.all_closed
        emitted = {}
        for entry_type in streams:
            emitted[entry_type] = [entry async for entry in streams[entry_type]]
        return emitted

    return _run
