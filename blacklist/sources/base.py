"""
Base interface for blacklist feed sources.

A source describes itself through Metadata (name, entry types, cache time)
and emits raw entries into one typed stream per declared entry type:

    async def fetch_data(self, streams, errors):
        async for line in self._lines():
            await streams[IP].send(Entry(line, self))
        streams[IP].close()

Sources SHOULD close each stream as soon as that type is exhausted so
downstream stages can finish early; any stream still open when fetch_data
returns (or raises) is closed by the pipeline. Sources MUST NOT close a
stream twice. Non-fatal problems (a malformed line) are passed to
`errors.report()`; raising from fetch_data ends the fetch for this run.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from blacklist.entries.schemas import Entry, ExtraValue
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryTypeMap
from blacklist.sources.schemas import Metadata


class FetchError(Exception):
    """Raised (or reported) when a source's fetch fails mid-feed."""

    def __init__(self, message: str, source_name: str | None = None):
        super().__init__(message)
        self.source_name = source_name


class FetchTimeoutError(FetchError):
    """Raised when a source's fetch exceeds its deadline."""


class FeedFormatError(ValueError):
    """Reported when a single feed line cannot be parsed."""

    def __init__(self, message: str, source_name: str | None = None, line: str | None = None):
        super().__init__(message)
        self.source_name = source_name
        self.line = line


class BlacklistSource(ABC):
    """
    Abstract base class for feed adapters.

    Subclasses must implement:
        - fetch_data(): emit entries into the typed streams

    The base class holds the source Metadata, which the reconciler replaces
    with the persisted timestamps before deciding whether to refetch.
    """

    def __init__(self, metadata: Metadata):
        self._metadata = metadata

    def get_metadata(self) -> Metadata:
        return self._metadata

    def set_metadata(self, metadata: Metadata) -> None:
        self._metadata = metadata

    @property
    def name(self) -> str:
        return self._metadata.name

    def entry(self, index: str, extra_data: Mapping[str, ExtraValue] | None = None) -> Entry:
        """Build an entry owned by this source."""
        return Entry(index=index, source=self, extra_data=dict(extra_data or {}))

    @abstractmethod
    async def fetch_data(self, streams: EntryTypeMap, errors: ErrorReporter) -> None:
        """
        Fetch the source's data and send entries into `streams`.

        Args:
            streams: One stream per entry type in the metadata
            errors: Sink for non-fatal errors (malformed lines etc.)

        Raises:
            Exception: Any fatal transport or parse failure. The pipeline
                reports it and treats the source as not refreshed.
        """
        ...

    def __repr__(self) -> str:
        types = ",".join(str(t) for t in self._metadata.types)
        return f"{type(self).__name__}(name={self.name!r}, types={types})"
