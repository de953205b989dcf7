"""
Bounded typed entry streams connecting the pipeline stages.

Each EntryStream is a small bounded queue: a send blocks until the consumer
has room, which gives the fetch -> validate -> insert chain its
backpressure. Closing is enforced exactly once by the wrapper, and closing
never blocks so it is safe inside `finally` blocks during cancellation.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable, Iterator, Mapping

from blacklist.entries.schemas import Entry, EntryType

# End-of-stream marker placed on the queue when there is room for it
_END = object()


class StreamClosedError(RuntimeError):
    """Raised when sending to, or closing, an already closed stream."""

    def __init__(self, entry_type: EntryType, action: str):
        super().__init__(f"Cannot {action} '{entry_type}' stream: already closed")
        self.entry_type = entry_type


class EntryStream:
    """
    A bounded, single-consumer stream of entries of one type.

    Usage:
        stream = EntryStream(IP, capacity=1)

        # producer
        await stream.send(entry)
        stream.close()

        # consumer
        async for entry in stream:
            ...
    """

    def __init__(self, entry_type: EntryType, capacity: int = 1):
        if capacity < 1:
            raise ValueError("stream capacity must be at least 1")
        self.entry_type = entry_type
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, entry: Entry) -> None:
        """Hand an entry to the consumer, waiting while the stream is full."""
        if self._closed:
            raise StreamClosedError(self.entry_type, "send to")
        await self._queue.put(entry)
        self.sent += 1

    def close(self) -> None:
        """
        Mark the stream as finished.

        If the queue is full the marker is skipped: the consumer is not
        waiting on an empty queue and stops once it has drained it.
        """
        if self._closed:
            raise StreamClosedError(self.entry_type, "close")
        self._closed = True
        if not self._queue.full():
            self._queue.put_nowait(_END)

    def __aiter__(self) -> AsyncIterator[Entry]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Entry]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _END:
                return
            yield item


class EntryTypeMap(Mapping[EntryType, EntryStream]):
    """
    One EntryStream per entry type declared by a source.

    Carries several typed sub-streams through a single fetch call. The
    pipeline calls close_open() once the fetch task ends, so every stream
    is closed exactly once whether the source closed it or not.
    """

    def __init__(self, entry_types: Iterable[EntryType], capacity: int = 1):
        self._streams: dict[EntryType, EntryStream] = {}
        for entry_type in entry_types:
            if entry_type in self._streams:
                raise ValueError(f"Duplicate entry type '{entry_type}' in stream map")
            self._streams[entry_type] = EntryStream(entry_type, capacity)

    def __getitem__(self, entry_type: EntryType) -> EntryStream:
        return self._streams[entry_type]

    def __iter__(self) -> Iterator[EntryType]:
        return iter(self._streams)

    def __len__(self) -> int:
        return len(self._streams)

    def close_open(self) -> int:
        """Close every stream that is still open. Returns how many were closed."""
        closed = 0
        for stream in self._streams.values():
            if not stream.closed:
                stream.close()
                closed += 1
        return closed

    @property
    def all_closed(self) -> bool:
        return all(stream.closed for stream in self._streams.values())
