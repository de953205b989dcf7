"""
Error fan-in for the update and query pipelines.

Any number of concurrent producers report errors without blocking. A single
drain task forwards them, one at a time, to the user-supplied handler, so
the handler does not have to be concurrency-safe. Leaving the context waits
for the drain to finish: every error of a cycle has been handled before
update() or check_entries() returns.
"""

import asyncio
from collections.abc import Callable
from types import TracebackType
from typing import Protocol

import structlog

from blacklist.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

ErrorHandler = Callable[[Exception], None]

_CLOSED = object()


class ErrorReporter(Protocol):
    """What pipeline stages and sources need to report a non-fatal error."""

    def report(self, error: Exception) -> None: ...


def log_error_handler(error: Exception) -> None:
    """Default handler: log the error with its source/type context."""
    entry_type = getattr(error, "entry_type", None)
    logger.error(
        "Blacklist error",
        error=str(error),
        error_type=type(error).__name__,
        source=getattr(error, "source_name", None),
        entry_type=str(entry_type) if entry_type is not None else None,
    )


class ErrorSink:
    """
    Serialises errors from concurrent tasks onto one handler.

    Usage:
        async with ErrorSink(handler) as sink:
            sink.report(ValueError("bad line"))
        # handler has seen every reported error here

    If the handler raises, the first such exception is re-raised after the
    drain completes (unless the body itself is already failing).
    """

    def __init__(self, handler: ErrorHandler | None = None):
        self._handler = handler or log_error_handler
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._closed = False
        self._handler_error: Exception | None = None
        self._metrics = get_metrics()
        self.reported = 0
        self.handled = 0

    async def __aenter__(self) -> "ErrorSink":
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose(raise_handler_error=exc_type is None)

    def start(self) -> None:
        """Start the drain task."""
        if self._task is not None:
            raise RuntimeError("ErrorSink already started")
        self._task = asyncio.create_task(self._drain(), name="error_sink")

    def report(self, error: Exception) -> None:
        """Queue an error for the handler. Never blocks."""
        if self._closed:
            raise RuntimeError("ErrorSink is closed")
        self.reported += 1
        self._metrics.errors_reported.labels(error_type=type(error).__name__).inc()
        self._queue.put_nowait(error)

    async def aclose(self, raise_handler_error: bool = True) -> None:
        """Close the sink and wait until every queued error was handled."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._task is not None:
            await self._task

        if self._handler_error is not None and raise_handler_error:
            raise self._handler_error

    async def _drain(self) -> None:
        while True:
            error = await self._queue.get()
            if error is _CLOSED:
                return

            try:
                self._handler(error)
            except Exception as e:
                if self._handler_error is None:
                    self._handler_error = e
                logger.error(
                    "Error handler raised",
                    error=str(e),
                    original_error=str(error),
                    exc_info=True,
                )
            finally:
                self.handled += 1
