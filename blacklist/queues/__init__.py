"""
In-process queue abstractions for the ingestion pipeline.

Classes:
    EntryStream: Bounded single-type entry stream with exactly-once close
    EntryTypeMap: One EntryStream per entry type of a source
    ErrorSink: Serialising error fan-in feeding the user error handler
"""

from blacklist.queues.error_sink import ErrorHandler, ErrorReporter, ErrorSink, log_error_handler
from blacklist.queues.streams import EntryStream, EntryTypeMap, StreamClosedError

__all__ = [
    "EntryStream",
    "EntryTypeMap",
    "ErrorHandler",
    "ErrorReporter",
    "ErrorSink",
    "StreamClosedError",
    "log_error_handler",
]
