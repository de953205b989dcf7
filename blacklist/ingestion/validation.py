"""
Validation stage: filters one typed stream into another.

Entries whose index fails the type's validator are reported and dropped;
valid entries pass through in their original order.
"""

from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass

from blacklist.entries.schemas import EntryType
from blacklist.entries.validators import EntryValidationError
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryStream


@dataclass
class ValidationStats:
    """Counts for one validated stream."""

    accepted: int = 0
    rejected: int = 0
    failed: bool = False


async def validate_stream(
    entry_type: EntryType,
    validator: Callable[[str], None],
    entries_in: AsyncIterable,
    entries_out: EntryStream,
    errors: ErrorReporter,
) -> ValidationStats:
    """
    Forward valid entries from `entries_in` to `entries_out`.

    `entries_out` is closed when the input ends, or when this stage fails
    or is cancelled, so the insert stage always terminates.

    Args:
        entry_type: Type of every entry on the stream
        validator: Raises EntryValidationError for malformed indexes
        entries_in: Raw entries from the fetch stage
        entries_out: Stream feeding the insert stage
        errors: Sink for rejected entries

    Returns:
        Accepted and rejected counts
    """
    stats = ValidationStats()
    try:
        async for entry in entries_in:
            try:
                validator(entry.index)
            except EntryValidationError as e:
                e.index = entry.index
                e.entry_type = entry_type
                e.source_name = entry.list_name
                errors.report(e)
                stats.rejected += 1
                continue
            except Exception as e:
                error = EntryValidationError(
                    f"validator for '{entry_type}' failed: {e}",
                    index=entry.index,
                    entry_type=entry_type,
                    source_name=entry.list_name,
                )
                error.__cause__ = e
                errors.report(error)
                stats.rejected += 1
                continue

            await entries_out.send(entry)
            stats.accepted += 1
    finally:
        entries_out.close()

    return stats
