"""
Ingestion pipeline - fetch, validate and insert one source's entries.

For a source declaring types T1..Tn the pipeline runs:

    fetch_data --raw[T1]--> validate(T1) --valid[T1]--> insert(T1)
               --raw[Tn]--> validate(Tn) --valid[Tn]--> insert(Tn)

All streams are small and bounded, so a slow insert throttles validation
which throttles the fetch. run() returns only after every task finished.

Features:
- Optional deadline on the fetch stage
- Streams left open by a failing or cancelled source are closed
- Per-type fetched/accepted/rejected/inserted counts
"""

import asyncio
from dataclasses import dataclass, field

import structlog

from blacklist.entries.schemas import EntryType
from blacklist.entries.validators import EntryTypeRegistry, UnknownEntryTypeError
from blacklist.ingestion.config import PipelineConfig
from blacklist.ingestion.validation import ValidationStats, validate_stream
from blacklist.observability.metrics import MetricsCollector, get_metrics
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryStream, EntryTypeMap
from blacklist.sources.base import BlacklistSource, FetchError, FetchTimeoutError
from blacklist.sources.schemas import Metadata
from blacklist.storage.base import Handle, StorageError

logger = structlog.get_logger(__name__)


@dataclass
class TypeCounts:
    """Per-type counts for one pipeline run."""

    fetched: int = 0
    accepted: int = 0
    rejected: int = 0
    inserted: int = 0
    failed: bool = False


@dataclass
class PipelineResult:
    """Outcome of running the pipeline for one source."""

    source_name: str
    fetch_ok: bool = False
    counts: dict[EntryType, TypeCounts] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        """True when the fetch succeeded and every accepted entry was stored."""
        return self.fetch_ok and all(
            not c.failed and c.inserted == c.accepted for c in self.counts.values()
        )

    @property
    def inserted(self) -> int:
        return sum(c.inserted for c in self.counts.values())


class IngestionPipeline:
    """
    Runs the fetch -> validate -> insert chain for a single source.

    Usage:
        pipeline = IngestionPipeline(handle, EntryTypeRegistry.with_defaults())
        async with ErrorSink(handler) as sink:
            result = await pipeline.run(source, sink)
    """

    def __init__(
        self,
        handle: Handle,
        type_registry: EntryTypeRegistry,
        config: PipelineConfig | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._handle = handle
        self._types = type_registry
        self._config = config or PipelineConfig()
        self._metrics = metrics or get_metrics()

    def unsupported_types(self, meta: Metadata) -> list[EntryType]:
        """Entry types declared by `meta` that have no registered validator."""
        return [t for t in meta.types if t not in self._types]

    def report_unsupported(self, meta: Metadata, errors: ErrorReporter) -> bool:
        """Report every unsupported type of `meta`. Returns True if there were any."""
        missing = self.unsupported_types(meta)
        for entry_type in missing:
            errors.report(UnknownEntryTypeError(entry_type, source_name=meta.name))
        return bool(missing)

    async def run(self, source: BlacklistSource, errors: ErrorReporter) -> PipelineResult:
        """
        Fetch, validate and store every entry of `source`.

        Args:
            source: Source to ingest
            errors: Sink for every non-fatal error of the run

        Returns:
            PipelineResult with per-type counts
        """
        meta = source.get_metadata()
        result = PipelineResult(source_name=meta.name)

        if self.report_unsupported(meta, errors):
            return result

        capacity = self._config.stream_capacity
        raw = EntryTypeMap(meta.types, capacity)
        valid = EntryTypeMap(meta.types, capacity)

        validate_tasks: dict[EntryType, asyncio.Task] = {}
        insert_tasks: dict[EntryType, asyncio.Task] = {}
        for entry_type in meta.types:
            validate_tasks[entry_type] = asyncio.create_task(
                self._validate(entry_type, raw[entry_type], valid[entry_type], errors),
                name=f"validate:{meta.name}:{entry_type}",
            )
            insert_tasks[entry_type] = asyncio.create_task(
                self._insert(entry_type, valid[entry_type], errors),
                name=f"insert:{meta.name}:{entry_type}",
            )
        fetch_task = asyncio.create_task(
            self._fetch(source, raw, errors),
            name=f"fetch:{meta.name}",
        )

        # Join barrier
        try:
            await asyncio.gather(fetch_task, *validate_tasks.values(), *insert_tasks.values())
        finally:
            for task in (fetch_task, *validate_tasks.values(), *insert_tasks.values()):
                if not task.done():
                    task.cancel()

        result.fetch_ok = fetch_task.result()
        for entry_type in meta.types:
            stats: ValidationStats = validate_tasks[entry_type].result()
            counts = TypeCounts(
                fetched=raw[entry_type].sent,
                accepted=stats.accepted,
                rejected=stats.rejected,
                inserted=insert_tasks[entry_type].result(),
                failed=stats.failed,
            )
            result.counts[entry_type] = counts
            self._record_metrics(entry_type, counts)

        logger.info(
            "Pipeline finished",
            source=meta.name,
            fetch_ok=result.fetch_ok,
            complete=result.complete,
            inserted=result.inserted,
        )
        return result

    async def _fetch(
        self,
        source: BlacklistSource,
        streams: EntryTypeMap,
        errors: ErrorReporter,
    ) -> bool:
        name = source.name
        deadline = asyncio.timeout(self._config.fetch_timeout_seconds)
        try:
            async with deadline:
                await source.fetch_data(streams, errors)
        except TimeoutError as e:
            if deadline.expired():
                errors.report(
                    FetchTimeoutError(
                        f"Fetch of '{name}' exceeded {self._config.fetch_timeout_seconds}s",
                        source_name=name,
                    )
                )
            else:
                errors.report(_fetch_error(name, e))
            return False
        except FetchError as e:
            e.source_name = e.source_name or name
            errors.report(e)
            return False
        except Exception as e:
            errors.report(_fetch_error(name, e))
            return False
        finally:
            streams.close_open()
        return True

    async def _validate(
        self,
        entry_type: EntryType,
        entries_in: EntryStream,
        entries_out: EntryStream,
        errors: ErrorReporter,
    ) -> ValidationStats:
        try:
            return await validate_stream(
                entry_type,
                self._types.validator_for(entry_type),
                entries_in,
                entries_out,
                errors,
            )
        except Exception as e:
            logger.error("Validation stage failed", entry_type=str(entry_type), error=str(e))
            errors.report(e)
            await _drain(entries_in)
            return ValidationStats(failed=True)

    async def _insert(
        self,
        entry_type: EntryType,
        entries: EntryStream,
        errors: ErrorReporter,
    ) -> int:
        try:
            return await self._handle.insert_entries(
                entry_type,
                entries,
                errors,
                batch_size=self._config.insert_batch_size,
            )
        except Exception as e:
            error = StorageError(f"Insert stage for '{entry_type}' failed: {e}", entry_type=entry_type)
            error.__cause__ = e
            errors.report(error)
            await _drain(entries)
            return 0

    def _record_metrics(self, entry_type: EntryType, counts: TypeCounts) -> None:
        label = str(entry_type)
        self._metrics.entries_fetched.labels(entry_type=label).inc(counts.fetched)
        self._metrics.entries_rejected.labels(entry_type=label).inc(counts.rejected)
        self._metrics.entries_inserted.labels(entry_type=label).inc(counts.inserted)


def _fetch_error(source_name: str, cause: Exception) -> FetchError:
    error = FetchError(f"Fetch of '{source_name}' failed: {cause}", source_name=source_name)
    error.__cause__ = cause
    return error


async def _drain(stream: EntryStream) -> None:
    """Consume what is left of a stream so its producer never blocks."""
    async for _ in stream:
        pass
