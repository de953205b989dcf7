"""
Reconciler - diffs configured sources against the persisted registry.

An update cycle runs three phases in order:

1. obsolete: registered but no longer configured. Cache and row are deleted.
2. existing: configured and registered. Refreshed when the TTL has expired:
   clear_cache -> pipeline -> update_list_metadata.
3. new: configured but not registered. Registered with NEVER_UPDATED, then
   pipeline -> update_list_metadata.

last_update only advances after a complete pipeline run, so a source whose
refresh was interrupted stays stale and is retried on the next cycle.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from blacklist.ingestion.pipeline import IngestionPipeline, PipelineResult
from blacklist.observability.metrics import MetricsCollector, get_metrics
from blacklist.queues.error_sink import ErrorReporter
from blacklist.sources.base import BlacklistSource
from blacklist.sources.schemas import NEVER_UPDATED, Metadata, should_fetch
from blacklist.storage.base import Handle, StorageError

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DuplicateSourceError(ValueError):
    """Reported when two configured sources share a name."""

    def __init__(self, source_name: str):
        super().__init__(f"Source '{source_name}' is configured more than once")
        self.source_name = source_name


class SourceUpdateError(Exception):
    """Reported when one source's update fails in an unexpected way."""

    def __init__(self, message: str, source_name: str):
        super().__init__(message)
        self.source_name = source_name


@dataclass
class ReconciliationPlan:
    """Partition of configured and registered sources by name."""

    obsolete: list[Metadata] = field(default_factory=list)
    # (configured source, persisted metadata)
    existing: list[tuple[BlacklistSource, Metadata]] = field(default_factory=list)
    new: list[BlacklistSource] = field(default_factory=list)


@dataclass
class UpdateSummary:
    """Source names by what happened to them during one update cycle."""

    removed: list[str] = field(default_factory=list)
    refreshed: list[str] = field(default_factory=list)
    registered: list[str] = field(default_factory=list)
    fresh: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def plan_reconciliation(
    configured: Iterable[BlacklistSource],
    registered: Iterable[Metadata],
    errors: ErrorReporter | None = None,
) -> ReconciliationPlan:
    """
    Partition sources into obsolete, existing and new.

    For existing sources the persisted last_update is merged onto the
    configured source's metadata, so the TTL gate sees when its cache was
    really built. Name, types and cache time stay as configured.

    Args:
        configured: Active sources. The first of any duplicate name wins.
        registered: Metadata rows read from storage
        errors: Receives a DuplicateSourceError per duplicate name

    Returns:
        ReconciliationPlan covering every name exactly once
    """
    sources: dict[str, BlacklistSource] = {}
    for source in configured:
        if source.name in sources:
            if errors is not None:
                errors.report(DuplicateSourceError(source.name))
            continue
        sources[source.name] = source

    persisted = {meta.name: meta for meta in registered}
    plan = ReconciliationPlan()

    plan.obsolete = [meta for name, meta in persisted.items() if name not in sources]

    for name, source in sources.items():
        meta = persisted.get(name)
        if meta is None:
            plan.new.append(source)
            continue
        source.set_metadata(source.get_metadata().with_last_update(meta.last_update))
        plan.existing.append((source, meta))

    return plan


class Reconciler:
    """
    Drives one update cycle over storage and the ingestion pipeline.

    Usage:
        reconciler = Reconciler(handle, pipeline)
        async with ErrorSink(handler) as sink:
            summary = await reconciler.run(sources, sink)
    """

    def __init__(
        self,
        handle: Handle,
        pipeline: IngestionPipeline,
        clock: Clock = utc_now,
        metrics: MetricsCollector | None = None,
    ):
        self._handle = handle
        self._pipeline = pipeline
        self._clock = clock
        self._metrics = metrics or get_metrics()

    async def run(self, sources: Iterable[BlacklistSource], errors: ErrorReporter) -> UpdateSummary:
        """
        Reconcile `sources` with storage and refresh stale caches.

        Sources within a phase run concurrently; the phases run in order.
        No error is raised: every failure goes to `errors`, including a
        registry read failure, which ends the cycle early.
        """
        summary = UpdateSummary()

        try:
            registered = await self._handle.get_registered_lists()
        except Exception as e:
            error = _storage_error("read the list registry", None, e)
            errors.report(error)
            return summary

        plan = plan_reconciliation(sources, registered, errors)
        logger.info(
            "Reconciliation planned",
            obsolete=len(plan.obsolete),
            existing=len(plan.existing),
            new=len(plan.new),
        )

        await asyncio.gather(
            *(
                self._guarded(meta.name, self._remove(meta, errors, summary), errors, summary)
                for meta in plan.obsolete
            )
        )
        await asyncio.gather(
            *(
                self._guarded(source.name, self._refresh(source, meta, errors, summary), errors, summary)
                for source, meta in plan.existing
            )
        )
        await asyncio.gather(
            *(
                self._guarded(source.name, self._register(source, errors, summary), errors, summary)
                for source in plan.new
            )
        )

        logger.info(
            "Update cycle finished",
            removed=len(summary.removed),
            refreshed=len(summary.refreshed),
            registered=len(summary.registered),
            fresh=len(summary.fresh),
            failed=len(summary.failed),
        )
        return summary

    async def _guarded(
        self,
        source_name: str,
        work: Awaitable[None],
        errors: ErrorReporter,
        summary: UpdateSummary,
    ) -> None:
        """Confine an unexpected failure to the one source it belongs to."""
        try:
            await work
        except Exception as e:
            logger.exception("Source update failed", source=source_name)
            error = SourceUpdateError(f"Update of '{source_name}' failed: {e}", source_name)
            error.__cause__ = e
            errors.report(error)
            if source_name not in summary.failed:
                summary.failed.append(source_name)

    async def _remove(self, meta: Metadata, errors: ErrorReporter, summary: UpdateSummary) -> None:
        try:
            await self._handle.remove_list(meta)
        except Exception as e:
            errors.report(_storage_error("remove", meta.name, e))
            summary.failed.append(meta.name)
            return
        self._metrics.sources_removed.inc()
        summary.removed.append(meta.name)
        logger.info("Removed obsolete source", source=meta.name)

    async def _refresh(
        self,
        source: BlacklistSource,
        persisted: Metadata,
        errors: ErrorReporter,
        summary: UpdateSummary,
    ) -> None:
        meta = source.get_metadata()
        if self._pipeline.report_unsupported(meta, errors):
            summary.failed.append(meta.name)
            return

        if set(meta.types) != set(persisted.types):
            logger.info(
                "Source types changed, re-adding",
                source=meta.name,
                old_types=[str(t) for t in persisted.types],
                new_types=[str(t) for t in meta.types],
            )
            try:
                await self._handle.remove_list(persisted)
            except Exception as e:
                errors.report(_storage_error("remove", meta.name, e))
                self._record_outcome("existing", "aborted")
                summary.failed.append(meta.name)
                return
            source.set_metadata(meta.with_last_update(NEVER_UPDATED))
            await self._register(source, errors, summary)
            return

        now = self._clock()
        if not should_fetch(meta, now):
            logger.debug("Source is fresh", source=meta.name, expires_at=meta.expires_at.isoformat())
            summary.fresh.append(meta.name)
            return

        started = time.monotonic()
        try:
            await self._handle.clear_cache(persisted)
        except Exception as e:
            errors.report(_storage_error("clear cache of", meta.name, e))
            self._record_outcome("existing", "aborted")
            summary.failed.append(meta.name)
            return

        result = await self._pipeline.run(source, errors)
        if await self._commit(source, result, now, errors):
            summary.refreshed.append(meta.name)
        else:
            summary.failed.append(meta.name)
        self._metrics.refresh_latency.labels(phase="existing").observe(time.monotonic() - started)

    async def _register(
        self,
        source: BlacklistSource,
        errors: ErrorReporter,
        summary: UpdateSummary,
    ) -> None:
        meta = source.get_metadata()
        if self._pipeline.report_unsupported(meta, errors):
            summary.failed.append(meta.name)
            return

        now = self._clock()
        if not should_fetch(meta, now):
            summary.fresh.append(meta.name)
            return

        started = time.monotonic()
        try:
            await self._handle.register_list(meta.with_last_update(NEVER_UPDATED))
        except Exception as e:
            errors.report(_storage_error("register", meta.name, e))
            self._record_outcome("new", "aborted")
            summary.failed.append(meta.name)
            return
        logger.info("Registered new source", source=meta.name)

        result = await self._pipeline.run(source, errors)
        if await self._commit(source, result, now, errors, phase="new"):
            summary.registered.append(meta.name)
        else:
            summary.failed.append(meta.name)
        self._metrics.refresh_latency.labels(phase="new").observe(time.monotonic() - started)

    async def _commit(
        self,
        source: BlacklistSource,
        result: PipelineResult,
        started_at: datetime,
        errors: ErrorReporter,
        phase: str = "existing",
    ) -> bool:
        """Advance last_update if the pipeline run was complete."""
        if not result.complete:
            logger.warning(
                "Refresh incomplete, source stays stale",
                source=result.source_name,
                fetch_ok=result.fetch_ok,
            )
            self._record_outcome(phase, "incomplete")
            return False

        updated = source.get_metadata().with_last_update(started_at)
        try:
            await self._handle.update_list_metadata(updated)
        except Exception as e:
            errors.report(_storage_error("update metadata of", updated.name, e))
            self._record_outcome(phase, "aborted")
            return False

        source.set_metadata(updated)
        self._record_outcome(phase, "complete")
        return True

    def _record_outcome(self, phase: str, outcome: str) -> None:
        self._metrics.source_refreshes.labels(phase=phase, outcome=outcome).inc()


def _storage_error(action: str, source_name: str | None, cause: Exception) -> StorageError:
    if isinstance(cause, StorageError):
        if cause.source_name is None:
            cause.source_name = source_name
        return cause
    target = f" '{source_name}'" if source_name else ""
    error = StorageError(f"Failed to {action}{target}: {cause}", source_name=source_name)
    error.__cause__ = cause
    return error
