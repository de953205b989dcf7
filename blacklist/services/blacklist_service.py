"""
Blacklist service - the controller for update cycles and queries.

Wires the reconciler, ingestion pipeline and query engine to one storage
handle. Every call gets its own ErrorSink, so all errors of that call have
reached the handler by the time it returns.
"""

import asyncio
from collections.abc import Iterable

import structlog

from blacklist.entries.schemas import EntryType, StorageResult
from blacklist.entries.validators import EntryTypeRegistry
from blacklist.ingestion.config import PipelineConfig
from blacklist.ingestion.pipeline import IngestionPipeline
from blacklist.ingestion.reconciler import Clock, Reconciler, UpdateSummary, utc_now
from blacklist.observability.metrics import MetricsCollector, get_metrics
from blacklist.query.engine import QueryEngine
from blacklist.queues.error_sink import ErrorHandler, ErrorSink
from blacklist.rpc.base import RPC
from blacklist.sources.base import BlacklistSource
from blacklist.storage.base import Handle

logger = structlog.get_logger(__name__)


class BlacklistService:
    """
    Maintains the cached blacklists and answers membership queries.

    Usage:
        service = BlacklistService(handle, error_handler=print)
        service.set_sources([feodo_tracker_list(), dns_bh_list()])
        await service.update()
        results = await service.check_entries(IP, "10.0.0.1")
    """

    def __init__(
        self,
        handle: Handle,
        error_handler: ErrorHandler | None = None,
        type_registry: EntryTypeRegistry | None = None,
        config: PipelineConfig | None = None,
        metrics: MetricsCollector | None = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize the service.

        Args:
            handle: Storage backend
            error_handler: Receives every error (logs them if None)
            type_registry: Entry types and validators (built-ins if None)
            config: Pipeline configuration (from environment if None)
            metrics: Metrics collector (global if None)
            clock: Time source for the TTL gate
        """
        self._handle = handle
        self._error_handler = error_handler
        self._types = type_registry or EntryTypeRegistry.with_defaults()
        self._config = config or PipelineConfig()
        metrics = metrics or get_metrics()

        self._pipeline = IngestionPipeline(handle, self._types, self._config, metrics)
        self._reconciler = Reconciler(handle, self._pipeline, clock=clock, metrics=metrics)
        self._query = QueryEngine(handle, config=self._config, metrics=metrics)

        self._sources: list[BlacklistSource] = []
        self._update_lock = asyncio.Lock()

    @property
    def type_registry(self) -> EntryTypeRegistry:
        return self._types

    def set_sources(self, sources: Iterable[BlacklistSource]) -> None:
        """Replace the active source set used by the next update()."""
        self._sources = list(sources)

    def set_rpcs(self, rpcs: Iterable[RPC]) -> None:
        """Replace the RPCs consulted by check_entries()."""
        self._query.set_rpcs(rpcs)

    async def update(self) -> UpdateSummary:
        """
        Run one update cycle over the active sources.

        Only one cycle runs at a time; concurrent callers wait their turn.

        Returns:
            UpdateSummary naming what happened to each source
        """
        async with self._update_lock:
            logger.info("Starting update", sources=len(self._sources))
            async with ErrorSink(self._error_handler) as sink:
                summary = await self._reconciler.run(self._sources, sink)
            logger.info("Update complete", errors=sink.reported)
            return summary

    async def check_entries(self, entry_type: EntryType, *indexes: str) -> dict[str, list[StorageResult]]:
        """
        Check indexes of one type against the cache and the type's RPCs.

        Returns:
            Mapping of each distinct index to its results (empty when clean)
        """
        async with ErrorSink(self._error_handler) as sink:
            return await self._query.check_entries(entry_type, indexes, sink)

    async def close(self) -> None:
        await self._handle.close()
