"""
Query engine - answers point lookups from the cache and live RPCs.

For each requested index the cached results come first, followed by the
hits of every RPC registered for the entry type (in registration order).
RPC results are never written to the cache.
"""

import asyncio
import time
from collections.abc import Iterable, Sequence

import structlog

from blacklist.entries.schemas import EntryType, StorageResult
from blacklist.ingestion.config import PipelineConfig
from blacklist.observability.metrics import MetricsCollector, get_metrics
from blacklist.queues.error_sink import ErrorReporter
from blacklist.rpc.base import RPC, RPCError
from blacklist.storage.base import Handle, StorageError

logger = structlog.get_logger(__name__)


class QueryEngine:
    """
    Merges cached entries with RPC lookups.

    Usage:
        engine = QueryEngine(handle, rpcs=[SafeBrowsingRPC()])
        async with ErrorSink(handler) as sink:
            results = await engine.check_entries(URL, ["http://a.test/"], sink)
    """

    def __init__(
        self,
        handle: Handle,
        rpcs: Iterable[RPC] = (),
        config: PipelineConfig | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._handle = handle
        self._rpcs: list[RPC] = list(rpcs)
        self._config = config or PipelineConfig()
        self._metrics = metrics or get_metrics()

    def set_rpcs(self, rpcs: Iterable[RPC]) -> None:
        """Replace the registered RPCs."""
        self._rpcs = list(rpcs)

    def rpcs_for(self, entry_type: EntryType) -> list[RPC]:
        return [rpc for rpc in self._rpcs if rpc.entry_type == entry_type]

    async def check_entries(
        self,
        entry_type: EntryType,
        indexes: Sequence[str],
        errors: ErrorReporter,
    ) -> dict[str, list[StorageResult]]:
        """
        Look up `indexes` of `entry_type`.

        Args:
            entry_type: Type of every index
            indexes: Values to check. Duplicates collapse to one key.
            errors: Sink for storage and RPC failures

        Returns:
            One key per distinct index, each with its (possibly empty) results
        """
        unique = list(dict.fromkeys(indexes))
        if not unique:
            return {}

        started = time.perf_counter()
        rpcs = self.rpcs_for(entry_type)

        cached, *rpc_hits = await asyncio.gather(
            self._find_cached(entry_type, unique, errors),
            *(self._call_rpc(rpc, unique, errors) for rpc in rpcs),
        )

        results: dict[str, list[StorageResult]] = {index: list(cached[index]) for index in unique}
        for hits in rpc_hits:
            for index, hit in hits.items():
                if index in results:
                    results[index].append(hit)

        self._metrics.query_latency.labels(entry_type=str(entry_type)).observe(
            time.perf_counter() - started
        )
        logger.debug(
            "Query answered",
            entry_type=str(entry_type),
            indexes=len(unique),
            hits=sum(1 for r in results.values() if r),
        )
        return results

    async def _find_cached(
        self,
        entry_type: EntryType,
        indexes: list[str],
        errors: ErrorReporter,
    ) -> dict[str, list[StorageResult]]:
        cached: dict[str, list[StorageResult]] = {}
        for index in indexes:
            try:
                cached[index] = await self._handle.find_entries(entry_type, index)
            except Exception as e:
                error = StorageError(
                    f"Failed to look up '{index}' in '{entry_type}' cache: {e}",
                    entry_type=entry_type,
                )
                error.__cause__ = e
                errors.report(error)
                cached[index] = []
        return cached

    async def _call_rpc(
        self,
        rpc: RPC,
        indexes: list[str],
        errors: ErrorReporter,
    ) -> dict[str, StorageResult]:
        label = str(rpc.entry_type)
        deadline = asyncio.timeout(self._config.rpc_timeout_seconds)
        try:
            async with deadline:
                hits = await rpc.check(*indexes)
        except Exception as e:
            if isinstance(e, TimeoutError) and deadline.expired():
                message = f"RPC '{rpc.name}' exceeded {self._config.rpc_timeout_seconds}s"
            else:
                message = f"RPC '{rpc.name}' failed: {e}"
            error = RPCError(message, rpc_name=rpc.name, entry_type=rpc.entry_type)
            error.__cause__ = e
            errors.report(error)
            self._metrics.rpc_calls.labels(entry_type=label, status="error").inc()
            return {}

        self._metrics.rpc_calls.labels(entry_type=label, status="success").inc()
        return hits
