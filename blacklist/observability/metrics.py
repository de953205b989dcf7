"""
Prometheus metrics for monitoring the blacklist cache.

Defines and exposes metrics for:
- Entries fetched, rejected and inserted per entry type
- Reported errors by type
- Source refresh outcomes and latency
- RPC calls and query latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from blacklist.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for refresh latency (feeds can take minutes to download and load)
REFRESH_BUCKETS = (0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 180.0, 600.0)

# Buckets for query latency histograms (in seconds)
QUERY_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the blacklist pipeline.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.entries_inserted.labels(entry_type="ip").inc(500)
        metrics.refresh_latency.labels(phase="existing").observe(12.5)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Registry to register with (tests pass a fresh one)
        """
        self.entries_fetched = Counter(
            "blacklist_entries_fetched_total",
            "Entries emitted by source fetch stages",
            ["entry_type"],
            registry=registry,
        )

        self.entries_rejected = Counter(
            "blacklist_entries_rejected_total",
            "Entries dropped by validation",
            ["entry_type"],
            registry=registry,
        )

        self.entries_inserted = Counter(
            "blacklist_entries_inserted_total",
            "Entries written to storage",
            ["entry_type"],
            registry=registry,
        )

        self.errors_reported = Counter(
            "blacklist_errors_reported_total",
            "Errors forwarded to the error handler",
            ["error_type"],
            registry=registry,
        )

        self.source_refreshes = Counter(
            "blacklist_source_refreshes_total",
            "Source refresh attempts",
            ["phase", "outcome"],  # phase: existing, new; outcome: complete, incomplete, aborted
            registry=registry,
        )

        self.sources_removed = Counter(
            "blacklist_sources_removed_total",
            "Obsolete sources purged from the cache",
            registry=registry,
        )

        self.refresh_latency = Histogram(
            "blacklist_refresh_latency_seconds",
            "Time to refresh a single source",
            ["phase"],
            buckets=REFRESH_BUCKETS,
            registry=registry,
        )

        self.rpc_calls = Counter(
            "blacklist_rpc_calls_total",
            "Remote procedure calls made by queries",
            ["entry_type", "status"],  # status: success, error
            registry=registry,
        )

        self.query_latency = Histogram(
            "blacklist_query_latency_seconds",
            "Time to answer a check_entries call",
            ["entry_type"],
            buckets=QUERY_BUCKETS,
            registry=registry,
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start HTTP server for Prometheus scraping.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        if port is None:
            port = get_settings().metrics_port
        start_http_server(port)
        logger.info(f"Metrics server started on port {port}")


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
