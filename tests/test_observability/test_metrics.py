"""Tests for the Prometheus metrics collector."""

from prometheus_client import CollectorRegistry

from blacklist.observability.metrics import MetricsCollector, get_metrics


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counters_are_labelled(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        metrics.entries_inserted.labels(entry_type="ip").inc(500)
        metrics.errors_reported.labels(error_type="FetchError").inc()

        assert registry.get_sample_value("blacklist_entries_inserted_total", {"entry_type": "ip"}) == 500
        assert (
            registry.get_sample_value("blacklist_errors_reported_total", {"error_type": "FetchError"})
            == 1
        )

    def test_refresh_latency_histogram(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        metrics.refresh_latency.labels(phase="existing").observe(12.5)

        assert (
            registry.get_sample_value("blacklist_refresh_latency_seconds_count", {"phase": "existing"})
            == 1
        )

    def test_separate_registries_do_not_collide(self):
        MetricsCollector(registry=CollectorRegistry())
        MetricsCollector(registry=CollectorRegistry())

    def test_get_metrics_singleton(self):
        assert get_metrics() is get_metrics()
