"""Observability layer - logging and metrics."""

from blacklist.observability.logging import setup_logging
from blacklist.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
