"""Observability layer - logging and metrics."""

from chapterbell.observability.logging import bind_context, setup_logging
from chapterbell.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "bind_context", "MetricsCollector", "get_metrics"]
