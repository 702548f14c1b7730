"""
Prometheus metrics for the fetch and announce pipeline.

Defines and exposes metrics for:
- Chapters parsed per target and fetch failures by error type
- Fetch latency per target
- Chapters announced and announce failures
- Workers currently tracked by the dispatcher, per kind

Metrics are exposed via HTTP endpoint for Prometheus scraping when
``metrics_enabled`` is set.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from chapterbell.config.settings import get_settings

logger = logging.getLogger(__name__)

# Source fetches are slow; most land between 100ms and a few seconds
LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for chapterbell.

    Usage:
        metrics = get_metrics()
        metrics.record_fetch("Test Manga", chapters=12, latency=0.4)
        metrics.record_fetch_error("Test Manga", "HTTPClientError")
    """

    def __init__(self):
        self.chapters_parsed = Counter(
            "chapterbell_chapters_parsed_total",
            "Total number of chapters parsed from sources",
            ["target"],
        )

        self.fetch_errors = Counter(
            "chapterbell_fetch_errors_total",
            "Total fetch, parse and save failures",
            ["target", "error_type"],
        )

        self.fetch_latency = Histogram(
            "chapterbell_fetch_latency_seconds",
            "Time to download and parse one source document",
            ["target"],
            buckets=LATENCY_BUCKETS,
        )

        self.chapters_announced = Counter(
            "chapterbell_chapters_announced_total",
            "Total number of chapters delivered to destinations",
        )

        self.announce_errors = Counter(
            "chapterbell_announce_errors_total",
            "Total announce failures",
            ["error_type"],
        )

        self.active_workers = Gauge(
            "chapterbell_active_workers",
            "Workers currently tracked by the dispatcher",
            ["kind"],  # fetch_all, announce_all, announce_one, bot_connection
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Start Prometheus metrics HTTP server (port defaults to settings)."""
        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        logger.info("Prometheus metrics server started on port %d", port)

    def record_fetch(self, target: str, chapters: int, latency: float | None = None) -> None:
        self.chapters_parsed.labels(target=target).inc(chapters)
        if latency is not None:
            self.fetch_latency.labels(target=target).observe(latency)

    def record_fetch_error(self, target: str, error_type: str) -> None:
        self.fetch_errors.labels(target=target, error_type=error_type).inc()

    def record_announced(self, count: int = 1) -> None:
        self.chapters_announced.inc(count)

    def record_announce_error(self, error_type: str) -> None:
        self.announce_errors.labels(error_type=error_type).inc()

    def worker_started(self, kind: str) -> None:
        self.active_workers.labels(kind=kind).inc()

    def worker_finished(self, kind: str) -> None:
        self.active_workers.labels(kind=kind).dec()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
