"""Self-monitoring metrics for the reporter, exposed via prometheus_client."""
import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from dogreporter.config import SelfMetricsConfig

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Health metrics for the reporter itself."""

    def __init__(self, registry=None, prefix="dogreporter_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.series_total = Counter(
            f"{prefix}series_total",
            "Total number of series handed to a transport",
            ["transport"],
            registry=registry
        )

        self.read_failures_total = Counter(
            f"{prefix}metric_read_failures_total",
            "Metrics skipped because their accessor raised",
            registry=registry
        )

        self.send_failures_total = Counter(
            f"{prefix}send_failures_total",
            "Report cycles whose send failed",
            ["transport"],
            registry=registry
        )

        self.report_duration_seconds = Histogram(
            f"{prefix}report_duration_seconds",
            "Duration of each report cycle in seconds",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=registry
        )

        self.last_success_timestamp = Gauge(
            f"{prefix}last_success_timestamp_seconds",
            "Unix time of the last successful send",
            registry=registry
        )

    def record_series(self, transport: str, count: int):
        """Record series handed to a transport."""
        self.series_total.labels(transport=transport).inc(count)

    def record_read_failure(self):
        """Record a skipped metric."""
        self.read_failures_total.inc()

    def record_send_failure(self, transport: str):
        """Record a failed send."""
        self.send_failures_total.labels(transport=transport).inc()

    def record_report_duration(self, duration: float):
        """Record report duration."""
        self.report_duration_seconds.observe(duration)

    def record_success(self, timestamp: float):
        """Record the time of a successful send."""
        self.last_success_timestamp.set(timestamp)


def start_self_metrics_server(config: SelfMetricsConfig, self_metrics: SelfMetrics):
    """Start the Prometheus HTTP server for self metrics."""
    try:
        start_http_server(
            config.port,
            addr=config.bind_address,
            registry=self_metrics.registry
        )
        logger.info(
            f"Self metrics listening on "
            f"{config.bind_address}:{config.port}/metrics"
        )
    except Exception as e:
        logger.error(f"Failed to start self metrics HTTP server: {e}")
        raise
