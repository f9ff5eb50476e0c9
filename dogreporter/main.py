"""Command line entry point reporting process runtime metrics to Datadog."""
import argparse
import gc
import logging
import signal
import sys
import threading
import time

from pythonjsonlogger.json import JsonFormatter

from dogreporter.config import load_config
from dogreporter.registry import MetricRegistry
from dogreporter.reporter import build_reporter
from dogreporter.self_metrics import SelfMetrics, start_self_metrics_server


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
JSON_LOG_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for the configured log format."""
    if log_format == "json":
        return JsonFormatter(
            JSON_LOG_FIELDS,
            datefmt=DATE_FORMAT,
            rename_fields={"asctime": "time", "levelname": "level", "name": "logger"}
        )
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(log_format))
    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("datadog.dogstatsd").setLevel(logging.WARNING)


def register_runtime_metrics(registry: MetricRegistry):
    """Register gauges describing the running interpreter."""
    start = time.time()
    registry.gauge("python.uptime_seconds", lambda: time.time() - start)
    registry.gauge("python.threads", threading.active_count)
    registry.gauge("python.gc.objects", lambda: len(gc.get_objects()))

    for generation in range(3):
        registry.gauge(
            f"python.gc.collections[generation:{generation}]",
            lambda g=generation: gc.get_stats()[g]["collections"]
        )


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Datadog reporter - push process metrics to Datadog"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    reporter_config = config.reporter
    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Transport: {reporter_config.transport}")
    logger.info(f"Report period: {reporter_config.period_s}s")

    registry = MetricRegistry()
    register_runtime_metrics(registry)

    self_metrics = None
    if reporter_config.self_metrics.enabled:
        self_metrics = SelfMetrics()
        start_self_metrics_server(reporter_config.self_metrics, self_metrics)

    try:
        reporter = build_reporter(reporter_config, registry, self_metrics=self_metrics)
    except Exception as e:
        logger.error(f"Failed to initialize reporter: {e}", exc_info=True)
        sys.exit(1)

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        reporter.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    reporter.run()


if __name__ == "__main__":
    main()
