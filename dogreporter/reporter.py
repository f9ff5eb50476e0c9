"""Report cycle driver and scheduler."""
import logging
import threading
import time
from typing import Any, Callable, List, Optional

from dogreporter.config import ReporterConfig
from dogreporter.exceptions import InvalidArgument, MetricReadFailure
from dogreporter.hostname import resolve_host
from dogreporter.registry import Clock, MetricRegistry, RegistrySnapshot, SystemClock
from dogreporter.self_metrics import SelfMetrics
from dogreporter.transport import SendResult, Transport
from dogreporter.translator import SnapshotTranslator, default_name_formatter

logger = logging.getLogger(__name__)


class DatadogReporter:
    """Translates the registry and pushes it through a transport once per period."""

    def __init__(
        self,
        registry: MetricRegistry,
        transport: Transport,
        translator: SnapshotTranslator,
        clock: Optional[Clock] = None,
        self_metrics: Optional[SelfMetrics] = None,
        period_s: float = 10.0
    ):
        self.registry = registry
        self.transport = transport
        self.translator = translator
        self.clock = clock or SystemClock()
        self.self_metrics = self_metrics
        self.period_s = period_s
        self.report_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _on_read_failure(self, failure: MetricReadFailure):
        self.translator.on_failure(failure)
        if self.self_metrics:
            self.self_metrics.record_read_failure()

    def report(self, snapshot: Optional[RegistrySnapshot] = None) -> SendResult:
        """Run one report cycle: translate, add every series, send once."""
        report_start = time.time()
        if snapshot is None:
            snapshot = self.registry.snapshot()
        timestamp = self.clock.time_ms() // 1000

        request = self.transport.prepare()
        count = 0
        for series in self.translator.translate(snapshot, timestamp, on_failure=self._on_read_failure):
            try:
                request.add_gauge(series)
            except InvalidArgument as e:
                self._on_read_failure(MetricReadFailure(series.metric, e))
                continue
            count += 1
        result = request.send()

        self.report_count += 1
        if self.self_metrics:
            self.self_metrics.record_series(self.transport.name, count)
            self.self_metrics.record_report_duration(time.time() - report_start)
            if result.ok:
                self.self_metrics.record_success(time.time())
            else:
                self.self_metrics.record_send_failure(self.transport.name)

        if not result.ok:
            logger.warning(f"Report {self.report_count}: {count} series not delivered: {result.error}")
        elif self.report_count % 60 == 0:  # Log every 60 reports
            logger.info(f"Report {self.report_count}: sent {count} series")

        return result

    def run(self):
        """Report every period until stopped."""
        logger.info(f"Starting reporter, period {self.period_s}s via {self.transport.name}")
        self._stop_event.clear()

        while not self._stop_event.is_set():
            cycle_start = time.time()

            try:
                self.report()
            except Exception as e:
                logger.error(f"Error in report cycle: {e}", exc_info=True)

            cycle_duration = time.time() - cycle_start
            sleep_time = max(0, self.period_s - cycle_duration)
            if sleep_time == 0:
                logger.warning(
                    f"Report took {cycle_duration:.3f}s, longer than period {self.period_s}s"
                )
            self._stop_event.wait(sleep_time)

    def start(self):
        """Run the report loop in a daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self.run, name="dogreporter", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Stop the loop; the transport stays open."""
        logger.info("Stopping reporter")
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def close(self):
        """Stop reporting and release the transport."""
        self.stop()
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def build_transport(config: ReporterConfig) -> Transport:
    """Create the transport selected by the configuration."""
    if config.transport == "udp":
        from dogreporter.udp_transport import UdpTransport
        return UdpTransport(config.udp)

    from dogreporter.http_transport import HttpTransport
    return HttpTransport(config.http)


def build_reporter(
    config: ReporterConfig,
    registry: MetricRegistry,
    transport: Optional[Transport] = None,
    clock: Optional[Clock] = None,
    dynamic_tags: Optional[Callable[[], Optional[List[str]]]] = None,
    name_formatter: Callable[..., str] = default_name_formatter,
    metric_filter: Optional[Callable[[str, Any], bool]] = None,
    self_metrics: Optional[SelfMetrics] = None
) -> DatadogReporter:
    """Wire a reporter from configuration plus the callables config cannot carry."""
    translator = SnapshotTranslator(
        host=resolve_host(config.host),
        tags=config.tags,
        dynamic_tags=dynamic_tags,
        prefix=config.prefix,
        name_formatter=name_formatter,
        metric_filter=metric_filter,
        expansions=config.expansions,
        rate_unit=config.rate_unit,
        duration_unit=config.duration_unit,
    )

    return DatadogReporter(
        registry=registry,
        transport=transport or build_transport(config),
        translator=translator,
        clock=clock,
        self_metrics=self_metrics,
        period_s=config.period_s,
    )
