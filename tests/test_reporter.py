"""Tests for the report cycle, scheduling and wiring."""
import time
from unittest.mock import MagicMock, patch

import pytest

from dogreporter.config import ReporterConfig
from dogreporter.exceptions import InvalidArgument, TransportFailure
from dogreporter.http_transport import HttpTransport
from dogreporter.registry import MetricRegistry
from dogreporter.reporter import DatadogReporter, build_reporter, build_transport
from dogreporter.self_metrics import SelfMetrics
from dogreporter.series import Series
from dogreporter.transport import SendResult
from dogreporter.translator import SnapshotTranslator, TimeUnit
from dogreporter.udp_transport import UdpTransport

TIMESTAMP = 1000198


def make_reporter(registry, result=None, self_metrics=None, **translator_options):
    """Reporter over a mocked transport with a fixed clock."""
    request = MagicMock()
    request.send.return_value = result or SendResult(ok=True, series_count=1)
    transport = MagicMock()
    transport.name = "mock"
    transport.prepare.return_value = request

    clock = MagicMock()
    clock.time_ms.return_value = TIMESTAMP * 1000

    options = dict(host="hostname", tags=["env:prod"], rate_unit=TimeUnit.SECONDS,
                   duration_unit=TimeUnit.MILLISECONDS)
    options.update(translator_options)
    reporter = DatadogReporter(
        registry=registry,
        transport=transport,
        translator=SnapshotTranslator(**options),
        clock=clock,
        self_metrics=self_metrics,
        period_s=0.01,
    )
    return reporter, transport, request


def test_report_adds_gauges_and_sends_once():
    registry = MetricRegistry()
    registry.counter("counter").inc(100)
    registry.gauge("gauge", lambda: 1.5)

    reporter, transport, request = make_reporter(registry)
    result = reporter.report()

    assert result.ok
    transport.prepare.assert_called_once_with()
    request.send.assert_called_once_with()
    request.add_counter.assert_not_called()
    request.add_rate.assert_not_called()
    assert [c.args[0] for c in request.add_gauge.call_args_list] == [
        Series.gauge("gauge", 1.5, TIMESTAMP, "hostname", ["env:prod"]),
        Series.gauge("counter", 100, TIMESTAMP, "hostname", ["env:prod"]),
    ]


def test_empty_registry_still_sends():
    reporter, _, request = make_reporter(MetricRegistry())
    reporter.report()
    request.add_gauge.assert_not_called()
    request.send.assert_called_once_with()


def test_self_metrics_record_a_successful_cycle():
    registry = MetricRegistry()
    registry.counter("a").inc()
    registry.counter("b").inc()
    self_metrics = SelfMetrics()

    reporter, _, _ = make_reporter(registry, self_metrics=self_metrics)
    reporter.report()

    prom = self_metrics.registry
    assert prom.get_sample_value("dogreporter_series_total", {"transport": "mock"}) == 2
    assert prom.get_sample_value("dogreporter_report_duration_seconds_count") == 1
    assert prom.get_sample_value("dogreporter_last_success_timestamp_seconds") > 0
    assert prom.get_sample_value("dogreporter_send_failures_total", {"transport": "mock"}) is None


def test_read_failures_are_counted_and_skipped():
    registry = MetricRegistry()
    registry.gauge("broken", lambda: 1 / 0)
    registry.counter("ok").inc(3)
    self_metrics = SelfMetrics()

    reporter, _, request = make_reporter(registry, self_metrics=self_metrics)
    reporter.report()

    assert [c.args[0].metric for c in request.add_gauge.call_args_list] == ["ok"]
    assert self_metrics.registry.get_sample_value("dogreporter_metric_read_failures_total") == 1


def test_send_failure_is_logged_and_counted(caplog):
    registry = MetricRegistry()
    registry.counter("c").inc()
    failure = SendResult(ok=False, status_code=500, error=TransportFailure("Status: 500", status_code=500))
    self_metrics = SelfMetrics()

    reporter, _, _ = make_reporter(registry, result=failure, self_metrics=self_metrics)
    result = reporter.report()

    assert not result.ok
    assert "not delivered" in caplog.text
    assert self_metrics.registry.get_sample_value(
        "dogreporter_send_failures_total", {"transport": "mock"}
    ) == 1


def test_start_and_stop_run_the_loop():
    registry = MetricRegistry()
    registry.counter("c").inc()
    reporter, transport, _ = make_reporter(registry)

    reporter.start()
    deadline = time.time() + 2.0
    while transport.prepare.call_count < 2 and time.time() < deadline:
        time.sleep(0.01)
    reporter.stop(timeout=1.0)

    assert transport.prepare.call_count >= 2
    assert reporter._thread is None


def test_loop_survives_a_failing_cycle():
    reporter, transport, _ = make_reporter(MetricRegistry())
    transport.prepare.side_effect = [RuntimeError("boom"), MagicMock()] + [MagicMock()] * 100

    reporter.start()
    deadline = time.time() + 2.0
    while transport.prepare.call_count < 2 and time.time() < deadline:
        time.sleep(0.01)
    reporter.stop(timeout=1.0)

    assert transport.prepare.call_count >= 2


def test_close_releases_transport():
    reporter, transport, _ = make_reporter(MetricRegistry())
    with reporter:
        pass
    transport.close.assert_called_once_with()


def test_build_transport_selects_http():
    config = ReporterConfig(transport="http", http={"api_key": "k"})
    transport = build_transport(config)
    try:
        assert isinstance(transport, HttpTransport)
    finally:
        transport.close()


def test_build_transport_selects_udp():
    config = ReporterConfig(transport="udp", udp={"host": "localhost"})
    with patch("dogreporter.udp_transport.DogStatsd"):
        transport = build_transport(config)
    assert isinstance(transport, UdpTransport)


def test_build_reporter_wires_config():
    config = ReporterConfig(
        transport="udp",
        host="web-1",
        prefix="app",
        tags=["env:prod"],
        period_s=30,
    )
    transport = MagicMock()

    reporter = build_reporter(config, MetricRegistry(), transport=transport)

    assert reporter.transport is transport
    assert reporter.period_s == 30
    assert reporter.translator.host == "web-1"
    assert reporter.translator.prefix == "app"
    assert reporter.translator.current_tags() == ["env:prod"]


@pytest.mark.parametrize("host", ["EC2", "ec2"])
def test_build_reporter_resolves_ec2_host(host):
    config = ReporterConfig(transport="udp", host=host)
    with patch("dogreporter.reporter.resolve_host", return_value="i-1234") as resolve:
        reporter = build_reporter(config, MetricRegistry(), transport=MagicMock())
    resolve.assert_called_once_with(host)
    assert reporter.translator.host == "i-1234"


def test_unencodable_series_is_skipped():
    registry = MetricRegistry()
    registry.counter("a").inc()
    registry.counter("b").inc()
    self_metrics = SelfMetrics()

    reporter, _, request = make_reporter(registry, self_metrics=self_metrics)
    request.add_gauge.side_effect = [InvalidArgument("cannot be encoded"), None]
    reporter.report()

    request.send.assert_called_once_with()
    assert self_metrics.registry.get_sample_value("dogreporter_metric_read_failures_total") == 1
    assert self_metrics.registry.get_sample_value("dogreporter_series_total", {"transport": "mock"}) == 1
