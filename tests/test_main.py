"""Tests for logging setup and runtime gauges."""
import json
import logging
import sys

from dogreporter.main import build_formatter, register_runtime_metrics
from dogreporter.registry import MetricRegistry


def make_record(message, exc_info=None):
    return logging.LogRecord(
        name="dogreporter.reporter",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=None,
        exc_info=exc_info,
    )


def test_json_format_escapes_messages():
    message = 'bad "payload"\nwith \\ backslash'
    line = build_formatter("json").format(make_record(message))

    entry = json.loads(line)
    assert entry["message"] == message
    assert entry["level"] == "ERROR"
    assert entry["logger"] == "dogreporter.reporter"
    assert "time" in entry


def test_json_format_keeps_tracebacks_on_one_line():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record("Error in report cycle: boom", exc_info=sys.exc_info())

    line = build_formatter("json").format(record)

    assert "\n" not in line
    assert "RuntimeError: boom" in json.loads(line)["exc_info"]


def test_text_format():
    line = build_formatter("text").format(make_record("hello"))
    assert "| ERROR    | dogreporter.reporter | hello" in line


def test_runtime_metrics_are_numeric():
    registry = MetricRegistry()
    register_runtime_metrics(registry)

    gauges = registry.snapshot().gauges
    assert "python.threads" in gauges
    assert "python.gc.collections[generation:0]" in gauges
    for gauge in gauges.values():
        assert isinstance(gauge.get_value(), (int, float))
