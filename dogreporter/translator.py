"""Translation of a registry snapshot into Datadog series."""
import logging
import math
import numbers
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional

from dogreporter.exceptions import InvalidArgument, MetricReadFailure
from dogreporter.registry import RegistrySnapshot
from dogreporter.series import Series

logger = logging.getLogger(__name__)


class Expansion(Enum):
    """Derived statistics a histogram, meter or timer can emit."""
    COUNT = "count"
    RATE_MEAN = "meanRate"
    RATE_1_MINUTE = "1MinuteRate"
    RATE_5_MINUTE = "5MinuteRate"
    RATE_15_MINUTE = "15MinuteRate"
    MIN = "min"
    MEAN = "mean"
    MAX = "max"
    STD_DEV = "stddev"
    MEDIAN = "median"
    P75 = "p75"
    P95 = "p95"
    P98 = "p98"
    P99 = "p99"
    P999 = "p999"

    @classmethod
    def all(cls) -> frozenset:
        return frozenset(cls)

    @classmethod
    def parse(cls, value: str) -> "Expansion":
        """Accept either the enum name (``P95``) or the suffix (``p95``)."""
        for expansion in cls:
            if value in (expansion.name, expansion.value) or value.upper() == expansion.name:
                return expansion
        raise ValueError(f"Unknown expansion: {value}")


# Emission order of snapshot statistics
STATS_EXPANSIONS = (
    Expansion.MAX,
    Expansion.MEAN,
    Expansion.MIN,
    Expansion.STD_DEV,
    Expansion.MEDIAN,
    Expansion.P75,
    Expansion.P95,
    Expansion.P98,
    Expansion.P99,
    Expansion.P999,
)

RATE_EXPANSIONS = (
    Expansion.RATE_1_MINUTE,
    Expansion.RATE_5_MINUTE,
    Expansion.RATE_15_MINUTE,
    Expansion.RATE_MEAN,
)


class TimeUnit(Enum):
    """Time units and their length in nanoseconds."""
    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = 1_000_000_000
    MINUTES = 60 * 1_000_000_000
    HOURS = 3600 * 1_000_000_000
    DAYS = 86400 * 1_000_000_000

    @property
    def nanos(self) -> int:
        return self.value

    @property
    def seconds(self) -> float:
        return self.value / 1_000_000_000

    @classmethod
    def parse(cls, value: str) -> "TimeUnit":
        return cls[value.upper()]


def default_name_formatter(name: str, *path: str) -> str:
    """
    Append path segments to a metric name, keeping any tag suffix last.

    ``format("req[env:prod]", "p95")`` gives ``req.p95[env:prod]``.
    """
    base, bracket, rest = name.partition("[")
    formatted = base + "".join(f".{part}" for part in path)
    if bracket:
        formatted += bracket + rest
    return formatted


def is_numeric(value: Any) -> bool:
    """True for real numbers that are not booleans."""
    if isinstance(value, bool):
        return False
    return isinstance(value, (numbers.Real, Decimal))


def to_number(value: Any):
    """Coerce a numeric gauge value to int or float."""
    if isinstance(value, numbers.Integral):
        return int(value)
    return float(value)


def log_read_failure(failure: MetricReadFailure):
    """Default handler for metrics whose accessor raised."""
    logger.warning(f"Skipping metric {failure.metric_name}: {failure.cause}")


class SnapshotTranslator:
    """Expands registry snapshots into an ordered stream of gauge series."""

    def __init__(
        self,
        host: str,
        tags: Optional[List[str]] = None,
        dynamic_tags: Optional[Callable[[], Optional[List[str]]]] = None,
        prefix: Optional[str] = None,
        name_formatter: Callable[..., str] = default_name_formatter,
        metric_filter: Optional[Callable[[str, Any], bool]] = None,
        expansions: Optional[Iterable[Expansion]] = None,
        rate_unit: TimeUnit = TimeUnit.SECONDS,
        duration_unit: TimeUnit = TimeUnit.MILLISECONDS,
        on_failure: Callable[[MetricReadFailure], None] = log_read_failure
    ):
        self.host = host
        self.tags = list(tags) if tags else []
        self.dynamic_tags = dynamic_tags
        self.prefix = prefix
        self.name_formatter = name_formatter or default_name_formatter
        self.metric_filter = metric_filter
        self.expansions = frozenset(expansions) if expansions is not None else Expansion.all()
        self.rate_unit = rate_unit
        self.duration_unit = duration_unit
        self.on_failure = on_failure

    def current_tags(self) -> List[str]:
        """Tags for this cycle: the dynamic supplier's result replaces the base tags."""
        if self.dynamic_tags is not None:
            dynamic = self.dynamic_tags()
            if dynamic is not None:
                return list(dynamic)
        return list(self.tags)

    def metric_name(self, name: str, *path: str) -> str:
        formatted = self.name_formatter(name, *path)
        if self.prefix:
            return f"{self.prefix}.{formatted}"
        return formatted

    def convert_rate(self, rate: float) -> float:
        return rate * self.rate_unit.seconds

    def convert_duration(self, duration_ns: float) -> float:
        return duration_ns / self.duration_unit.nanos

    def translate(
        self,
        snapshot: RegistrySnapshot,
        timestamp: int,
        on_failure: Optional[Callable[[MetricReadFailure], None]] = None
    ) -> Iterator[Series]:
        """
        Yield the series for one report cycle.

        Kinds are emitted as gauges, counters, histograms, meters, then
        timers. A metric whose filter or accessor raises, or whose
        statistics are not finite, is handed to ``on_failure`` and omitted;
        the remaining metrics are still translated. Non-finite gauge values
        are skipped.
        """
        handle_failure = on_failure or self.on_failure
        tags = self.current_tags()
        groups = (
            (snapshot.gauges, self._gauge_series),
            (snapshot.counters, self._counter_series),
            (snapshot.histograms, self._histogram_series),
            (snapshot.meters, self._meter_series),
            (snapshot.timers, self._timer_series),
        )

        for metrics, expand in groups:
            for name in sorted(metrics):
                metric = metrics[name]
                try:
                    if self.metric_filter and not self.metric_filter(self.metric_name(name), metric):
                        continue
                    series = list(expand(name, metric, timestamp, tags))
                except Exception as e:
                    handle_failure(MetricReadFailure(name, e))
                    continue
                yield from series

    def _series(self, name: str, path: Optional[str], value, timestamp: int, tags: List[str]) -> Series:
        if not math.isfinite(value):
            raise InvalidArgument(f"{path or 'value'} is {value}")
        full_name = self.metric_name(name, path) if path else self.metric_name(name)
        return Series.gauge(full_name, value, timestamp, self.host, tags)

    def _gauge_series(self, name, gauge, timestamp, tags):
        value = gauge.get_value()
        if not is_numeric(value):
            logger.debug(f"Gauge {name} has non-numeric value {value!r}, skipping")
            return
        if not math.isfinite(value):
            logger.debug(f"Gauge {name} has non-finite value {value!r}, skipping")
            return
        yield self._series(name, None, to_number(value), timestamp, tags)

    def _counter_series(self, name, counter, timestamp, tags):
        yield self._series(name, None, counter.get_count(), timestamp, tags)

    def _histogram_series(self, name, histogram, timestamp, tags):
        if Expansion.COUNT in self.expansions:
            yield self._series(name, Expansion.COUNT.value, histogram.get_count(), timestamp, tags)
        yield from self._snapshot_series(name, histogram.get_snapshot(), timestamp, tags, lambda v: v)

    def _meter_series(self, name, meter, timestamp, tags):
        if Expansion.COUNT in self.expansions:
            yield self._series(name, Expansion.COUNT.value, meter.get_count(), timestamp, tags)

        rates = {
            Expansion.RATE_1_MINUTE: meter.get_one_minute_rate,
            Expansion.RATE_5_MINUTE: meter.get_five_minute_rate,
            Expansion.RATE_15_MINUTE: meter.get_fifteen_minute_rate,
            Expansion.RATE_MEAN: meter.get_mean_rate,
        }
        for expansion in RATE_EXPANSIONS:
            if expansion in self.expansions:
                value = self.convert_rate(rates[expansion]())
                yield self._series(name, expansion.value, value, timestamp, tags)

    def _timer_series(self, name, timer, timestamp, tags):
        yield from self._snapshot_series(name, timer.get_snapshot(), timestamp, tags, self.convert_duration)
        yield from self._meter_series(name, timer, timestamp, tags)

    def _snapshot_series(self, name, snapshot, timestamp, tags, convert):
        stats = {
            Expansion.MAX: snapshot.get_max,
            Expansion.MEAN: snapshot.get_mean,
            Expansion.MIN: snapshot.get_min,
            Expansion.STD_DEV: snapshot.get_std_dev,
            Expansion.MEDIAN: snapshot.get_median,
            Expansion.P75: snapshot.get_75th_percentile,
            Expansion.P95: snapshot.get_95th_percentile,
            Expansion.P98: snapshot.get_98th_percentile,
            Expansion.P99: snapshot.get_99th_percentile,
            Expansion.P999: snapshot.get_999th_percentile,
        }
        for expansion in STATS_EXPANSIONS:
            if expansion in self.expansions:
                yield self._series(name, expansion.value, convert(stats[expansion]()), timestamp, tags)
