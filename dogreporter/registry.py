"""Minimal in-process metrics registry read by the reporter."""
import math
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import numpy as np

RESERVOIR_SIZE = 1028
TICK_INTERVAL_S = 5.0


class Clock:
    """Source of the report timestamp."""

    def time_ms(self) -> int:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in epoch milliseconds."""

    def time_ms(self) -> int:
        return int(time.time() * 1000)


class Gauge:
    """Gauge whose value is read from a callable on every report."""

    def __init__(self, supplier: Callable[[], Any]):
        self.supplier = supplier

    def get_value(self) -> Any:
        return self.supplier()


class Counter:
    """Monotonic (or manually decremented) absolute count."""

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()

    def inc(self, n: int = 1):
        with self._lock:
            self._count += n

    def dec(self, n: int = 1):
        with self._lock:
            self._count -= n

    def get_count(self) -> int:
        return self._count


class Snapshot:
    """Statistics over a fixed set of sampled values."""

    def __init__(self, values):
        self.values = np.sort(np.asarray(values, dtype=float))

    def _quantile(self, q: float) -> float:
        if self.values.size == 0:
            return 0.0
        return float(np.quantile(self.values, q))

    def get_max(self) -> float:
        return float(self.values[-1]) if self.values.size else 0.0

    def get_min(self) -> float:
        return float(self.values[0]) if self.values.size else 0.0

    def get_mean(self) -> float:
        return float(np.mean(self.values)) if self.values.size else 0.0

    def get_std_dev(self) -> float:
        # sample standard deviation; zero for fewer than two values
        if self.values.size < 2:
            return 0.0
        return float(np.std(self.values, ddof=1))

    def get_median(self) -> float:
        return self._quantile(0.5)

    def get_75th_percentile(self) -> float:
        return self._quantile(0.75)

    def get_95th_percentile(self) -> float:
        return self._quantile(0.95)

    def get_98th_percentile(self) -> float:
        return self._quantile(0.98)

    def get_99th_percentile(self) -> float:
        return self._quantile(0.99)

    def get_999th_percentile(self) -> float:
        return self._quantile(0.999)


class Histogram:
    """Distribution backed by a uniform reservoir sample."""

    def __init__(self, size: int = RESERVOIR_SIZE, seed: Optional[int] = None):
        self.size = size
        self.rng = np.random.default_rng(seed)
        self._values = np.zeros(size, dtype=float)
        self._count = 0
        self._lock = threading.Lock()

    def update(self, value: float):
        with self._lock:
            self._count += 1
            if self._count <= self.size:
                self._values[self._count - 1] = value
            else:
                slot = int(self.rng.integers(0, self._count))
                if slot < self.size:
                    self._values[slot] = value

    def get_count(self) -> int:
        return self._count

    def get_snapshot(self) -> Snapshot:
        with self._lock:
            filled = min(self._count, self.size)
            return Snapshot(self._values[:filled].copy())


class EWMA:
    """Exponentially weighted moving average of a per-second rate."""

    def __init__(self, minutes: int, interval_s: float = TICK_INTERVAL_S):
        self.interval_s = interval_s
        self.alpha = 1.0 - math.exp(-interval_s / 60.0 / minutes)
        self.rate = 0.0
        self.initialized = False
        self.uncounted = 0

    def update(self, n: int):
        self.uncounted += n

    def tick(self):
        instant_rate = self.uncounted / self.interval_s
        self.uncounted = 0
        if self.initialized:
            self.rate += self.alpha * (instant_rate - self.rate)
        else:
            self.rate = instant_rate
            self.initialized = True


class Meter:
    """Event rate tracker; all rates are events per second."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.start_time = clock()
        self.last_tick = self.start_time
        self._count = 0
        self._m1 = EWMA(1)
        self._m5 = EWMA(5)
        self._m15 = EWMA(15)
        self._lock = threading.Lock()

    def mark(self, n: int = 1):
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            for ewma in (self._m1, self._m5, self._m15):
                ewma.update(n)

    def _tick_if_necessary(self):
        now = self.clock()
        ticks = int((now - self.last_tick) // TICK_INTERVAL_S)
        if ticks <= 0:
            return
        self.last_tick += ticks * TICK_INTERVAL_S
        for _ in range(ticks):
            for ewma in (self._m1, self._m5, self._m15):
                ewma.tick()

    def get_count(self) -> int:
        return self._count

    def get_mean_rate(self) -> float:
        with self._lock:
            if self._count == 0:
                return 0.0
            elapsed = self.clock() - self.start_time
            return self._count / elapsed if elapsed > 0 else 0.0

    def get_one_minute_rate(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m1.rate

    def get_five_minute_rate(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m5.rate

    def get_fifteen_minute_rate(self) -> float:
        with self._lock:
            self._tick_if_necessary()
            return self._m15.rate


class Timer(Meter):
    """Meter plus a histogram of durations recorded in nanoseconds."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        super().__init__(clock)
        self.histogram = Histogram()

    def update(self, duration_ns: int):
        if duration_ns < 0:
            return
        self.histogram.update(duration_ns)
        self.mark()

    @contextmanager
    def time(self):
        """Time the enclosed block."""
        start = time.perf_counter_ns()
        try:
            yield
        finally:
            self.update(time.perf_counter_ns() - start)

    def get_snapshot(self) -> Snapshot:
        return self.histogram.get_snapshot()


@dataclass
class RegistrySnapshot:
    """The five typed metric mappings read in one report cycle."""
    gauges: Dict[str, Any] = field(default_factory=dict)
    counters: Dict[str, Any] = field(default_factory=dict)
    histograms: Dict[str, Any] = field(default_factory=dict)
    meters: Dict[str, Any] = field(default_factory=dict)
    timers: Dict[str, Any] = field(default_factory=dict)


class MetricRegistry:
    """Named metrics grouped by kind."""

    def __init__(self):
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()

    @staticmethod
    def name(*parts: str) -> str:
        """Join non-empty name parts with dots."""
        return ".".join(str(p) for p in parts if p)

    def register(self, name: str, metric: Any) -> Any:
        with self._lock:
            if name in self._metrics:
                raise ValueError(f"A metric named {name} already exists")
            self._metrics[name] = metric
        return metric

    def _get_or_add(self, name: str, factory, kind):
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory()
                self._metrics[name] = metric
            elif not isinstance(metric, kind) or (kind is Meter and isinstance(metric, Timer)):
                raise ValueError(f"{name} is already used for a different type of metric")
            return metric

    def gauge(self, name: str, supplier: Callable[[], Any]) -> Gauge:
        return self._get_or_add(name, lambda: Gauge(supplier), Gauge)

    def counter(self, name: str) -> Counter:
        return self._get_or_add(name, Counter, Counter)

    def histogram(self, name: str) -> Histogram:
        return self._get_or_add(name, Histogram, Histogram)

    def meter(self, name: str) -> Meter:
        return self._get_or_add(name, Meter, Meter)

    def timer(self, name: str) -> Timer:
        return self._get_or_add(name, Timer, Timer)

    def remove(self, name: str) -> bool:
        with self._lock:
            return self._metrics.pop(name, None) is not None

    def snapshot(self) -> RegistrySnapshot:
        """Group the current metrics by kind, each mapping sorted by name."""
        snap = RegistrySnapshot()
        with self._lock:
            items = sorted(self._metrics.items())
        for name, metric in items:
            if isinstance(metric, Gauge):
                snap.gauges[name] = metric
            elif isinstance(metric, Counter):
                snap.counters[name] = metric
            elif isinstance(metric, Histogram):
                snap.histograms[name] = metric
            elif isinstance(metric, Timer):
                snap.timers[name] = metric
            elif isinstance(metric, Meter):
                snap.meters[name] = metric
        return snap
