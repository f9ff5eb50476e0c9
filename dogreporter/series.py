"""Data structures for Datadog time series."""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from dogreporter.exceptions import InvalidArgument
from dogreporter.tags import TaggedName, merge_tags

Number = Union[int, float]


class MetricKind(Enum):
    """Series kinds and their Datadog v2 intake type codes."""
    UNSPECIFIED = 0
    COUNT = 1
    RATE = 2
    GAUGE = 3

    @property
    def type_code(self) -> int:
        return self.value


@dataclass(frozen=True)
class Series:
    """One named, tagged series with one or more (timestamp, value) points."""
    metric: str
    points: Tuple[Tuple[int, Number], ...]
    tags: Tuple[str, ...]
    host: str
    kind: MetricKind = MetricKind.GAUGE

    def __post_init__(self):
        if not self.metric or not self.metric.strip():
            raise InvalidArgument("Series metric name must not be empty")
        if "[" in self.metric or "]" in self.metric:
            raise InvalidArgument(f"Series metric name still carries encoded tags: {self.metric}")
        if not self.points:
            raise InvalidArgument(f"Series {self.metric} has no points")

    @property
    def first_point(self) -> Tuple[int, Number]:
        return self.points[0]

    @property
    def value(self) -> Number:
        """Value of the first point."""
        return self.points[0][1]

    @property
    def timestamp(self) -> int:
        """Timestamp of the first point."""
        return self.points[0][0]

    @classmethod
    def create(
        cls,
        name: str,
        value: Number,
        timestamp: int,
        host: str,
        tags: Optional[Iterable[str]] = None,
        kind: MetricKind = MetricKind.GAUGE
    ) -> "Series":
        """
        Build a single-point series from a possibly tag-encoded name.

        Tags decoded from the name come first; ``tags`` override them on
        key collision.
        """
        tagged = TaggedName.decode(name)
        merged = merge_tags(tagged.encoded_tags, tags)
        return cls(tagged.metric_name, ((int(timestamp), value),), tuple(merged), host, kind)

    @classmethod
    def gauge(cls, name, value, timestamp, host, tags=None) -> "Series":
        return cls.create(name, value, timestamp, host, tags, MetricKind.GAUGE)

    @classmethod
    def count(cls, name, value, timestamp, host, tags=None) -> "Series":
        return cls.create(name, value, timestamp, host, tags, MetricKind.COUNT)

    @classmethod
    def rate(cls, name, value, timestamp, host, tags=None) -> "Series":
        return cls.create(name, value, timestamp, host, tags, MetricKind.RATE)
