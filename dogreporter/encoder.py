"""Streaming JSON encoder for Datadog series payloads."""
import io
import json
from typing import Any, Dict, List

from dogreporter.exceptions import InvalidArgument, InvalidState
from dogreporter.series import MetricKind, Series

_COMPACT = (",", ":")

# v1 intake names types as strings and carries the host inline
_V1_TYPE_NAMES = {
    MetricKind.GAUGE: "gauge",
    MetricKind.COUNT: "count",
    MetricKind.RATE: "rate",
}


class PayloadEncoder:
    """
    Encodes series into a ``{"series": [...]}`` body one object at a time.

    Call order is ``start()``, any number of ``append()``, then
    ``finish()``. Each appended series is written straight into the text
    buffer, so only serialized bytes are held, never the series objects.
    The encoder is single-use.
    """

    def __init__(self, api_version: str = "v2"):
        if api_version not in ("v1", "v2"):
            raise ValueError(f"Unknown Datadog API version: {api_version}")
        self.api_version = api_version
        self._buffer: io.StringIO = None
        self._state = "new"
        self._count = 0

    @property
    def count(self) -> int:
        """Number of series appended so far."""
        return self._count

    def start(self):
        """Open the payload object and its series array."""
        if self._state != "new":
            raise InvalidState(f"Encoder cannot start from state '{self._state}'")
        self._buffer = io.StringIO()
        self._buffer.write('{"series":[')
        self._state = "started"

    def append(self, series: Series):
        """
        Serialize one series into the open payload.

        Raises ``InvalidArgument`` for NaN or infinite values, which have
        no JSON representation; the payload is left unchanged.
        """
        if self._state != "started":
            raise InvalidState(f"Encoder cannot append in state '{self._state}'")
        try:
            encoded = json.dumps(self.series_to_dict(series), separators=_COMPACT, allow_nan=False)
        except ValueError as e:
            raise InvalidArgument(f"Series {series.metric} cannot be encoded: {e}") from e
        if self._count:
            self._buffer.write(",")
        self._buffer.write(encoded)
        self._count += 1

    def finish(self) -> str:
        """Close the payload and return it."""
        if self._state != "started":
            raise InvalidState(f"Encoder cannot finish in state '{self._state}'")
        self._buffer.write("]}")
        payload = self._buffer.getvalue()
        self._buffer.close()
        self._buffer = None
        self._state = "finished"
        return payload

    def series_to_dict(self, series: Series) -> Dict[str, Any]:
        """Wire representation of one series."""
        if self.api_version == "v1":
            return {
                "metric": series.metric,
                "points": [[int(ts), float(value)] for ts, value in series.points],
                "tags": list(series.tags),
                "type": _V1_TYPE_NAMES.get(series.kind, "gauge"),
                "host": series.host,
            }
        return {
            "metric": series.metric,
            "points": [
                {"timestamp": int(ts), "value": float(value)}
                for ts, value in series.points
            ],
            "tags": list(series.tags),
            "type": series.kind.type_code,
            "resources": [{"name": series.host, "type": "host"}],
        }


def encode_series(series_list, api_version: str = "v2") -> str:
    """Encode a finite iterable of series in one go."""
    encoder = PayloadEncoder(api_version)
    encoder.start()
    for series in series_list:
        encoder.append(series)
    return encoder.finish()


def decode_payload(payload: str) -> List[Series]:
    """Parse a v1 or v2 payload back into series."""
    kinds_by_name = {name: kind for kind, name in _V1_TYPE_NAMES.items()}
    decoded = []

    for item in json.loads(payload)["series"]:
        points = []
        for point in item["points"]:
            if isinstance(point, dict):
                points.append((point["timestamp"], point["value"]))
            else:
                points.append((point[0], point[1]))

        raw_type = item.get("type", 0)
        if isinstance(raw_type, str):
            kind = kinds_by_name.get(raw_type, MetricKind.UNSPECIFIED)
        else:
            kind = MetricKind(raw_type)

        if "resources" in item:
            hosts = [r["name"] for r in item["resources"] if r.get("type") == "host"]
            host = hosts[0] if hosts else ""
        else:
            host = item.get("host", "")

        decoded.append(Series(
            metric=item["metric"],
            points=tuple(points),
            tags=tuple(item.get("tags", [])),
            host=host,
            kind=kind,
        ))

    return decoded
