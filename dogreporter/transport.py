"""Transport interface for pushing series to Datadog."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from dogreporter.exceptions import InvalidState, TransportFailure
from dogreporter.series import Series


@dataclass(frozen=True)
class SendResult:
    """Outcome of one ``Request.send()``."""
    ok: bool
    series_count: int = 0
    status_code: Optional[int] = None
    elapsed_ms: float = 0.0
    error: Optional[TransportFailure] = None


class Request(ABC):
    """
    A single-use batch of series.

    The call order is any number of ``add_gauge``/``add_counter``/``add_rate``
    followed by exactly one ``send()``.
    """

    def __init__(self):
        self._sent = False

    def _check_open(self):
        if self._sent:
            raise InvalidState("Request has already been sent")

    def add_gauge(self, series: Series):
        self._check_open()
        self._add_gauge(series)

    def add_counter(self, series: Series):
        self._check_open()
        self._add_counter(series)

    def add_rate(self, series: Series):
        self._check_open()
        self._add_rate(series)

    def send(self) -> SendResult:
        """Deliver the batch. Never raises on network or HTTP errors."""
        self._check_open()
        self._sent = True
        return self._send()

    @abstractmethod
    def _add_gauge(self, series: Series):
        pass

    @abstractmethod
    def _add_counter(self, series: Series):
        pass

    @abstractmethod
    def _add_rate(self, series: Series):
        pass

    @abstractmethod
    def _send(self) -> SendResult:
        pass


class Transport(ABC):
    """Builds requests and owns any long-lived connection state."""

    name = "transport"

    @abstractmethod
    def prepare(self) -> Request:
        """Build a request context for one report cycle."""
        pass

    def close(self):
        """Release connections and background resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
