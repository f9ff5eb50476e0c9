"""DogStatsD UDP transport pushing each series as it is added."""
import logging
import socket
import threading
from typing import Dict, Optional

from datadog import DogStatsd

from dogreporter.config import UdpTransportConfig
from dogreporter.exceptions import ResolutionFailure
from dogreporter.series import Series
from dogreporter.transport import Request, SendResult, Transport

logger = logging.getLogger(__name__)


def resolve_static(host: str, port: int) -> str:
    """Resolve ``host`` once to an IP address, failing fast."""
    try:
        infos = socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM)
    except (socket.gaierror, socket.herror, UnicodeError) as e:
        raise ResolutionFailure(f"Unable to resolve statsd host {host}:{port}: {e}") from e
    if not infos:
        raise ResolutionFailure(f"No address found for statsd host {host}:{port}")
    return infos[0][4][0]


class CounterDeltaTable:
    """
    Last absolute value seen per counter key.

    DogStatsD counters are relative, so each absolute count is turned into
    the increase since the previous observation. This is the only state
    that outlives a report cycle; the lock serializes the read-modify-write
    of an entry.
    """

    def __init__(self):
        self._last_seen: Dict[str, int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(series: Series) -> str:
        """Metric name plus tags joined in reverse order."""
        return f"{series.metric}:{','.join(reversed(series.tags))}"

    def delta(self, key: str, value: int) -> int:
        """Relative count to emit for ``value``; records ``value`` as last seen."""
        with self._lock:
            last = self._last_seen.get(key)
            self._last_seen[key] = value
        if last is None:
            return value
        return max(0, value - last)

    def get(self, key: str) -> Optional[int]:
        with self._lock:
            return self._last_seen.get(key)

    def clear(self):
        with self._lock:
            self._last_seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)


class UdpTransport(Transport):
    """
    Uses the DogStatsD UDP protocol to push metrics.

    DogStatsD carries no timestamps and has no batching, so every series
    is enqueued for the background sender as soon as it is added and is
    recorded by the agent at receive time.

    With ``retrying_lookup`` the collector host is resolved again at the
    start of every report cycle; when the address changes the client's
    socket is closed so the next packet connects to the new address.
    """

    name = "udp"

    def __init__(self, config: UdpTransportConfig, client: Optional[DogStatsd] = None):
        self.config = config
        self.counters = CounterDeltaTable()

        if config.retrying_lookup:
            try:
                self.address = resolve_static(config.host, config.port)
            except ResolutionFailure as e:
                # resolved again on the next cycle
                logger.warning(f"{e}, will retry")
                self.address = config.host
        else:
            self.address = resolve_static(config.host, config.port)

        self.statsd = client if client is not None else self._build_client(self.address)
        logger.info(
            f"Created UdpTransport with statsd host: {config.host}, port: {config.port}, "
            f"retrying lookup: {config.retrying_lookup}"
        )

    def _build_client(self, address: str) -> DogStatsd:
        return DogStatsd(
            host=address,
            port=self.config.port,
            namespace=self.config.prefix,
            constant_tags=list(self.config.constant_tags) or None,
            disable_telemetry=True,
            disable_buffering=True,
            disable_background_sender=False,
            sender_queue_size=0,
        )

    def refresh_address(self) -> bool:
        """Re-resolve the collector host; True when the client was repointed."""
        try:
            address = resolve_static(self.config.host, self.config.port)
        except ResolutionFailure as e:
            logger.warning(f"{e}, keeping {self.address}")
            return False

        if address == self.address:
            return False

        logger.info(f"Statsd host {self.config.host} moved from {self.address} to {address}")
        self.address = address
        self.statsd.host = address
        self.statsd.close_socket()
        return True

    def prepare(self) -> "DogstatsdRequest":
        if self.config.retrying_lookup:
            self.refresh_address()
        return DogstatsdRequest(self.statsd, self.counters)

    def close(self):
        """Drain and stop the background sender, then close the socket."""
        try:
            self.statsd.disable_background_sender()
        finally:
            self.statsd.close_socket()
            self.counters.clear()
        logger.info("UdpTransport closed")


class DogstatsdRequest(Request):
    """Pushes each series immediately; ``send`` has nothing left to do."""

    def __init__(self, statsd: DogStatsd, counters: CounterDeltaTable):
        super().__init__()
        self.statsd = statsd
        self.counters = counters

    def _add_gauge(self, series: Series):
        if len(series.points) > 1:
            logger.debug(f"Gauge {series.metric} has more than one data point, will pick the first point only")
        value = float(series.value)
        self.statsd.gauge(series.metric, value, tags=list(series.tags))

    def _add_counter(self, series: Series):
        if len(series.points) > 1:
            logger.debug(f"Counter {series.metric} has more than one data point, will pick the first point only")
        value = int(series.value)
        delta = self.counters.delta(CounterDeltaTable.key(series), value)
        self.statsd.increment(series.metric, delta, tags=list(series.tags))

    def _add_rate(self, series: Series):
        # DogStatsD has no rate primitive
        pass

    def _send(self) -> SendResult:
        return SendResult(ok=True)
