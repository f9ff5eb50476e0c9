"""Batched HTTP transport posting series to the Datadog API."""
import hashlib
import logging
import time
import zlib
from typing import Dict, Optional

import requests

from dogreporter.config import HttpTransportConfig
from dogreporter.encoder import PayloadEncoder
from dogreporter.exceptions import TransportFailure
from dogreporter.series import Series
from dogreporter.transport import Request, SendResult, Transport

logger = logging.getLogger(__name__)


def deflate(body: str) -> bytes:
    """zlib-deflate a UTF-8 body, logging the compression ratio."""
    raw = body.encode("utf-8")
    compressed = zlib.compress(raw)
    if logger.isEnabledFor(logging.DEBUG) and compressed:
        logger.debug(
            f"POST body length compressed / uncompressed / compression ratio: "
            f"{len(compressed)} / {len(raw)} / {len(raw) / len(compressed):.2f}"
        )
    return compressed


class HttpTransport(Transport):
    """
    Uses the Datadog HTTP series API to push metrics.

    Every report cycle becomes one POST. Failures are logged and reported
    in the returned SendResult; nothing is retried.
    """

    name = "http"

    def __init__(self, config: HttpTransportConfig, session: Optional[requests.Session] = None):
        if not config.api_key:
            raise ValueError("HttpTransport requires an api_key")
        self.config = config
        self.session = session or requests.Session()
        logger.info(
            f"HTTP transport targeting {config.series_url} "
            f"(compression={config.compression}, proxy={config.proxy_url})"
        )

    @property
    def url(self) -> str:
        return self.config.series_url

    @property
    def proxies(self) -> Optional[Dict[str, str]]:
        proxy = self.config.proxy_url
        if proxy is None:
            return None
        return {"http": proxy, "https": proxy}

    def prepare(self) -> "HttpRequest":
        return HttpRequest(self)

    def close(self):
        self.session.close()


class HttpRequest(Request):
    """Streams series into one JSON payload and posts it on send."""

    def __init__(self, transport: HttpTransport):
        super().__init__()
        self.transport = transport
        self.encoder = PayloadEncoder(transport.config.api_version)
        self.encoder.start()

    def _add_gauge(self, series: Series):
        self.encoder.append(series)

    def _add_counter(self, series: Series):
        self.encoder.append(series)

    def _add_rate(self, series: Series):
        self.encoder.append(series)

    def build_request(self, body: str):
        """URL, headers, params and data for the POST."""
        config = self.transport.config
        headers = {"Content-Type": "application/json"}
        params = None

        if config.api_version == "v2":
            headers["DD-API-KEY"] = config.api_key
        else:
            params = {"api_key": config.api_key}

        if config.compression:
            headers["Content-Encoding"] = "deflate"
            headers["Content-MD5"] = hashlib.md5(body.encode("utf-8")).hexdigest()
            data = deflate(body)
        else:
            data = body.encode("utf-8")

        return self.transport.url, headers, params, data

    def _send(self) -> SendResult:
        config = self.transport.config
        body = self.encoder.finish()
        count = self.encoder.count

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Sending HTTP POST via proxy {config.proxy_url}, "
                f"uncompressed POST body length is: {len(body)}"
            )
            logger.debug(f"Uncompressed POST body is:\n{body}")

        url, headers, params, data = self.build_request(body)
        start = time.monotonic()

        try:
            response = self.transport.session.post(
                url,
                headers=headers,
                params=params,
                data=data,
                timeout=(config.connect_timeout_s, config.response_timeout_s),
                proxies=self.transport.proxies,
            )
        except requests.RequestException as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.warning(f"Failed to send metrics to Datadog: proxy: {config.proxy_url}, error: {e}")
            return SendResult(
                ok=False,
                series_count=count,
                elapsed_ms=elapsed_ms,
                error=TransportFailure(str(e)),
            )

        elapsed_ms = (time.monotonic() - start) * 1000

        if response.status_code >= 400:
            logger.warning(
                f"Failure sending metrics to Datadog:\n"
                f"  Timing: {elapsed_ms:.0f} ms\n"
                f"  Status: {response.status_code}\n"
                f"  Content: {response.text}"
            )
            return SendResult(
                ok=False,
                series_count=count,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
                error=TransportFailure(
                    f"Datadog responded with status {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                ),
            )

        logger.debug(
            f"Sent {count} series to Datadog in {elapsed_ms:.0f} ms "
            f"(status {response.status_code})"
        )
        return SendResult(
            ok=True,
            series_count=count,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
