"""Error taxonomy for the Datadog reporter."""
from typing import Optional


class DogReporterError(Exception):
    """Base class for all reporter errors."""


class InvalidArgument(DogReporterError, ValueError):
    """Malformed tag or metric name input."""


class InvalidState(DogReporterError, RuntimeError):
    """An encoder or request used out of order."""


class MetricReadFailure(DogReporterError):
    """A single metric accessor raised while being read."""

    def __init__(self, metric_name: str, cause: BaseException):
        super().__init__(f"Failed to read metric '{metric_name}': {cause}")
        self.metric_name = metric_name
        self.cause = cause


class TransportFailure(DogReporterError):
    """Network error or error-range response while sending metrics."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ResolutionFailure(DogReporterError):
    """The DogStatsD collector address could not be resolved."""
