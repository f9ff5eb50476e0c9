"""Configuration models using Pydantic for validation."""
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import os

from dogreporter.translator import Expansion, TimeUnit


class HttpTransportConfig(BaseModel):
    """Batched HTTP push to the Datadog series API."""
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None
    site: str = "datadoghq.com"
    api_version: Literal["v1", "v2"] = "v2"
    connect_timeout_s: float = Field(default=5.0, gt=0)
    response_timeout_s: float = Field(default=5.0, gt=0)
    proxy_host: Optional[str] = None
    proxy_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    compression: bool = False

    @model_validator(mode='after')
    def validate_proxy(self):
        """Proxy host and port must be set together or not at all."""
        if (self.proxy_host is None) != (self.proxy_port is None):
            raise ValueError("must set both proxy_host and proxy_port or neither")
        return self

    @property
    def series_url(self) -> str:
        return f"https://api.{self.site}/api/{self.api_version}/series"

    @property
    def proxy_url(self) -> Optional[str]:
        if self.proxy_host is None:
            return None
        return f"http://{self.proxy_host}:{self.proxy_port}"


class UdpTransportConfig(BaseModel):
    """DogStatsD UDP push."""
    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = Field(default=8125, gt=0, lt=65536)
    prefix: Optional[str] = None
    retrying_lookup: bool = False
    constant_tags: List[str] = Field(default_factory=list)


class SelfMetricsConfig(BaseModel):
    """Prometheus endpoint exposing the reporter's own health metrics."""
    enabled: bool = False
    port: int = 9102
    bind_address: str = "0.0.0.0"


class ReporterConfig(BaseModel):
    """What to report and how to ship it."""
    host: Optional[str] = None
    prefix: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    rate_unit: TimeUnit = TimeUnit.SECONDS
    duration_unit: TimeUnit = TimeUnit.MILLISECONDS
    expansions: List[Expansion] = Field(default_factory=lambda: list(Expansion))
    period_s: float = Field(default=10.0, gt=0)
    transport: Literal["http", "udp"] = "http"
    http: HttpTransportConfig = Field(default_factory=HttpTransportConfig)
    udp: UdpTransportConfig = Field(default_factory=UdpTransportConfig)
    self_metrics: SelfMetricsConfig = Field(default_factory=SelfMetricsConfig)

    @field_validator('rate_unit', 'duration_unit', mode='before')
    @classmethod
    def parse_time_unit(cls, v):
        """Accept unit names such as ``seconds`` or ``MILLISECONDS``."""
        if isinstance(v, str):
            return TimeUnit.parse(v)
        return v

    @field_validator('expansions', mode='before')
    @classmethod
    def parse_expansions(cls, v):
        """Accept suffixes (``p95``) or enum names (``P95``)."""
        if v is None:
            return list(Expansion)
        return [Expansion.parse(e) if isinstance(e, str) else e for e in v]

    @field_validator('tags')
    @classmethod
    def validate_tags(cls, v):
        """Tags must be non-blank."""
        for tag in v:
            if not tag or not tag.strip():
                raise ValueError("Tags must not be empty")
        return v

    @model_validator(mode='after')
    def validate_transport(self):
        """The HTTP transport cannot authenticate without an API key."""
        if self.transport == "http" and not self.http.api_key:
            raise ValueError("http transport requires an api_key")
        return self


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    reporter: ReporterConfig


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    reporter = raw_config.get('reporter') or {}
    raw_config['reporter'] = reporter

    # Apply environment variable overrides
    if env_api_key := os.getenv('DD_API_KEY'):
        reporter['http'] = reporter.get('http') or {}
        reporter['http']['api_key'] = env_api_key

    if env_agent_host := os.getenv('DD_AGENT_HOST'):
        reporter['udp'] = reporter.get('udp') or {}
        reporter['udp']['host'] = env_agent_host

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config['global'] = raw_config.get('global') or {}
        raw_config['global']['log_level'] = env_log_level

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
