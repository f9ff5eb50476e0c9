"""Tests for configuration models and YAML loading."""
import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from dogreporter.config import Config, HttpTransportConfig, ReporterConfig, load_config
from dogreporter.translator import Expansion, TimeUnit


def write_config(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


def test_proxy_host_without_port_is_rejected():
    with pytest.raises(ValidationError):
        HttpTransportConfig(api_key="k", proxy_host="proxy.local")


def test_proxy_port_without_host_is_rejected():
    with pytest.raises(ValidationError):
        HttpTransportConfig(api_key="k", proxy_port=3128)


def test_http_config_urls():
    config = HttpTransportConfig(api_key="k", site="datadoghq.eu", proxy_host="p", proxy_port=8080)
    assert config.series_url == "https://api.datadoghq.eu/api/v2/series"
    assert config.proxy_url == "http://p:8080"


def test_transport_configs_are_immutable():
    config = HttpTransportConfig(api_key="k")
    with pytest.raises(ValidationError):
        config.api_key = "other"


def test_http_transport_requires_api_key():
    with pytest.raises(ValidationError):
        ReporterConfig(transport="http")


def test_udp_transport_needs_no_api_key():
    config = ReporterConfig(transport="udp")
    assert config.udp.port == 8125
    assert config.udp.host == "localhost"


def test_defaults():
    config = ReporterConfig(http={"api_key": "k"})
    assert config.rate_unit is TimeUnit.SECONDS
    assert config.duration_unit is TimeUnit.MILLISECONDS
    assert set(config.expansions) == set(Expansion)
    assert config.period_s == 10.0


def test_units_and_expansions_parse_from_strings():
    config = ReporterConfig(
        transport="udp",
        rate_unit="minutes",
        duration_unit="MICROSECONDS",
        expansions=["count", "P95", "1MinuteRate"],
    )
    assert config.rate_unit is TimeUnit.MINUTES
    assert config.duration_unit is TimeUnit.MICROSECONDS
    assert config.expansions == [Expansion.COUNT, Expansion.P95, Expansion.RATE_1_MINUTE]


def test_blank_tags_are_rejected():
    with pytest.raises(ValidationError):
        ReporterConfig(transport="udp", tags=["env:prod", " "])


def test_load_config(tmp_path, monkeypatch):
    monkeypatch.delenv("DD_API_KEY", raising=False)
    monkeypatch.delenv("DD_AGENT_HOST", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    path = write_config(tmp_path, """
        global:
          log_level: DEBUG
        reporter:
          host: web-1
          prefix: app
          tags:
            - env:prod
          transport: http
          http:
            api_key: abc
            compression: true
    """)

    config = load_config(path)

    assert isinstance(config, Config)
    assert config.global_.log_level == "DEBUG"
    assert config.reporter.host == "web-1"
    assert config.reporter.http.compression is True
    assert config.reporter.http.api_key == "abc"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DD_API_KEY", "from-env")
    monkeypatch.setenv("DD_AGENT_HOST", "agent.local")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    path = write_config(tmp_path, """
        reporter:
          transport: http
    """)

    config = load_config(path)

    assert config.reporter.http.api_key == "from-env"
    assert config.reporter.udp.host == "agent.local"
    assert config.global_.log_level == "WARNING"


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/config.yaml")


def test_invalid_config_raises_value_error(tmp_path, monkeypatch):
    monkeypatch.delenv("DD_API_KEY", raising=False)
    path = write_config(tmp_path, """
        reporter:
          transport: http
          http:
            proxy_host: proxy.local
    """)
    with pytest.raises(ValueError, match="Configuration validation failed"):
        load_config(path)


def test_example_config_loads(monkeypatch):
    monkeypatch.delenv("DD_API_KEY", raising=False)
    config = load_config(str(Path(__file__).parent.parent / "configs" / "example.yaml"))
    assert config.reporter.transport == "http"
    assert Expansion.P95 in config.reporter.expansions


def test_environment_overrides_fill_empty_sections(tmp_path, monkeypatch):
    monkeypatch.setenv("DD_API_KEY", "from-env")
    monkeypatch.setenv("DD_AGENT_HOST", "agent.local")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    path = write_config(tmp_path, """
        global:
        reporter:
          transport: http
          http:
          udp:
    """)

    config = load_config(path)

    assert config.reporter.http.api_key == "from-env"
    assert config.reporter.udp.host == "agent.local"
    assert config.global_.log_level == "ERROR"
