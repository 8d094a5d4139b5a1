"""
Unit tests for the core layer.

Tests:
- Exception hierarchy
- format_kv_pairs() escaping and truncation
- Logger key=value and JSON output, bind()
- load_yaml() errors
- MetricsConfig validation and MetricsServer lifecycle
"""

import json
import logging

import pytest
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import ValidationError

from outbench.core.exceptions import (
    CacheError,
    ConfigurationError,
    ConnectivityError,
    OutbenchError,
    ProtocolError,
    RelaySSLError,
    RelayTimeoutError,
)
from outbench.core.logger import Logger, StructuredFormatter, format_kv_pairs
from outbench.core.metrics import MetricsConfig, MetricsServer
from outbench.core.yaml import load_yaml


# ============================================================================
# Exceptions Tests
# ============================================================================


class TestExceptionHierarchy:
    """Tests for the exception tree."""

    @pytest.mark.parametrize(
        "exc", [ConfigurationError, ConnectivityError, ProtocolError, CacheError]
    )
    def test_base(self, exc: type[Exception]) -> None:
        """Test that every category derives from OutbenchError."""
        assert issubclass(exc, OutbenchError)

    @pytest.mark.parametrize("exc", [RelayTimeoutError, RelaySSLError])
    def test_connectivity(self, exc: type[Exception]) -> None:
        """Test that relay failures are connectivity errors."""
        assert issubclass(exc, ConnectivityError)


# ============================================================================
# Logger Tests
# ============================================================================


class TestFormatKvPairs:
    """Tests for format_kv_pairs()."""

    def test_empty(self) -> None:
        """Test that no pairs give an empty string."""
        assert format_kv_pairs({}) == ""

    def test_plain_and_quoted(self) -> None:
        """Test plain values and quoting of values with spaces and quotes."""
        assert format_kv_pairs({"relays": 12}) == " relays=12"
        assert format_kv_pairs({"error": "timed out"}) == ' error="timed out"'
        assert format_kv_pairs({"msg": 'say "hi"'}) == ' msg="say \\"hi\\""'
        assert format_kv_pairs({"empty": ""}) == ' empty=""'

    def test_truncation(self) -> None:
        """Test that long values are truncated with a marker."""
        result = format_kv_pairs({"k": "x" * 20}, max_value_length=5)
        assert result == ' k="xxxxx...<truncated 15 chars>"'

    def test_no_truncation(self) -> None:
        """Test that None disables truncation."""
        assert format_kv_pairs({"k": "x" * 2000}, max_value_length=None) == " k=" + "x" * 2000


class TestLogger:
    """Tests for Logger."""

    def test_kv_output(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that kwargs travel as structured extras."""
        logger = Logger("test.kv")
        with caplog.at_level(logging.INFO, logger="test.kv"):
            logger.info("baseline_collected", relays=3, authors=2)
        record = caplog.records[-1]
        assert record.getMessage() == "baseline_collected"
        assert record.structured_kv == {"relays": 3, "authors": 2}
        assert StructuredFormatter().format(record) == (
            "info test.kv baseline_collected relays=3 authors=2"
        )

    def test_bind(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that bound context precedes call kwargs."""
        logger = Logger("test.bind").bind(algorithm="ilp")
        with caplog.at_level(logging.WARNING, logger="test.bind"):
            logger.warning("ilp_time_limit", nodes=5)
        assert caplog.records[-1].structured_kv == {"algorithm": "ilp", "nodes": 5}

    def test_json_output(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the JSON line mode."""
        logger = Logger("test.json", json_output=True)
        with caplog.at_level(logging.INFO, logger="test.json"):
            logger.info("relay_probed", relay="wss://nos.lol")
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["message"] == "relay_probed"
        assert payload["level"] == "info"
        assert payload["relay"] == "wss://nos.lol"

    def test_disabled_level(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that records below the level are not emitted."""
        logger = Logger("test.quiet")
        with caplog.at_level(logging.WARNING, logger="test.quiet"):
            logger.debug("noise", k=1)
        assert not [r for r in caplog.records if r.name == "test.quiet"]

    def test_value_truncation(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that long values are truncated before formatting."""
        logger = Logger("test.trunc", max_value_length=4)
        with caplog.at_level(logging.INFO, logger="test.trunc"):
            logger.info("e", v="abcdefgh")
        assert caplog.records[-1].structured_kv["v"].startswith("abcd...")


# ============================================================================
# YAML Tests
# ============================================================================


class TestLoadYaml:
    """Tests for load_yaml()."""

    def test_mapping(self, tmp_path) -> None:
        """Test a valid mapping."""
        path = tmp_path / "c.yaml"
        path.write_text("runs: 3\nalgorithms: [greedy]\n")
        assert load_yaml(path) == {"runs": 3, "algorithms": ["greedy"]}

    def test_empty_file(self, tmp_path) -> None:
        """Test that an empty file is an empty mapping."""
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_missing(self, tmp_path) -> None:
        """Test a missing file."""
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "nope.yaml")

    def test_not_mapping(self, tmp_path) -> None:
        """Test a top-level list."""
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)

    def test_invalid(self, tmp_path) -> None:
        """Test malformed YAML."""
        path = tmp_path / "c.yaml"
        path.write_text("a: [1, 2\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)


# ============================================================================
# Metrics Tests
# ============================================================================


class TestMetricsConfig:
    """Tests for MetricsConfig."""

    def test_defaults(self) -> None:
        """Test default configuration values."""
        config = MetricsConfig()
        assert config.enabled is False
        assert config.port == 8000
        assert config.host == "127.0.0.1"
        assert config.path == "/metrics"

    def test_port_range(self) -> None:
        """Test that privileged ports are rejected."""
        with pytest.raises(ValidationError):
            MetricsConfig(port=80)


class TestMetricsServer:
    """Tests for MetricsServer."""

    async def test_disabled_is_noop(self) -> None:
        """Test that start() does nothing when disabled."""
        server = MetricsServer(MetricsConfig(enabled=False))
        await server.start()
        assert server._runner is None
        await server.stop()

    async def test_start_stop(self) -> None:
        """Test that an enabled server binds and releases its port."""
        server = MetricsServer(MetricsConfig(enabled=True, port=19881, host="127.0.0.1"))
        try:
            await server.start()
            assert server._runner is not None
        finally:
            await server.stop()
            await server.stop()
        assert server._runner is None

    async def test_handler(self) -> None:
        """Test the exposition response."""
        response = await MetricsServer._handle_metrics(None)  # type: ignore[arg-type]
        assert isinstance(response, web.Response)
        assert response.headers["Content-Type"] == CONTENT_TYPE_LATEST
        assert b"outbench_relay_queries_total" in response.body
