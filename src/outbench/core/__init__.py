"""Core layer: exceptions, structured logging, Prometheus metrics, YAML loading.

Depends only on the standard library and third-party packages; every other
outbench layer may import from here.

Attributes:
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][outbench.core.logger.Logger].
    MetricsServer: Optional Prometheus ``/metrics`` endpoint.
        See [MetricsServer][outbench.core.metrics.MetricsServer].
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][outbench.core.yaml.load_yaml].
"""

from .exceptions import (
    CacheError,
    ConfigurationError,
    ConnectivityError,
    OutbenchError,
    ProtocolError,
    RelaySSLError,
    RelayTimeoutError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .metrics import (
    ALGORITHM_DURATION_SECONDS,
    POOL_EVICTIONS_TOTAL,
    POOL_OPEN_SOCKETS,
    QUERY_CACHE_EVENT_IDS,
    RELAY_QUERIES_TOTAL,
    MetricsConfig,
    MetricsServer,
)
from .yaml import load_yaml


__all__ = [
    "ALGORITHM_DURATION_SECONDS",
    "POOL_EVICTIONS_TOTAL",
    "POOL_OPEN_SOCKETS",
    "QUERY_CACHE_EVENT_IDS",
    "RELAY_QUERIES_TOTAL",
    "CacheError",
    "ConfigurationError",
    "ConnectivityError",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "OutbenchError",
    "ProtocolError",
    "RelaySSLError",
    "RelayTimeoutError",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
