"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects shared by the algorithm runner and the Phase 2
verification substrate. Benchmarks are batch jobs, so the exposition
endpoint is optional: the CLI starts a ``MetricsServer`` only when
``MetricsConfig.enabled`` is set, which lets a long verification run be
watched from a Prometheus scrape.

Architecture:
    ALGORITHM_DURATION_SECONDS: Histogram of algorithm wall-clock time.
    RELAY_QUERIES_TOTAL:        Relay queries by terminal outcome.
    POOL_OPEN_SOCKETS:          Sockets currently held by the relay pool.
    POOL_EVICTIONS_TOTAL:       LRU evictions by kind (idle/active).
    QUERY_CACHE_EVENT_IDS:      Event ids held by the query cache.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint."""

    enabled: bool = Field(default=False, description="Enable metrics exposition")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Algorithm Runner
# ---------------------------------------------------------------------------

ALGORITHM_DURATION_SECONDS = Histogram(
    "outbench_algorithm_duration_seconds",
    "Wall-clock duration of one relay-selection algorithm run",
    ["algorithm"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 3, 10),
)


# ---------------------------------------------------------------------------
# Relay Pool / Query Cache
#
# RELAY_QUERIES_TOTAL outcomes: eose, timeout, connect_failed, error
# POOL_EVICTIONS_TOTAL kinds:   idle, active
# ---------------------------------------------------------------------------

RELAY_QUERIES_TOTAL = Counter(
    "outbench_relay_queries_total",
    "Batched relay queries by terminal outcome",
    ["outcome"],
)

POOL_OPEN_SOCKETS = Gauge(
    "outbench_pool_open_sockets",
    "WebSocket connections currently held by the relay pool",
)

POOL_EVICTIONS_TOTAL = Counter(
    "outbench_pool_evictions_total",
    "Connections closed by the pool's LRU eviction policy",
    ["kind"],
)

QUERY_CACHE_EVENT_IDS = Gauge(
    "outbench_query_cache_event_ids",
    "Event ids currently held by the (relay, author) query cache",
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... benchmark runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint; a no-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Release the bound port. Safe to call when never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
