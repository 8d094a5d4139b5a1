"""
Unit tests for verification.probe.

Tests:
- infer_geo() RTT classes and ws_to_http() scheme mapping
- Nip11Info.from_document() field picking
- probe_relays() against a local aiohttp relay: NIP-11, connect, RTT
- Unreachable relays record an error instead of raising
"""

import json
from collections.abc import AsyncIterator

import pytest
from aiohttp import WSMsgType, web

from outbench.models.constants import GeoHint
from outbench.verification.probe import Nip11Info, infer_geo, probe_relays, ws_to_http


# ============================================================================
# Helper Tests
# ============================================================================


class TestInferGeo:
    """Tests for infer_geo()."""

    @pytest.mark.parametrize(
        ("rtt", "expected"),
        [
            (0, GeoHint.LOCAL),
            (49.9, GeoHint.LOCAL),
            (50, GeoHint.REGIONAL),
            (149, GeoHint.REGIONAL),
            (150, GeoHint.CONTINENTAL),
            (299, GeoHint.CONTINENTAL),
            (300, GeoHint.INTERCONTINENTAL),
        ],
    )
    def test_thresholds(self, rtt: float, expected: GeoHint) -> None:
        """Test each RTT class boundary."""
        assert infer_geo(rtt) == expected


class TestWsToHttp:
    """Tests for ws_to_http()."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("wss://relay.example.com", "https://relay.example.com"),
            ("ws://relay.example.com/path", "http://relay.example.com/path"),
            ("https://relay.example.com", "https://relay.example.com"),
        ],
    )
    def test_scheme(self, url: str, expected: str) -> None:
        """Test the scheme swap."""
        assert ws_to_http(url) == expected


class TestNip11Info:
    """Tests for Nip11Info.from_document()."""

    def test_fields(self) -> None:
        """Test the scoring fields and limitation flags."""
        info = Nip11Info.from_document(
            {
                "name": "relay",
                "software": "strfry",
                "version": 7,
                "supported_nips": [1, "2", 11, True],
                "limitation": {"payment_required": True},
            }
        )
        assert info.name == "relay"
        assert info.software == "strfry"
        assert info.version is None
        assert info.supported_nips == (1, 11)
        assert info.payment_required
        assert not info.auth_required

    def test_empty(self) -> None:
        """Test an empty document."""
        info = Nip11Info.from_document({})
        assert info == Nip11Info()


# ============================================================================
# Probe Tests
# ============================================================================


async def _relay_handler(request: web.Request) -> web.StreamResponse:
    if request.headers.get("Upgrade", "").lower() != "websocket":
        return web.json_response(
            {"name": "local", "supported_nips": [1, 11, 65], "limitation": {"auth_required": True}}
        )
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    async for msg in ws:
        if msg.type != WSMsgType.TEXT:
            continue
        frame = json.loads(msg.data)
        if frame[0] == "REQ":
            await ws.send_str(json.dumps(["EOSE", frame[1]]))
    return ws


async def _start(app: web.Application) -> tuple[web.AppRunner, int]:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    return runner, runner.addresses[0][1]


@pytest.fixture
async def local_relay() -> AsyncIterator[str]:
    """URL of a relay that serves NIP-11 and answers every REQ with EOSE."""
    app = web.Application()
    app.router.add_get("/", _relay_handler)
    runner, port = await _start(app)
    try:
        yield f"ws://127.0.0.1:{port}/"
    finally:
        await runner.cleanup()


@pytest.fixture
async def dead_relay() -> str:
    """URL of a port that was just released."""
    runner, port = await _start(web.Application())
    await runner.cleanup()
    return f"ws://127.0.0.1:{port}/"


class TestProbeRelays:
    """Tests for probe_relays()."""

    async def test_local_relay(self, local_relay: str) -> None:
        """Test a full three-layer probe."""
        (result,) = await probe_relays([local_relay])
        assert result.nip11_available
        assert result.nip11_info.name == "local"
        assert result.nip11_info.auth_required
        assert result.connectable
        assert result.rtt_ms is not None
        assert result.latency_ms == result.connect_ms
        assert result.geo_hint == GeoHint.LOCAL
        assert result.error is None

    async def test_nip11_only(self, local_relay: str) -> None:
        """Test that the WebSocket layers are skipped on request."""
        (result,) = await probe_relays([local_relay], nip11_only=True)
        assert result.nip11_available
        assert not result.connectable
        assert result.latency_ms == result.nip11_ms

    async def test_unreachable_keeps_order(self, local_relay: str, dead_relay: str) -> None:
        """Test that failures are recorded and input order is kept."""
        results = await probe_relays([dead_relay, local_relay], concurrency=1)
        assert [r.relay for r in results] == [dead_relay, local_relay]
        assert not results[0].connectable
        assert not results[0].nip11_available
        assert results[0].error
        assert results[0].latency_ms is None
        assert results[1].connectable
