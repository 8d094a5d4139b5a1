"""
Relay latency probing: NIP-11 document, WebSocket handshake and
empty-filter round trip.

Each relay is probed in three layers, cheapest first:

1. NIP-11 HTTP GET with ``Accept: application/nostr+json``.
2. WebSocket connect (DNS + TCP + TLS + upgrade).
3. An impossible ``REQ`` (one all-zero event id) timed until ``EOSE`` or
   ``CLOSED``; the round trip gives a coarse
   [GeoHint][outbench.models.constants.GeoHint].

[probe_relay][outbench.verification.probe.probe_relay] never raises for
network failures; the error is recorded on the result.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import aiohttp
from nostr_sdk import EventId, Filter

from outbench.core.exceptions import ConnectivityError, ProtocolError
from outbench.models.constants import GeoHint

from .relay_pool import parse_relay_message


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 15
DEFAULT_NIP11_TIMEOUT_MS = 5_000
DEFAULT_CONNECT_TIMEOUT_MS = 10_000
DEFAULT_RTT_TIMEOUT_MS = 5_000
NIP11_MAX_SIZE = 65_536


@dataclass(frozen=True, slots=True)
class Nip11Info:
    name: str | None = None
    description: str | None = None
    software: str | None = None
    version: str | None = None
    supported_nips: tuple[int, ...] | None = None
    payment_required: bool = False
    auth_required: bool = False

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Nip11Info:
        """Pick the fields used for scoring from a raw NIP-11 document."""

        def text(key: str) -> str | None:
            value = doc.get(key)
            return value if isinstance(value, str) else None

        nips = doc.get("supported_nips")
        limitation = doc.get("limitation")
        if not isinstance(limitation, dict):
            limitation = {}
        return cls(
            name=text("name"),
            description=text("description"),
            software=text("software"),
            version=text("version"),
            supported_nips=(
                tuple(n for n in nips if isinstance(n, int) and not isinstance(n, bool))
                if isinstance(nips, list)
                else None
            ),
            payment_required=limitation.get("payment_required") is True,
            auth_required=limitation.get("auth_required") is True,
        )


@dataclass(slots=True)
class ProbeResult:
    """Latency observations for one relay.

    ``latency_ms`` is the connect time when the handshake worked, else the
    NIP-11 time when that worked, else None.
    """

    relay: str
    nip11_available: bool = False
    nip11_ms: float | None = None
    nip11_info: Nip11Info | None = None
    connectable: bool = False
    connect_ms: float | None = None
    rtt_ms: float | None = None
    latency_ms: float | None = None
    geo_hint: GeoHint | None = None
    error: str | None = None


def infer_geo(rtt_ms: float) -> GeoHint:
    if rtt_ms < 50:
        return GeoHint.LOCAL
    if rtt_ms < 150:
        return GeoHint.REGIONAL
    if rtt_ms < 300:
        return GeoHint.CONTINENTAL
    return GeoHint.INTERCONTINENTAL


def ws_to_http(url: str) -> str:
    if url.startswith("wss://"):
        return "https://" + url[len("wss://") :]
    if url.startswith("ws://"):
        return "http://" + url[len("ws://") :]
    return url


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------


async def probe_nip11(
    session: aiohttp.ClientSession, relay: str, timeout_ms: float
) -> tuple[float, Nip11Info | None, str | None]:
    """``(elapsed_ms, info, error)``; ``info`` is None when unavailable."""
    started = time.perf_counter()
    try:
        async with session.get(
            ws_to_http(relay),
            headers={"Accept": "application/nostr+json"},
            timeout=aiohttp.ClientTimeout(total=timeout_ms / 1000),
        ) as resp:
            if resp.status != HTTPStatus.OK:
                return _elapsed_ms(started), None, f"HTTP {resp.status}"
            body = await resp.content.read(NIP11_MAX_SIZE + 1)
    except (aiohttp.ClientError, TimeoutError, OSError) as e:
        return _elapsed_ms(started), None, str(e) or type(e).__name__

    elapsed = _elapsed_ms(started)
    if len(body) > NIP11_MAX_SIZE:
        return elapsed, None, "NIP-11 document too large"
    try:
        doc = json.loads(body)
    except ValueError:
        return elapsed, None, "NIP-11 document is not JSON"
    if not isinstance(doc, dict):
        return elapsed, None, "NIP-11 document is not an object"
    return elapsed, Nip11Info.from_document(doc), None


async def probe_rtt(ws: aiohttp.ClientWebSocketResponse, timeout_ms: float) -> float | None:
    """Milliseconds until the relay ends an impossible subscription.

    Raises:
        ConnectivityError: If the socket closes before EOSE or CLOSED.
    """
    sub_id = f"probe-rtt-{time.time_ns()}"
    flt = json.loads(Filter().id(EventId.parse("0" * 64)).limit(1).as_json())
    started = time.perf_counter()
    deadline = started + timeout_ms / 1000
    await ws.send_str(json.dumps(["REQ", sub_id, flt]))

    while (remaining := deadline - time.perf_counter()) > 0:
        try:
            msg = await ws.receive(timeout=remaining)
        except TimeoutError:
            break
        if msg.type != aiohttp.WSMsgType.TEXT:
            if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                raise ConnectivityError("socket closed during RTT probe")
            continue
        try:
            frame = parse_relay_message(msg.data)
        except ProtocolError:
            continue
        if frame[0] in ("EOSE", "CLOSED") and len(frame) >= 2 and frame[1] == sub_id:
            rtt = _elapsed_ms(started)
            if frame[0] == "EOSE":
                await ws.send_str(json.dumps(["CLOSE", sub_id]))
            return rtt
    return None


async def probe_relay(
    session: aiohttp.ClientSession,
    relay: str,
    *,
    nip11_timeout_ms: float = DEFAULT_NIP11_TIMEOUT_MS,
    connect_timeout_ms: float = DEFAULT_CONNECT_TIMEOUT_MS,
    rtt_timeout_ms: float = DEFAULT_RTT_TIMEOUT_MS,
    nip11_only: bool = False,
) -> ProbeResult:
    result = ProbeResult(relay=relay)

    nip11_ms, info, nip11_error = await probe_nip11(session, relay, nip11_timeout_ms)
    result.nip11_ms = nip11_ms
    result.nip11_available = info is not None
    result.nip11_info = info
    fallback_latency = nip11_ms if info is not None else None
    if nip11_only:
        result.latency_ms = fallback_latency
        result.error = nip11_error
        return result

    started = time.perf_counter()
    try:
        ws = await asyncio.wait_for(session.ws_connect(relay), connect_timeout_ms / 1000)
    except TimeoutError:
        result.connect_ms = connect_timeout_ms
        result.error = "connect timeout"
        result.latency_ms = fallback_latency
        return result
    except (aiohttp.ClientError, OSError) as e:
        result.connect_ms = _elapsed_ms(started)
        result.error = str(e) or type(e).__name__
        result.latency_ms = fallback_latency
        return result

    result.connectable = True
    result.connect_ms = _elapsed_ms(started)
    result.latency_ms = result.connect_ms
    try:
        result.rtt_ms = await probe_rtt(ws, rtt_timeout_ms)
        if result.rtt_ms is None:
            result.error = "rtt timeout"
    except (ConnectivityError, aiohttp.ClientError, ConnectionError) as e:
        result.error = str(e)
    finally:
        await ws.close()

    if result.rtt_ms is not None:
        result.geo_hint = infer_geo(result.rtt_ms)
    return result


async def probe_relays(
    relays: Iterable[str],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    session: aiohttp.ClientSession | None = None,
    **options: Any,
) -> list[ProbeResult]:
    """Probe *relays* with at most *concurrency* probes in flight.

    Results keep the input order. ``options`` are forwarded to
    [probe_relay][outbench.verification.probe.probe_relay].
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run(http: aiohttp.ClientSession, relay: str) -> ProbeResult:
        async with semaphore:
            return await probe_relay(http, relay, **options)

    urls = list(relays)
    if session is not None:
        results = await asyncio.gather(*(run(session, url) for url in urls))
    else:
        async with aiohttp.ClientSession() as owned:
            results = await asyncio.gather(*(run(owned, url) for url in urls))

    connectable = sum(1 for r in results if r.connectable)
    logger.info("relays_probed total=%s connectable=%s", len(results), connectable)
    return list(results)
