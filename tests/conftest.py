"""
Pytest configuration and shared fixtures for outbench tests.

Provides:
- Small hand-built benchmark inputs with known optimal covers
- Valid hex public keys for tests that go through nostr_sdk parsing
- In-memory fake relays for pool and Phase 2 tests
- Logging configured for the whole session
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp
import pytest
from nostr_sdk import Keys

from outbench.models.benchmark import BenchmarkInput


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Benchmark Inputs
# ============================================================================


R1 = "wss://r1.example.com"
R2 = "wss://r2.example.com"
R3 = "wss://r3.example.com"
R4 = "wss://r4.example.com"


@pytest.fixture
def abc_input() -> BenchmarkInput:
    """Three writers: A on {R1, R2}, B on {R2, R3}, C on {R3}; D has no relays."""
    return BenchmarkInput.from_adjacency(
        "target",
        ["A", "B", "C", "D"],
        {"A": [R1, R2], "B": [R2, R3], "C": [R3]},
    )


@pytest.fixture
def medium_input() -> BenchmarkInput:
    """Forty writers spread over twelve relays with a skewed popularity curve."""
    relays = [f"wss://relay{i:02d}.example.com" for i in range(12)]
    adjacency: dict[str, list[str]] = {}
    follows = []
    for w in range(40):
        writer = f"writer{w:02d}"
        follows.append(writer)
        picks = {relays[0] if w % 2 == 0 else relays[1], relays[w % 12], relays[(w * 7) % 12]}
        adjacency[writer] = sorted(picks)
    follows.extend(["orphan1", "orphan2"])
    return BenchmarkInput.from_adjacency("target", follows, adjacency)


# ============================================================================
# Keys
# ============================================================================


@pytest.fixture
def hex_pubkeys() -> list[str]:
    """Five valid x-only public keys in hex."""
    return [Keys.generate().public_key().to_hex() for _ in range(5)]


# ============================================================================
# Fake Relays
# ============================================================================


class FakeRelaySocket:
    """In-memory stand-in for a relay WebSocket.

    Every ``REQ`` queues the stored events whose author is in the filter,
    then ``EOSE`` unless the relay is configured to stall. ``receive``
    raises ``TimeoutError`` once the queue is empty.
    """

    def __init__(
        self,
        events: list[dict[str, Any]],
        *,
        send_eose: bool = True,
        preamble: tuple[list[Any], ...] = (),
    ) -> None:
        self.events = events
        self.send_eose = send_eose
        self.preamble = preamble
        self.sent: list[list[Any]] = []
        self._queue: list[str] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_str(self, data: str) -> None:
        message = json.loads(data)
        self.sent.append(message)
        if message[0] != "REQ":
            return
        sub_id, flt = message[1], message[2]
        authors = set(flt.get("authors", []))
        self._queue.extend(json.dumps(frame) for frame in self.preamble)
        for event in self.events:
            if event["pubkey"] in authors:
                self._queue.append(json.dumps(["EVENT", sub_id, event]))
        if self.send_eose:
            self._queue.append(json.dumps(["EOSE", sub_id]))

    async def receive(self, timeout: float | None = None) -> aiohttp.WSMessage:
        if not self._queue:
            raise TimeoutError
        return aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, self._queue.pop(0), None)

    async def close(self) -> bool:
        self._closed = True
        return True

    @property
    def requests(self) -> list[list[Any]]:
        return [m for m in self.sent if m[0] == "REQ"]


class FakeRelayNetwork:
    """Connector for RelayPool that serves FakeRelaySocket instances."""

    def __init__(self) -> None:
        self.relays: dict[str, dict[str, Any]] = {}
        self.sockets: dict[str, list[FakeRelaySocket]] = {}
        self.unreachable: set[str] = set()

    def add(self, url: str, events: list[dict[str, Any]] | None = None, **options: Any) -> None:
        self.relays[url] = {"events": events or [], **options}

    async def connect(self, url: str, timeout: float) -> FakeRelaySocket:
        if url in self.unreachable or url not in self.relays:
            raise OSError(f"unreachable: {url}")
        spec = dict(self.relays[url])
        socket = FakeRelaySocket(spec.pop("events"), **spec)
        self.sockets.setdefault(url, []).append(socket)
        return socket

    def connect_count(self, url: str) -> int:
        return len(self.sockets.get(url, []))


def make_event(pubkey: str, event_id: str, created_at: int = 1_700_000_000) -> dict[str, Any]:
    return {"id": event_id, "pubkey": pubkey, "created_at": created_at, "kind": 1}


@pytest.fixture
def relay_network() -> FakeRelayNetwork:
    """Empty fake relay network; register relays with ``add``."""
    return FakeRelayNetwork()


@pytest.fixture
def event_factory():
    """The ``make_event(pubkey, event_id, created_at)`` helper."""
    return make_event
