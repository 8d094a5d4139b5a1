"""
Unit tests for verification.relay_pool.

Tests:
- Wire helpers: author parsing, filter building, frame decoding, event capping
- query_batched() against in-memory relays: events, batching, failures
- Timeouts, NOTICE rate-limit detection and LRU socket eviction
"""

import pytest
from nostr_sdk import PublicKey

from outbench.core.exceptions import ProtocolError
from outbench.verification.configs import Phase2Config
from outbench.verification.query_cache import QueryCache
from outbench.verification.relay_pool import (
    RelayPool,
    build_filter,
    cap_events,
    parse_authors,
    parse_relay_message,
)


RELAY_A = "wss://a.example.com"
RELAY_B = "wss://b.example.com"
SINCE = 1_699_900_000


# ============================================================================
# Wire Helper Tests
# ============================================================================


class TestParseAuthors:
    """Tests for parse_authors()."""

    def test_splits_valid_and_rejected(self, hex_pubkeys: list[str]) -> None:
        """Test that malformed keys are returned separately."""
        keys, rejected = parse_authors([hex_pubkeys[0], "not-a-key", hex_pubkeys[1]])
        assert [k.to_hex() for k in keys] == hex_pubkeys[:2]
        assert rejected == ["not-a-key"]


class TestBuildFilter:
    """Tests for build_filter()."""

    def test_fields(self, hex_pubkeys: list[str]) -> None:
        """Test authors, kinds and since in the NIP-01 filter."""
        keys = [PublicKey.parse(pk) for pk in hex_pubkeys[:2]]
        flt = build_filter(keys, (1, 6), SINCE)
        assert sorted(flt["authors"]) == sorted(hex_pubkeys[:2])
        assert sorted(flt["kinds"]) == [1, 6]
        assert flt["since"] == SINCE


class TestParseRelayMessage:
    """Tests for parse_relay_message()."""

    def test_valid(self) -> None:
        """Test a well-formed EOSE frame."""
        assert parse_relay_message('["EOSE", "p2-0"]') == ["EOSE", "p2-0"]

    @pytest.mark.parametrize("raw", ["not json", "{}", "[]", "[1, 2]"])
    def test_invalid(self, raw: str) -> None:
        """Test that non-message frames raise ProtocolError."""
        with pytest.raises(ProtocolError):
            parse_relay_message(raw)


class TestCapEvents:
    """Tests for cap_events()."""

    def test_under_limit(self) -> None:
        """Test that all ids are kept within the limit."""
        events = [{"id": "a", "created_at": 1}, {"id": "b", "created_at": 2}]
        assert cap_events(events, 5) == frozenset({"a", "b"})

    def test_newest_first_ties_by_id(self) -> None:
        """Test that the newest events win and ties keep the smaller id."""
        events = [
            {"id": "old", "created_at": 1},
            {"id": "z", "created_at": 5},
            {"id": "y", "created_at": 5},
            {"id": "mid", "created_at": 3},
        ]
        assert cap_events(events, 2) == frozenset({"y", "z"})
        assert cap_events(events, 1) == frozenset({"y"})


# ============================================================================
# Pool Tests
# ============================================================================


class TestQueryBatched:
    """Tests for RelayPool.query_batched()."""

    async def test_collects_events_per_author(
        self, relay_network, event_factory, hex_pubkeys: list[str]
    ) -> None:
        """Test that events land under their author and silent authors get empty sets."""
        alice, bob = hex_pubkeys[:2]
        relay_network.add(RELAY_A, [event_factory(alice, "e1"), event_factory(alice, "e2")])
        cache = QueryCache()
        async with RelayPool(Phase2Config(), connector=relay_network.connect) as pool:
            query = await pool.query_batched(RELAY_A, [alice, bob], cache, since=SINCE)
            outcome = pool.outcome(RELAY_A)

        assert query.reached_eose
        assert query.per_pubkey == {alice: frozenset({"e1", "e2"}), bob: frozenset()}
        assert cache.get(RELAY_A, alice) == frozenset({"e1", "e2"})
        assert cache.get(RELAY_A, bob) == frozenset()
        assert outcome is not None
        assert outcome.connected and outcome.reached_eose
        assert outcome.first_event_ms is not None
        assert not outcome.timed_out

    async def test_batches_share_one_socket(
        self, relay_network, event_factory, hex_pubkeys: list[str]
    ) -> None:
        """Test that authors are split into REQs over a single connection."""
        relay_network.add(RELAY_A, [event_factory(pk, f"e{i}") for i, pk in enumerate(hex_pubkeys)])
        cache = QueryCache()
        async with RelayPool(Phase2Config(batch_size=2), connector=relay_network.connect) as pool:
            query = await pool.query_batched(RELAY_A, hex_pubkeys, cache, since=SINCE)
            await pool.query_batched(RELAY_A, hex_pubkeys[:1], cache, since=SINCE)

        assert relay_network.connect_count(RELAY_A) == 1
        socket = relay_network.sockets[RELAY_A][0]
        assert len(socket.requests) == 4
        assert all(len(req[2]["authors"]) <= 2 for req in socket.requests)
        assert len({req[1] for req in socket.requests}) == 4
        assert all(query.per_pubkey[pk] for pk in hex_pubkeys)
        assert socket.closed

    async def test_connect_failure(self, relay_network, hex_pubkeys: list[str]) -> None:
        """Test that a failed handshake records an outcome and empty entries."""
        cache = QueryCache()
        async with RelayPool(Phase2Config(), connector=relay_network.connect) as pool:
            query = await pool.query_batched(RELAY_B, hex_pubkeys[:2], cache, since=SINCE)
            outcome = pool.outcome(RELAY_B)

        assert not query.reached_eose
        assert outcome is not None
        assert not outcome.connected
        assert "unreachable" in (outcome.error or "")
        assert cache.get(RELAY_B, hex_pubkeys[0]) == frozenset()

    async def test_timeout_keeps_events(
        self, relay_network, event_factory, hex_pubkeys: list[str]
    ) -> None:
        """Test that a relay without EOSE is a degraded success."""
        alice = hex_pubkeys[0]
        relay_network.add(RELAY_A, [event_factory(alice, "e1")], send_eose=False)
        cache = QueryCache()
        async with RelayPool(Phase2Config(), connector=relay_network.connect) as pool:
            query = await pool.query_batched(RELAY_A, [alice], cache, since=SINCE)
            outcome = pool.outcome(RELAY_A)
            diagnostics = pool.diagnostics

        assert not query.reached_eose
        assert query.per_pubkey[alice] == frozenset({"e1"})
        assert outcome.connected and outcome.timed_out
        assert diagnostics.timeouts == 1

    async def test_invalid_authors_skipped(self, relay_network, hex_pubkeys: list[str]) -> None:
        """Test that unparsable keys never reach the wire but still get entries."""
        relay_network.add(RELAY_A)
        cache = QueryCache()
        async with RelayPool(Phase2Config(), connector=relay_network.connect) as pool:
            await pool.query_batched(RELAY_A, ["bogus", hex_pubkeys[0]], cache, since=SINCE)

        (req,) = relay_network.sockets[RELAY_A][0].requests
        assert req[2]["authors"] == [hex_pubkeys[0]]
        assert cache.get(RELAY_A, "bogus") == frozenset()

    async def test_event_cap(self, relay_network, event_factory, hex_pubkeys: list[str]) -> None:
        """Test that at most max_events_per_pair ids are kept, newest first."""
        alice = hex_pubkeys[0]
        events = [event_factory(alice, f"e{i}", created_at=1000 + i) for i in range(5)]
        relay_network.add(RELAY_A, events)
        cache = QueryCache()
        config = Phase2Config(max_events_per_pair=2)
        async with RelayPool(config, connector=relay_network.connect) as pool:
            query = await pool.query_batched(RELAY_A, [alice], cache, since=SINCE)
        assert query.per_pubkey[alice] == frozenset({"e3", "e4"})

    async def test_rate_limit_notice(self, relay_network, hex_pubkeys: list[str]) -> None:
        """Test that rate-limit NOTICEs are counted."""
        relay_network.add(RELAY_A, preamble=(["NOTICE", "Slow down, too many requests"],))
        async with RelayPool(Phase2Config(), connector=relay_network.connect) as pool:
            await pool.query_batched(RELAY_A, hex_pubkeys[:1], QueryCache(), since=SINCE)
            diagnostics = pool.diagnostics
        assert diagnostics.rate_limit_notices == 1
        assert diagnostics.notices[0].startswith(RELAY_A)

    async def test_closed_message(self, relay_network, hex_pubkeys: list[str]) -> None:
        """Test that a CLOSED frame ends the subscription without EOSE."""
        relay_network.add(RELAY_A, send_eose=False, preamble=(["CLOSED", "p2-0", "auth-required: no"],))
        async with RelayPool(Phase2Config(), connector=relay_network.connect) as pool:
            query = await pool.query_batched(RELAY_A, hex_pubkeys[:1], QueryCache(), since=SINCE)
            diagnostics = pool.diagnostics
        assert not query.reached_eose
        assert diagnostics.closed_messages == (f"{RELAY_A}: auth-required: no",)
        assert diagnostics.timeouts == 0


class TestEviction:
    """Tests for the socket cap."""

    async def test_lru_eviction(self, relay_network, hex_pubkeys: list[str]) -> None:
        """Test that opening past max_open_sockets closes the oldest idle socket."""
        relay_network.add(RELAY_A)
        relay_network.add(RELAY_B)
        pool = RelayPool(Phase2Config(max_open_sockets=1), connector=relay_network.connect)
        await pool.query_batched(RELAY_A, hex_pubkeys[:1], QueryCache(), since=SINCE)
        await pool.query_batched(RELAY_B, hex_pubkeys[:1], QueryCache(), since=SINCE)
        assert pool.open_sockets == 1
        assert relay_network.sockets[RELAY_A][0].closed
        assert not relay_network.sockets[RELAY_B][0].closed
        await pool.close_all()
        assert pool.open_sockets == 0
        assert relay_network.sockets[RELAY_B][0].closed
