"""Shared constants for the models layer.

Enumerations and well-known relay URLs used across the algorithm,
verification, and learning layers. Kept here so that those layers can
share them without importing each other.
"""

from __future__ import annotations

from enum import StrEnum


class FilterProfile(StrEnum):
    """Relay URL filtering profile applied when building a benchmark input.

    Attributes:
        STRICT: Reject localhost, IP-literal hosts, plaintext ``ws://`` clearnet
            URLs, and known-bad relays.
        NEUTRAL: Normalize only; keep every well-formed URL.
    """

    STRICT = "strict"
    NEUTRAL = "neutral"


class FilterReason(StrEnum):
    """Why a declared relay URL was dropped during filtering."""

    LOCALHOST = "localhost"
    IP_ADDRESS = "ipAddress"
    INSECURE_WS = "insecureWs"
    KNOWN_BAD = "knownBad"
    MALFORMED = "malformed"


class BaselineClassification(StrEnum):
    """Four-way Phase 2 classification of an author's ground truth.

    Attributes:
        TESTABLE_RELIABLE: Events found and at least half of the author's
            declared relays answered to end-of-stream. Counts toward headline
            recall.
        TESTABLE_PARTIAL: Events found but fewer than half answered.
        ZERO_BASELINE: No events, and the relays answered reliably.
        UNRELIABLE: No events, and the relays did not answer reliably.
    """

    TESTABLE_RELIABLE = "testable-reliable"
    TESTABLE_PARTIAL = "testable-partial"
    ZERO_BASELINE = "zero-baseline"
    UNRELIABLE = "unreliable"


class Reliability(StrEnum):
    RELIABLE = "reliable"
    PARTIAL = "partial"


class Trend(StrEnum):
    """Direction of a relay's per-session delivery rate."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class GeoHint(StrEnum):
    """Coarse distance class inferred from a relay's round-trip time."""

    LOCAL = "local"
    REGIONAL = "regional"
    CONTINENTAL = "continental"
    INTERCONTINENTAL = "intercontinental"


# Hardcoded app relays used by the broadcast baselines and popular-relay strategies
RELAY_DAMUS = "wss://relay.damus.io"
RELAY_NOS_LOL = "wss://nos.lol"
RELAY_PRIMAL = "wss://relay.primal.net"
RELAY_DITTO = "wss://relay.ditto.pub"

POPULAR_RELAYS: tuple[str, ...] = (RELAY_DAMUS, RELAY_NOS_LOL)
DITTO_APP_RELAYS: tuple[str, ...] = (RELAY_DITTO, RELAY_PRIMAL, RELAY_DAMUS, RELAY_NOS_LOL)
