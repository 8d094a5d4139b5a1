"""
NIP-66 relay quality scoring.

Turns the latest monitor observation of a relay into a composite score in
``[0, 1]``:

- **uptime** (0.4): how recently a monitor saw the relay online.
- **rtt** (0.3): connection open latency, falling back to read latency.
- **freshness** (0.2): age of the observation itself.
- **nip_support** (0.1): fraction of outbox-relevant NIPs advertised.

Relays without an observation score a neutral ``0.5`` on every factor.

See Also:
    [Nip66DataCache][outbench.nip66.cache.Nip66DataCache]:
        Supplies the observations scored here.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from outbench.models.nip66 import (
    HTTP_API_MONITOR,
    SYNTHETIC_MONITOR,
    Nip66RelayData,
    Nip66RelayScore,
    Nip66ScoreFactors,
)


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


NEUTRAL_SCORE = 0.5

RELEVANT_NIPS: frozenset[int] = frozenset({1, 2, 9, 11, 15, 40, 42, 50, 65})

# RTT breakpoints (ms)
RTT_EXCELLENT_MS = 100
RTT_GOOD_MS = 300
RTT_ACCEPTABLE_MS = 800
RTT_POOR_MS = 2000

# Observation age breakpoints (s)
FRESH_THRESHOLD_S = 3600
ACCEPTABLE_THRESHOLD_S = 21600
STALE_THRESHOLD_S = 86400


@dataclass(frozen=True, slots=True)
class Nip66ScoreWeights:
    """Factor weights; the defaults sum to 1."""

    uptime: float = 0.4
    rtt: float = 0.3
    freshness: float = 0.2
    nip_support: float = 0.1


DEFAULT_WEIGHTS = Nip66ScoreWeights()


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * max(0.0, min(1.0, t))


def _age_seconds(entry: Nip66RelayData, now: float) -> int:
    return int(now) - entry.last_seen_at


def uptime_score(entry: Nip66RelayData, now: float) -> float:
    age = _age_seconds(entry, now)
    if entry.monitor_pubkey == SYNTHETIC_MONITOR:
        return 0.5
    if entry.monitor_pubkey == HTTP_API_MONITOR:
        return 0.7 if age <= FRESH_THRESHOLD_S else 0.5
    if age <= FRESH_THRESHOLD_S:
        return 1.0
    if age <= ACCEPTABLE_THRESHOLD_S:
        return 0.8
    if age <= STALE_THRESHOLD_S:
        return 0.6
    return 0.3


def rtt_score(entry: Nip66RelayData) -> float:
    rtt = entry.rtt_open_ms if entry.rtt_open_ms is not None else entry.rtt_read_ms
    if rtt is None or rtt <= 0:
        return NEUTRAL_SCORE
    if rtt <= RTT_EXCELLENT_MS:
        return 1.0
    if rtt <= RTT_GOOD_MS:
        return _lerp(1.0, 0.8, (rtt - RTT_EXCELLENT_MS) / (RTT_GOOD_MS - RTT_EXCELLENT_MS))
    if rtt <= RTT_ACCEPTABLE_MS:
        return _lerp(0.8, 0.5, (rtt - RTT_GOOD_MS) / (RTT_ACCEPTABLE_MS - RTT_GOOD_MS))
    if rtt <= RTT_POOR_MS:
        return _lerp(0.5, 0.2, (rtt - RTT_ACCEPTABLE_MS) / (RTT_POOR_MS - RTT_ACCEPTABLE_MS))
    return 0.1


def freshness_score(entry: Nip66RelayData, now: float) -> float:
    age = _age_seconds(entry, now)
    if age <= FRESH_THRESHOLD_S:
        return 1.0
    if age <= ACCEPTABLE_THRESHOLD_S:
        return _lerp(
            1.0, 0.7, (age - FRESH_THRESHOLD_S) / (ACCEPTABLE_THRESHOLD_S - FRESH_THRESHOLD_S)
        )
    if age <= STALE_THRESHOLD_S:
        return _lerp(
            0.7, 0.4, (age - ACCEPTABLE_THRESHOLD_S) / (STALE_THRESHOLD_S - ACCEPTABLE_THRESHOLD_S)
        )
    return 0.2


def nip_support_score(entry: Nip66RelayData) -> float:
    if not entry.supported_nips:
        return NEUTRAL_SCORE
    supported = set(entry.supported_nips)
    return len(RELEVANT_NIPS & supported) / len(RELEVANT_NIPS)


def score_relay(
    relay_url: str,
    data: Mapping[str, Nip66RelayData],
    weights: Nip66ScoreWeights = DEFAULT_WEIGHTS,
    *,
    now: float | None = None,
) -> Nip66RelayScore:
    """Score one relay against the loaded monitor data.

    Args:
        relay_url: Normalized relay URL.
        data: relay URL -> latest observation.
        weights: Factor weights.
        now: Reference UNIX time for age computations (defaults to now).
    """
    entry = data.get(relay_url)
    if entry is None:
        neutral = Nip66ScoreFactors(NEUTRAL_SCORE, NEUTRAL_SCORE, NEUTRAL_SCORE, NEUTRAL_SCORE)
        return Nip66RelayScore(relay_url, NEUTRAL_SCORE, neutral)

    reference = time.time() if now is None else now
    factors = Nip66ScoreFactors(
        uptime=uptime_score(entry, reference),
        rtt=rtt_score(entry),
        freshness=freshness_score(entry, reference),
        nip_support=nip_support_score(entry),
    )
    composite = (
        weights.uptime * factors.uptime
        + weights.rtt * factors.rtt
        + weights.freshness * factors.freshness
        + weights.nip_support * factors.nip_support
    )
    return Nip66RelayScore(relay_url, max(0.0, min(1.0, composite)), factors)


def score_all_relays(
    relay_urls: Iterable[str],
    data: Mapping[str, Nip66RelayData],
    weights: Nip66ScoreWeights = DEFAULT_WEIGHTS,
    *,
    now: float | None = None,
) -> dict[str, Nip66RelayScore]:
    reference = time.time() if now is None else now
    return {url: score_relay(url, data, weights, now=reference) for url in relay_urls}
