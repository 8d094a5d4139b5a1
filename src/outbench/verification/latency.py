"""
Post-hoc latency replay from recorded relay outcomes.

Nothing here touches the network. Given the per-relay connect, query and
first-event times the pool recorded during baseline collection, the
functions estimate what a client querying only an algorithm's selected
relays (or only one author's declared relays) would have experienced.

A relay's completion time is ``connect_time_ms + query_time_ms``; its
events count as delivered from that moment on.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from outbench.models.phase2 import (
    AlgorithmLatencyStats,
    EoseRacePoint,
    ProfileViewLatencyStats,
)
from outbench.utils.stats import mean, median, percentile


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.phase2 import PubkeyBaseline, RelayOutcome
    from outbench.models.result import AlgorithmResult

    from .query_cache import QueryCache


#: Progressive completeness checkpoints, seconds.
COMPLETENESS_WINDOWS_S = (1, 2, 5, 10, 15)
#: Extra wait after the first EOSE before a client stops listening, ms.
EOSE_RACE_GRACE_MS = (0, 500, 1000, 2000)


def completion_ms(outcome: RelayOutcome) -> float | None:
    if not outcome.connected or outcome.query_time_ms is None:
        return None
    return outcome.connect_time_ms + outcome.query_time_ms


def _first_event_at(outcome: RelayOutcome) -> float | None:
    if not outcome.connected or outcome.first_event_ms is None:
        return None
    return outcome.connect_time_ms + outcome.first_event_ms


def _fraction_by(
    deadline_ms: float,
    finish: Mapping[str, float],
    events: Mapping[str, set[tuple[str, str]]],
    total: int,
) -> float:
    if not total:
        return 0.0
    delivered: set[tuple[str, str]] = set()
    for relay, done in finish.items():
        if done <= deadline_ms:
            delivered |= events[relay]
    return len(delivered) / total


def algorithm_latency(
    result: AlgorithmResult,
    baselines: Mapping[str, PubkeyBaseline],
    cache: QueryCache,
    outcomes: Mapping[str, RelayOutcome],
    *,
    eose_timeout_ms: float,
    concurrency: int,
) -> AlgorithmLatencyStats:
    """Replay querying the selected relays of *result* in parallel.

    Events are ``(author, id)`` pairs the relay returned for the authors
    the algorithm routed through it, restricted to baseline authors.
    """
    relays = [r for r in sorted(result.relay_assignments) if r in outcomes]
    connected = [r for r in relays if outcomes[r].connected]

    events: dict[str, set[tuple[str, str]]] = {}
    for relay in connected:
        pairs: set[tuple[str, str]] = set()
        for pubkey in result.relay_assignments[relay]:
            if pubkey not in baselines:
                continue
            ids = cache.get(relay, pubkey)
            if ids:
                pairs.update((pubkey, event_id) for event_id in ids)
        events[relay] = pairs
    all_events: set[tuple[str, str]] = set().union(*events.values()) if events else set()
    with_events = [r for r in connected if events[r]]

    first_events = [t for r in with_events if (t := _first_event_at(outcomes[r])) is not None]
    query_times = sorted(
        q for r in connected if (q := outcomes[r].query_time_ms) is not None
    )
    finish = {r: t for r in connected if (t := completion_ms(outcomes[r])) is not None}
    timeouts = sum(1 for r in relays if outcomes[r].timed_out)
    total = len(all_events)

    progressive = {
        window: _fraction_by(window * 1000, finish, events, total)
        for window in COMPLETENESS_WINDOWS_S
    }

    eose_race: dict[int, EoseRacePoint] = {}
    eose_times = [finish[r] for r in finish if outcomes[r].reached_eose]
    if eose_times:
        first_eose = min(eose_times)
        for grace in EOSE_RACE_GRACE_MS:
            cutoff = first_eose + grace
            eose_race[grace] = EoseRacePoint(
                cutoff_ms=cutoff, completeness=_fraction_by(cutoff, finish, events, total)
            )

    return AlgorithmLatencyStats(
        ttfe_ms=min(first_events) if first_events else None,
        ttfe_connect_only_ms=min((outcomes[r].connect_time_ms for r in connected), default=None),
        query_p50_ms=percentile(query_times, 0.5) if query_times else None,
        query_p80_ms=percentile(query_times, 0.8) if query_times else None,
        query_max_ms=query_times[-1] if query_times else None,
        timeout_count=timeouts,
        relays_with_outcomes=len(relays),
        relays_connected=len(connected),
        relays_with_events=len(with_events),
        total_events=total,
        timeout_tax_ms=math.ceil(timeouts / max(concurrency, 1)) * eose_timeout_ms,
        relays_connected_no_events=len(connected) - len(with_events),
        progressive_completeness=progressive,
        eose_race=eose_race,
    )


def _author_relays(baseline: PubkeyBaseline) -> Iterable[str]:
    return sorted(baseline.relays_succeeded | baseline.relays_failed)


def profile_view_latency(
    data: BenchmarkInput,
    baselines: Mapping[str, PubkeyBaseline],
    cache: QueryCache,
    outcomes: Mapping[str, RelayOutcome],
) -> ProfileViewLatencyStats:
    """Replay opening each author's profile by querying its declared relays.

    An author is a hit when any of its connected relays returned events
    for it; its time to first event is the earliest such relay's.
    """
    ttfes: list[float] = []
    queried_counts: list[float] = []
    with_events_counts: list[float] = []
    timeout_counts: list[float] = []
    hits = 0

    for pubkey in data.writer_to_relays:
        baseline = baselines.get(pubkey)
        if baseline is None:
            continue
        relays = [r for r in _author_relays(baseline) if r in outcomes]
        if not relays:
            continue
        delivering = [
            r for r in relays if outcomes[r].connected and cache.get(r, pubkey)
        ]
        queried_counts.append(len(relays))
        with_events_counts.append(len(delivering))
        timeout_counts.append(sum(1 for r in relays if outcomes[r].timed_out))
        if not delivering:
            continue
        hits += 1
        times: list[float] = []
        for relay in delivering:
            first = _first_event_at(outcomes[relay])
            t = first if first is not None else completion_ms(outcomes[relay])
            if t is not None:
                times.append(t)
        if times:
            ttfes.append(min(times))

    authors = len(queried_counts)
    ttfes.sort()
    return ProfileViewLatencyStats(
        author_count=authors,
        mean_ttfe_ms=mean(ttfes) if ttfes else None,
        median_ttfe_ms=median(ttfes) if ttfes else None,
        p95_ttfe_ms=percentile(ttfes, 0.95) if ttfes else None,
        mean_relays_queried=mean(queried_counts),
        mean_relays_with_events=mean(with_events_counts),
        hit_rate=hits / authors if authors else 0.0,
        mean_timeouts=mean(timeout_counts),
    )
