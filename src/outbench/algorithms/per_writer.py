"""
Per-writer strategies modelled on existing client libraries.

These strategies pick relays one writer at a time from that writer's
declared write relays. Except for ``priority_based`` and
``greedy_coverage_sort`` they have no notion of a global connection
budget; the registry caps them after the fact.

Attributes:
    direct_mapping: Every declared relay (Amethyst-style upper bound).
    filter_decomposition: First N declared relays by URL (rust-nostr).
    weighted_stochastic: Top N by ``(1 + ln popularity) * U`` (Welshman/Coracle).
    priority_based: Reuse already selected relays first (NDK).
    greedy_coverage_sort: Popularity order, skipping mega relays (Nostur).
    popular_plus_random: Big relays plus two random declared relays.
    big_relays: Only ``relay.damus.io`` and ``nos.lol`` where declared.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import TYPE_CHECKING

from outbench.models.constants import POPULAR_RELAYS
from outbench.models.result import AlgorithmResult

from .base import Stopwatch, partial_shuffle, top_by_score


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


DEFAULT_WRITE_LIMIT = 3
DEFAULT_RELAY_LIMIT = 3
DEFAULT_RELAY_GOAL = 2
DEFAULT_SKIP_TOP_RELAYS = 3
RANDOM_PICKS = 2


def _first_set(*values: int | None, default: int) -> int:
    for value in values:
        if value is not None:
            return value
    return default


def direct_mapping(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    with Stopwatch() as watch:
        assignments = {pk: data.graph.relays_of(pk) for pk in data.follows}
    return AlgorithmResult.from_pubkey_assignments(
        "Direct Mapping", assignments, data.follows, params, execution_time_ms=watch.elapsed_ms
    )


def filter_decomposition(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Up to ``write_limit`` declared relays per writer, lowest URLs first."""
    write_limit = _first_set(params.write_limit, default=DEFAULT_WRITE_LIMIT)
    with Stopwatch() as watch:
        assignments = {
            pk: sorted(data.graph.relays_of(pk))[:write_limit] for pk in data.follows
        }
    return AlgorithmResult.from_pubkey_assignments(
        "Filter Decomposition",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )


def weighted_stochastic(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Per writer, keep the ``relay_limit`` relays with the highest ``(1 + ln w) * U``.

    ``w`` is the relay's popularity among follows; one uniform draw is
    made per (writer, relay) pair in URL order.
    """
    relay_limit = _first_set(
        params.relay_limit, params.max_relays_per_user, default=DEFAULT_RELAY_LIMIT
    )
    with Stopwatch() as watch:
        assignments: dict[str, list[str]] = {}
        for pubkey in data.follows:
            relays = sorted(data.graph.relays_of(pubkey))
            scored = [
                (relay, (1 + math.log(len(data.graph.writers_of(relay)) or 1)) * rng())
                for relay in relays
            ]
            assignments[pubkey] = top_by_score(scored, relay_limit)
    return AlgorithmResult.from_pubkey_assignments(
        "Weighted Stochastic",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )


def priority_based(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Writers in sorted order; each prefers already selected relays, then popular ones.

    A new relay is opened only while fewer than ``max_connections`` are
    selected (unbounded when unset).
    """
    goal = _first_set(
        params.relay_goal_per_author, params.max_relays_per_user, default=DEFAULT_RELAY_GOAL
    )
    budget = params.connection_budget(math.inf)

    with Stopwatch() as watch:
        selected: set[str] = set()
        assignments: dict[str, list[str]] = {}
        for pubkey in sorted(dict.fromkeys(data.follows)):
            candidates = sorted(
                data.graph.relays_of(pubkey),
                key=lambda r: (r not in selected, -len(data.graph.writers_of(r)), r),
            )
            chosen: list[str] = []
            for relay in candidates:
                if len(chosen) >= goal:
                    break
                if relay not in selected and len(selected) >= budget:
                    continue
                chosen.append(relay)
                selected.add(relay)
            assignments[pubkey] = chosen
    return AlgorithmResult.from_pubkey_assignments(
        "Priority-Based (NDK)",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )


def greedy_coverage_sort(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Walk relays by popularity once, skipping the ``skip_top_relays`` largest.

    Each relay takes every writer still below ``max_relays_per_user``
    relays; relays that take nobody do not count against the budget.
    """
    skip = _first_set(params.skip_top_relays, default=DEFAULT_SKIP_TOP_RELAYS)
    per_writer = _first_set(params.max_relays_per_user, default=DEFAULT_RELAY_GOAL)
    budget = params.connection_budget(math.inf)

    with Stopwatch() as watch:
        follow_set = set(data.follows)
        ranked = sorted(data.graph.relays(), key=lambda r: (-len(data.graph.writers_of(r)), r))
        counts: Counter[str] = Counter()
        assignments: dict[str, set[str]] = {}
        used = 0
        for relay in ranked[skip:]:
            if used >= budget:
                break
            taken = [
                w
                for w in sorted(data.graph.writers_of(relay))
                if w in follow_set and counts[w] < per_writer
            ]
            for writer in taken:
                counts[writer] += 1
                assignments.setdefault(writer, set()).add(relay)
            if taken:
                used += 1
    return AlgorithmResult.from_pubkey_assignments(
        "Greedy Coverage Sort",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )


def popular_plus_random(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Declared big relays plus two random other declared relays per writer."""
    with Stopwatch() as watch:
        assignments: dict[str, list[str]] = {}
        for pubkey in data.follows:
            declared = data.graph.relays_of(pubkey)
            chosen = [r for r in POPULAR_RELAYS if r in declared]
            others = sorted(declared.difference(POPULAR_RELAYS))
            chosen.extend(partial_shuffle(others, RANDOM_PICKS, rng))
            assignments[pubkey] = chosen
    return AlgorithmResult.from_pubkey_assignments(
        "Popular+Random",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )


def big_relays(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    with Stopwatch() as watch:
        assignments = {
            pk: [r for r in POPULAR_RELAYS if r in data.graph.relays_of(pk)]
            for pk in data.follows
        }
    return AlgorithmResult.from_pubkey_assignments(
        "Big Relays (damus+nos.lol)",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )
