"""
Community-aware coverage via label propagation.

Relays sharing writers form a weighted similarity graph (edge weight =
number of shared followed writers). Label propagation groups relays into
communities; phase 1 takes the best relay of each community, largest
community first, skipping communities that add no new writer, and
phase 2 fills the remaining budget greedily.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, budget_slots, followed_coverage, shuffle


if TYPE_CHECKING:
    from collections.abc import Sequence

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


DEFAULT_MAX_ITERATIONS = 20


def propagate_labels(
    adjacency: Sequence[dict[int, int]], rng: RandomSource, max_iterations: int
) -> list[int]:
    """Label of each node after asynchronous label propagation.

    Nodes are visited in a fresh random order each iteration and adopt the
    label with the largest total edge weight among their neighbours (ties
    go to the smaller label). Stops early once no label changes.
    """
    labels = list(range(len(adjacency)))
    order = list(range(len(adjacency)))
    for _ in range(max_iterations):
        shuffle(order, rng)
        changed = False
        for node in order:
            if not adjacency[node]:
                continue
            votes: dict[int, int] = defaultdict(int)
            for neighbour, weight in adjacency[node].items():
                votes[labels[neighbour]] += weight
            best_label, best_weight = labels[node], 0
            for label in sorted(votes):
                if votes[label] > best_weight:
                    best_label, best_weight = label, votes[label]
            if best_label != labels[node]:
                labels[node] = best_label
                changed = True
        if not changed:
            break
    return labels


def spectral_clustering(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    max_iterations = params.max_iterations or DEFAULT_MAX_ITERATIONS

    with Stopwatch() as watch:
        coverage = followed_coverage(data)
        relays = list(coverage)
        n = len(relays)
        k = budget_slots(params.connection_budget(), n)

        if n <= k:
            return AlgorithmResult.from_relay_assignments(
                "Spectral Clustering",
                coverage,
                data.follows,
                params,
                execution_time_ms=watch.elapsed_ms,
                notes=(f"All {n} relays fit within budget, no clustering needed",),
            )

        by_writer: dict[str, list[int]] = defaultdict(list)
        for idx, relay in enumerate(relays):
            for writer in coverage[relay]:
                by_writer[writer].append(idx)
        adjacency: list[dict[int, int]] = [defaultdict(int) for _ in range(n)]
        for members in by_writer.values():
            for i in members:
                for j in members:
                    if i != j:
                        adjacency[i][j] += 1

        labels = propagate_labels(adjacency, rng, max_iterations)
        clusters: dict[int, list[int]] = defaultdict(list)
        for idx, label in enumerate(labels):
            clusters[label].append(idx)

        def cluster_reach(label: int) -> int:
            return len(frozenset().union(*(coverage[relays[i]] for i in clusters[label])))

        # Stable sort: equal reach keeps first-seen cluster order.
        ordered = sorted(clusters, key=lambda label: -cluster_reach(label))

        covered: set[str] = set()
        selected: list[str] = []
        for label in ordered:
            if len(selected) >= k:
                break
            best_idx, best_gain = -1, 0
            for idx in clusters[label]:
                gain = len(coverage[relays[idx]] - covered)
                if gain > best_gain:
                    best_idx, best_gain = idx, gain
            if best_idx < 0:
                continue
            selected.append(relays[best_idx])
            covered |= coverage[relays[best_idx]]
        phase1 = len(selected)

        while len(selected) < k:
            best: str | None = None
            best_gain = 0
            for relay in relays:
                if relay in selected:
                    continue
                gain = len(coverage[relay] - covered)
                if gain > best_gain:
                    best, best_gain = relay, gain
            if best is None:
                break
            selected.append(best)
            covered |= coverage[best]

        assignments = {relay: coverage[relay] for relay in selected}

    return AlgorithmResult.from_relay_assignments(
        "Spectral Clustering",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=(
            f"{len(clusters)} clusters detected via label propagation",
            f"Phase 1 (per-cluster): {phase1} relays",
            f"Phase 2 (greedy fill): {len(selected) - phase1} relays",
        ),
    )
