"""
Inverse-frequency weighted coverage.

A writer declaring ``d`` relays weighs ``1 / d``, so writers reachable
through few relays dominate the objective. Each step picks the relay with
the largest total weight of still-uncovered writers.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, budget_slots, coverable_follows, followed_coverage


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


def bipartite_matching(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    with Stopwatch() as watch:
        coverage = followed_coverage(data)
        weight = {pk: 1 / len(data.graph.relays_of(pk)) for pk in coverable_follows(data)}
        uncovered = set(weight)
        k = budget_slots(params.connection_budget(), len(coverage))

        selected: list[str] = []
        for _ in range(k):
            if not uncovered:
                break
            best: str | None = None
            best_weight = 0.0
            for relay, writers in coverage.items():
                if relay in selected:
                    continue
                marginal = math.fsum(weight[w] for w in sorted(writers & uncovered))
                if marginal > best_weight:
                    best, best_weight = relay, marginal
            if best is None:
                break
            selected.append(best)
            uncovered -= coverage[best]

        assignments = {relay: coverage[relay] for relay in selected}

    total = len(weight)
    return AlgorithmResult.from_relay_assignments(
        "Bipartite Matching",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=(
            "Inverse-frequency weighted: prioritizes hard-to-reach pubkeys",
            f"Coverage: {total - len(uncovered)}/{total}",
        ),
    )
