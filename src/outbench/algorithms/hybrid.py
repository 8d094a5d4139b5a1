"""
Greedy coverage followed by niche-relay exploration.

The first ``greedy_ratio`` of the budget goes to greedy set cover. The
rest is filled by roulette-wheel draws over the unselected relays,
weighted by ``1 / sqrt(followed writers)`` plus ``0.5`` per writer still
without any relay, so exploration favours small relays while filling
coverage gaps.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, followed_coverage, greedy_cover


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


DEFAULT_GREEDY_RATIO = 0.7
UNCOVERED_BONUS = 0.5


def split_budget(budget: float, ratio: float) -> tuple[float, int]:
    """``(greedy slots, explore slots)``; an unbounded budget is all greedy."""
    if math.isinf(budget):
        return budget, 0
    greedy = max(1, math.floor(budget * ratio + 0.5))
    return greedy, max(0, int(budget) - greedy)


def hybrid_greedy_explore(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    ratio = params.greedy_ratio if params.greedy_ratio is not None else DEFAULT_GREEDY_RATIO
    greedy_slots, explore_slots = split_budget(params.connection_budget(), ratio)

    with Stopwatch() as watch:
        assignments, greedy_selected = greedy_cover(data, budget=greedy_slots, per_writer=1)

        candidates: list[tuple[str, float, frozenset[str]]] = []
        for relay, relevant in followed_coverage(data).items():
            if relay in greedy_selected:
                continue
            uncovered = sum(1 for w in relevant if w not in assignments)
            weight = 1 / math.sqrt(len(relevant)) + UNCOVERED_BONUS * uncovered
            candidates.append((relay, weight, relevant))
        candidate_count = len(candidates)

        explored = 0
        while explored < explore_slots and candidates:
            total = math.fsum(weight for _, weight, _ in candidates)
            if total <= 0:
                break
            target = rng() * total
            chosen = 0
            for idx, (_, weight, _) in enumerate(candidates):
                target -= weight
                if target <= 0:
                    chosen = idx
                    break
            relay, _, relevant = candidates.pop(chosen)
            for writer in relevant:
                assignments.setdefault(writer, set()).add(relay)
            explored += 1

    greedy_label = "unlimited" if math.isinf(greedy_slots) else str(greedy_slots)
    return AlgorithmResult.from_pubkey_assignments(
        "Hybrid Greedy+Explore",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=(
            f"Greedy: {len(greedy_selected)}/{greedy_label} slots, "
            f"Explore: {explore_slots} slots (ratio: {ratio})",
            f"Exploration candidates: {candidate_count}",
        ),
    )
