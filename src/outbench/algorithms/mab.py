"""
Combinatorial multi-armed bandit relay selection (CUCB, Chen et al. 2013).

Each relay is an arm. A round plays ``k`` arms and observes, per played
arm, the fraction of coverable writers that only it covered in that
round. Random k-subsets warm up the statistics, then each round plays the
top-k arms by UCB1 score ``mean + c * sqrt(ln t / pulls)``. The best set
seen across rounds is returned.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, budget_slots, coverable_follows


if TYPE_CHECKING:
    from collections.abc import Sequence

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


DEFAULT_ROUNDS = 500
DEFAULT_EXPLORATION = 2.0
MAX_WARMUP_ROUNDS = 50


def _unique_contributions(
    selection: Sequence[int], coverage: Sequence[frozenset[str]]
) -> dict[int, int]:
    """Per selected arm, how many of its writers no other selected arm covers."""
    seen: Counter[str] = Counter()
    for idx in selection:
        seen.update(coverage[idx])
    return {idx: sum(1 for w in coverage[idx] if seen[w] == 1) for idx in selection}


def mab_ucb(data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource) -> AlgorithmResult:
    rounds = params.rounds or DEFAULT_ROUNDS
    c = params.exploration_constant if params.exploration_constant is not None else DEFAULT_EXPLORATION

    with Stopwatch() as watch:
        follow_set = set(data.follows)
        relays = sorted(data.graph.relays())
        coverage = [data.graph.writers_of(r) & follow_set for r in relays]
        n = len(relays)
        k = budget_slots(params.connection_budget(), n)
        total_coverable = len(coverable_follows(data))

        if k == 0 or n == 0 or total_coverable == 0:
            reason = "No relays available" if n == 0 or k == 0 else (
                "No coverable pubkeys (follow set empty or no relay data)"
            )
            return AlgorithmResult.from_pubkey_assignments(
                "MAB-UCB Relay", {}, data.follows, params, notes=(reason,)
            )

        pulls = [0] * n
        rewards = [0.0] * n

        def observe(selection: Sequence[int]) -> None:
            for idx, unique in _unique_contributions(selection, coverage).items():
                pulls[idx] += 1
                rewards[idx] += unique / total_coverable

        warmup = min(math.ceil(n / k), MAX_WARMUP_ROUNDS)
        for _ in range(warmup):
            indices = list(range(n))
            for i in range(k):
                j = i + math.floor(rng() * (n - i))
                indices[i], indices[j] = indices[j], indices[i]
            observe(indices[:k])

        best_coverage = 0
        best_selection: list[int] = []
        for round_no in range(rounds):
            t = warmup * k + round_no + 1
            log_t = math.log(t)
            ucb = [
                math.inf
                if pulls[i] == 0
                else rewards[i] / pulls[i] + c * math.sqrt(log_t / pulls[i])
                for i in range(n)
            ]
            selection = sorted(range(n), key=lambda i: -ucb[i])[:k]

            covered: set[str] = set()
            for idx in selection:
                covered |= coverage[idx]
            if len(covered) > best_coverage:
                best_coverage = len(covered)
                best_selection = selection
            observe(selection)

        assignments = {relays[i]: coverage[i] for i in best_selection}

    return AlgorithmResult.from_relay_assignments(
        "MAB-UCB Relay",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=(
            f"{rounds + warmup} rounds, exploration c={c}",
            f"Best coverage: {best_coverage}/{total_coverable}",
        ),
    )
