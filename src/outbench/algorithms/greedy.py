"""Greedy set-cover strategies (Gossip / Applesauce style)."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, greedy_cover


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


DEFAULT_EPSILON = 0.05


def greedy_set_cover(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Pick the relay covering the most still-pending writers until the budget is spent.

    A writer stays pending until it has ``max_relays_per_user`` relays
    (unbounded when unset), so later picks add redundancy once every
    writer is covered. Ties go to the smaller URL.
    """
    with Stopwatch() as watch:
        per_writer = params.max_relays_per_user or math.inf
        assignments, _ = greedy_cover(
            data, budget=params.connection_budget(), per_writer=per_writer
        )
    return AlgorithmResult.from_pubkey_assignments(
        "Greedy Set-Cover",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )


def greedy_epsilon(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Greedy set cover that explores a uniformly random candidate with probability epsilon."""
    epsilon = params.epsilon if params.epsilon is not None else DEFAULT_EPSILON

    def explore(relays: list[str]) -> str | None:
        if rng() < epsilon:
            return relays[math.floor(rng() * len(relays))]
        return None

    with Stopwatch() as watch:
        per_writer = params.max_relays_per_user or math.inf
        assignments, _ = greedy_cover(
            data,
            budget=params.connection_budget(),
            per_writer=per_writer,
            explore=explore,
        )
    return AlgorithmResult.from_pubkey_assignments(
        f"Greedy+ε-Explore (ε={epsilon})",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
    )
