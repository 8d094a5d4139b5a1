"""
Relay-selection strategies.

Each strategy is a plain function ``(BenchmarkInput, AlgorithmParams, rng)
-> AlgorithmResult``. The [registry][outbench.algorithms.registry] maps
ids to strategies together with their defaults, capping mode and
stochasticity.

Attributes:
    ALGORITHM_REGISTRY: Every registered strategy, in report order.
    get_algorithms: Resolve ids (or ``"all"``) to registry entries.
    run_algorithm: Run one entry with defaults and post-processing cap.
    run_stochastic: Repeat one entry over consecutive seeds with CI stats.
"""

from .base import SelectionStrategy, Stopwatch, greedy_cover
from .registry import (
    ALGORITHM_IDS,
    ALGORITHM_REGISTRY,
    AlgorithmEntry,
    StochasticRun,
    get_algorithms,
    post_process_cap,
    run_algorithm,
    run_stochastic,
)
from .thompson import THOMPSON_IDS


__all__ = [
    "ALGORITHM_IDS",
    "ALGORITHM_REGISTRY",
    "THOMPSON_IDS",
    "AlgorithmEntry",
    "SelectionStrategy",
    "StochasticRun",
    "Stopwatch",
    "get_algorithms",
    "greedy_cover",
    "post_process_cap",
    "run_algorithm",
    "run_stochastic",
]
