"""
Algorithm registry and run helpers.

Every strategy is registered once as an
[AlgorithmEntry][outbench.algorithms.registry.AlgorithmEntry] carrying its
id, display name, default parameters and two flags:

- ``native_cap``: the strategy honours ``max_connections`` itself. Other
  strategies run unbounded and are trimmed by
  [post_process_cap][outbench.algorithms.registry.post_process_cap].
- ``stochastic``: results depend on the RNG stream, so benchmarks repeat
  them over consecutive seeds via
  [run_stochastic][outbench.algorithms.registry.run_stochastic].

Examples:
    ```python
    entries = get_algorithms(["greedy", "welshman"])
    result = run_algorithm(entries[0], data, AlgorithmParams(max_connections=20), mulberry32(0))
    ```
"""

from __future__ import annotations

import functools
import math
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from outbench.core.exceptions import ConfigurationError
from outbench.core.metrics import ALGORITHM_DURATION_SECONDS
from outbench.evaluation import compute_metrics
from outbench.models.metrics import NUMERIC_METRIC_FIELDS, AlgorithmMetrics, StochasticStats
from outbench.models.params import AlgorithmParams
from outbench.models.result import AlgorithmResult
from outbench.utils.rng import mulberry32
from outbench.utils.stats import mean, pstdev

from .baselines import ditto_mew, primal_aggregator
from .greedy import greedy_epsilon, greedy_set_cover
from .hybrid import hybrid_greedy_explore
from .ilp import ilp_optimal
from .mab import mab_ucb
from .matching import bipartite_matching
from .nip66_weighted import nip66_weighted_greedy
from .per_writer import (
    big_relays,
    direct_mapping,
    filter_decomposition,
    greedy_coverage_sort,
    popular_plus_random,
    priority_based,
    weighted_stochastic,
)
from .spectral import spectral_clustering
from .stochastic_greedy import stochastic_greedy
from .streaming import streaming_coverage
from .thompson import ditto_outbox, fd_thompson, welshman_thompson


if TYPE_CHECKING:
    from collections.abc import Iterable

    from outbench.models.benchmark import BenchmarkInput
    from outbench.nip66.cache import Nip66DataCache
    from outbench.utils.rng import RandomSource

    from .base import SelectionStrategy


ALL = "all"
CI95_Z = 1.96


@dataclass(frozen=True, slots=True)
class AlgorithmEntry:
    """One registered strategy."""

    id: str
    name: str
    fn: SelectionStrategy
    native_cap: bool
    stochastic: bool
    defaults: AlgorithmParams = field(default_factory=AlgorithmParams)


@dataclass(frozen=True, slots=True)
class StochasticRun:
    """Outcome of repeating a strategy over consecutive seeds.

    ``result`` is the first run's assignment; ``metrics`` carries the
    across-run means, so the two need not agree exactly.
    """

    result: AlgorithmResult
    metrics: AlgorithmMetrics
    stochastic: StochasticStats


def _entry(
    id: str,
    name: str,
    fn: SelectionStrategy,
    *,
    native_cap: bool,
    stochastic: bool = False,
    **defaults: float,
) -> AlgorithmEntry:
    return AlgorithmEntry(id, name, fn, native_cap, stochastic, AlgorithmParams(**defaults))


ALGORITHM_REGISTRY: tuple[AlgorithmEntry, ...] = (
    _entry(
        "greedy",
        "Greedy Set-Cover",
        greedy_set_cover,
        native_cap=True,
        max_connections=20,
        max_relays_per_user=2,
    ),
    _entry("ndk", "Priority-Based (NDK)", priority_based, native_cap=True, max_relays_per_user=2),
    _entry(
        "welshman",
        "Weighted Stochastic",
        weighted_stochastic,
        native_cap=False,
        stochastic=True,
        relay_limit=3,
    ),
    _entry(
        "nostur", "Greedy Coverage Sort", greedy_coverage_sort, native_cap=True, max_relays_per_user=2
    ),
    _entry("rust-nostr", "Filter Decomposition", filter_decomposition, native_cap=False, write_limit=3),
    _entry("direct", "Direct Mapping", direct_mapping, native_cap=False),
    _entry("primal", "Primal Aggregator", primal_aggregator, native_cap=True),
    _entry(
        "popular-random", "Popular+Random", popular_plus_random, native_cap=False, stochastic=True
    ),
    _entry("ilp", "ILP Optimal", ilp_optimal, native_cap=True),
    _entry(
        "stochastic-greedy", "Stochastic Greedy", stochastic_greedy, native_cap=True, stochastic=True
    ),
    _entry("mab", "MAB-UCB Relay", mab_ucb, native_cap=True, stochastic=True),
    _entry("streaming", "Streaming Coverage", streaming_coverage, native_cap=True, stochastic=True),
    _entry("matching", "Bipartite Matching", bipartite_matching, native_cap=True),
    _entry("spectral", "Spectral Clustering", spectral_clustering, native_cap=True, stochastic=True),
    _entry(
        "hybrid", "Hybrid Greedy+Explore", hybrid_greedy_explore, native_cap=True, stochastic=True
    ),
    _entry(
        "welshman-thompson",
        "Welshman+Thompson",
        welshman_thompson,
        native_cap=False,
        stochastic=True,
        relay_limit=3,
    ),
    _entry(
        "fd-thompson",
        "FD+Thompson",
        fd_thompson,
        native_cap=False,
        stochastic=True,
        write_limit=3,
    ),
    _entry(
        "ditto-outbox",
        "Ditto+Outbox Thompson",
        ditto_outbox,
        native_cap=False,
        stochastic=True,
        write_limit=3,
    ),
    _entry("ditto-mew", "Ditto-Mew (4 app relays)", ditto_mew, native_cap=True),
    _entry("big-relays", "Big Relays (damus+nos.lol)", big_relays, native_cap=True),
    _entry(
        "greedy-epsilon",
        "Greedy+ε-Explore",
        greedy_epsilon,
        native_cap=True,
        stochastic=True,
        epsilon=0.05,
    ),
    _entry("nip66-weighted", "NIP-66 Weighted Greedy", nip66_weighted_greedy, native_cap=True),
)

ALGORITHM_IDS: tuple[str, ...] = tuple(entry.id for entry in ALGORITHM_REGISTRY)


def get_algorithms(
    ids: Iterable[str], *, nip66_cache: Nip66DataCache | None = None
) -> list[AlgorithmEntry]:
    """Resolve *ids* to registry entries, in the given order.

    ``"all"`` anywhere in *ids* selects the whole registry. When
    *nip66_cache* is given, the NIP-66 weighted strategy is bound to it.

    Raises:
        ConfigurationError: If an id is not registered.
    """
    wanted = list(ids)
    by_id = {entry.id: entry for entry in ALGORITHM_REGISTRY}
    if ALL in wanted:
        entries = list(ALGORITHM_REGISTRY)
    else:
        unknown = [i for i in wanted if i not in by_id]
        if unknown:
            raise ConfigurationError(
                f"Unknown algorithm: {', '.join(unknown)} (known: {', '.join(ALGORITHM_IDS)})"
            )
        entries = [by_id[i] for i in wanted]

    if nip66_cache is None:
        return entries
    return [
        replace(entry, fn=functools.partial(nip66_weighted_greedy, cache=nip66_cache))
        if entry.id == "nip66-weighted"
        else entry
        for entry in entries
    ]


def post_process_cap(result: AlgorithmResult, max_connections: float) -> AlgorithmResult:
    """Keep the *max_connections* heaviest relays (ties by ascending URL).

    Writers that lose every relay become orphans. A result that already
    fits is returned unchanged, which makes the cap idempotent.
    """
    if len(result.relay_assignments) <= max_connections:
        return result

    start = time.perf_counter()
    ranked = sorted(
        result.relay_assignments, key=lambda r: (-len(result.relay_assignments[r]), r)
    )
    kept = {relay: result.relay_assignments[relay] for relay in ranked[: int(max_connections)]}
    follows = [*result.pubkey_assignments, *result.orphaned_pubkeys]
    elapsed_ms = (time.perf_counter() - start) * 1000

    limit = int(max_connections)
    return AlgorithmResult.from_relay_assignments(
        f"{result.name} (cap@{limit})",
        kept,
        follows,
        result.params.model_copy(update={"max_connections": max_connections}),
        execution_time_ms=result.execution_time_ms + elapsed_ms,
        notes=(
            *result.notes,
            f"Post-processed: capped from {len(result.relay_assignments)} to {limit} relays",
        ),
    )


def run_algorithm(
    entry: AlgorithmEntry,
    data: BenchmarkInput,
    params: AlgorithmParams,
    rng: RandomSource,
) -> AlgorithmResult:
    """Run *entry* with its defaults overlaid by *params*, capping if needed."""
    merged = entry.defaults.merged(params)
    result = entry.fn(data, merged, rng)
    ALGORITHM_DURATION_SECONDS.labels(algorithm=entry.id).observe(result.execution_time_ms / 1000)

    if not entry.native_cap and merged.has_finite_cap:
        result = post_process_cap(result, merged.connection_budget())
    return result


def run_stochastic(
    entry: AlgorithmEntry,
    data: BenchmarkInput,
    params: AlgorithmParams,
    seed: int,
    runs: int,
) -> StochasticRun:
    """Repeat *entry* with seeds ``seed .. seed + runs - 1``.

    Raises:
        ConfigurationError: If *runs* is less than 1.
    """
    if runs < 1:
        raise ConfigurationError(f"runs must be >= 1, got {runs}")

    first = run_algorithm(entry, data, params, mulberry32(seed))
    samples = [compute_metrics(first, data, params).numeric_values()]
    for i in range(1, runs):
        result = run_algorithm(entry, data, params, mulberry32(seed + i))
        samples.append(compute_metrics(result, data, params).numeric_values())

    means: dict[str, float] = {}
    stddevs: dict[str, float] = {}
    lower: dict[str, float] = {}
    upper: dict[str, float] = {}
    for name in NUMERIC_METRIC_FIELDS:
        values = [sample[name] for sample in samples]
        m, s = mean(values), pstdev(values)
        margin = CI95_Z * s / math.sqrt(runs)
        means[name], stddevs[name] = m, s
        lower[name], upper[name] = m - margin, m + margin

    stats = StochasticStats(
        runs=runs, seed=seed, mean=means, stddev=stddevs, ci95_lower=lower, ci95_upper=upper
    )
    metrics = compute_metrics(first, data, params).with_means(stats)
    return StochasticRun(result=first, metrics=metrics, stochastic=stats)
