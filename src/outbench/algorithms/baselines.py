"""Broadcast baselines that ignore declared relays and model hardcoded app relays."""

from __future__ import annotations

from typing import TYPE_CHECKING

from outbench.models.constants import DITTO_APP_RELAYS, RELAY_PRIMAL
from outbench.models.result import AlgorithmResult

from .base import Stopwatch


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


def primal_aggregator(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Route every follow through the Primal caching aggregator."""
    with Stopwatch() as watch:
        assignments = {pk: (RELAY_PRIMAL,) for pk in data.follows}
    return AlgorithmResult.from_pubkey_assignments(
        "Primal Aggregator", assignments, data.follows, params, execution_time_ms=watch.elapsed_ms
    )


def ditto_mew(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Route every follow to all four Ditto app relays (no per-author routing)."""
    with Stopwatch() as watch:
        assignments = {pk: DITTO_APP_RELAYS for pk in data.follows}
    return AlgorithmResult.from_pubkey_assignments(
        "Ditto-Mew (4 app relays)",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=(
            f"Broadcast: {len(data.follows)} authors × {len(DITTO_APP_RELAYS)} relays",
            "No per-author routing, mirrors ditto-mew feed behavior",
        ),
    )
