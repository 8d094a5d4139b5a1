"""
Quality-weighted greedy set cover using NIP-66 monitor data.

The marginal gain of a relay is scaled by ``1 + alpha * quality`` where
quality is its [score_relay][outbench.nip66.score.score_relay] value, so
among relays with similar coverage the healthier one wins. ``alpha = 0``
is plain greedy; without monitor data every relay scores a neutral 0.5
and the ranking matches plain greedy too.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from outbench.models.nip66 import HTTP_API_MONITOR, SYNTHETIC_MONITOR, Nip66Source
from outbench.models.result import AlgorithmResult
from outbench.nip66.cache import synthetic_data
from outbench.nip66.score import NEUTRAL_SCORE, score_all_relays

from .base import Stopwatch, greedy_cover


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.nip66.cache import Nip66DataCache
    from outbench.utils.rng import RandomSource


DEFAULT_ALPHA = 0.5


def _source_label(monitor_pubkey: str) -> str:
    if monitor_pubkey in (HTTP_API_MONITOR, SYNTHETIC_MONITOR):
        return monitor_pubkey
    return str(Nip66Source.NOSTR)


def nip66_weighted_greedy(
    data: BenchmarkInput,
    params: AlgorithmParams,
    rng: RandomSource,
    *,
    cache: Nip66DataCache | None = None,
) -> AlgorithmResult:
    alpha = params.alpha if params.alpha is not None else DEFAULT_ALPHA
    per_writer = params.max_relays_per_user or math.inf

    with Stopwatch() as watch:
        candidates = sorted(data.graph.relays())
        loaded = cache.get() if cache is not None else None
        if cache is not None:
            observations = cache.data_for(candidates)
        else:
            observations = synthetic_data(candidates)
        scores = score_all_relays(candidates, observations)

        notes: list[str] = []
        if not loaded:
            notes.append("NIP-66 data: synthetic (no live data available)")
        else:
            sources = sorted({_source_label(entry.monitor_pubkey) for entry in loaded.values()})
            matched = sum(1 for relay in candidates if relay in loaded)
            notes.append(
                f"NIP-66 data: {len(loaded)} relays (source: {'+'.join(sources)}), "
                f"{matched}/{len(candidates)} candidate relays matched"
            )
        if scores:
            values = [s.score for s in scores.values()]
            notes.append(
                f"Quality scores: avg={math.fsum(values) / len(values):.3f}, "
                f"min={min(values):.3f}, max={max(values):.3f}, alpha={alpha}"
            )

        def quality_gain(relay: str, marginal: int) -> float:
            quality = scores[relay].score if relay in scores else NEUTRAL_SCORE
            return marginal * (1 + alpha * quality)

        assignments, _ = greedy_cover(
            data,
            budget=params.connection_budget(),
            per_writer=per_writer,
            gain=quality_gain,
        )

    return AlgorithmResult.from_pubkey_assignments(
        "NIP-66 Weighted Greedy",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=notes,
    )
