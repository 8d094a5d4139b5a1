"""
Single-pass streaming maximum coverage with a swap buffer.

Relays arrive in a random order. The first ``k`` fill the buffer; each
later relay replaces the buffer member whose removal loses the least
coverage, but only when the swap strictly increases total coverage.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, budget_slots, followed_coverage, shuffle


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


def _unique_loss(member: frozenset[str], counts: Counter[str]) -> int:
    return sum(1 for w in member if counts[w] == 1)


def streaming_coverage(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    with Stopwatch() as watch:
        coverage = followed_coverage(data)
        stream = list(coverage)
        shuffle(stream, rng)
        k = budget_slots(params.connection_budget(), len(stream))

        buffer = stream[:k]
        counts: Counter[str] = Counter()
        for relay in buffer:
            counts.update(coverage[relay])

        for candidate in stream[k:]:
            if not buffer:
                break
            worst_idx = 0
            worst_loss = _unique_loss(coverage[buffer[0]], counts)
            for idx in range(1, len(buffer)):
                loss = _unique_loss(coverage[buffer[idx]], counts)
                if loss < worst_loss:
                    worst_idx, worst_loss = idx, loss

            gained = sum(
                1
                for w in coverage[candidate]
                if counts[w] == 0 or (counts[w] == 1 and w in coverage[buffer[worst_idx]])
            )
            if gained > worst_loss:
                counts.subtract(coverage[buffer[worst_idx]])
                counts.update(coverage[candidate])
                buffer[worst_idx] = candidate

        covered = sum(1 for c in counts.values() if c > 0)
        assignments = {relay: coverage[relay] for relay in buffer}

    return AlgorithmResult.from_relay_assignments(
        "Streaming Coverage",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=(
            f"Single-pass over {len(stream)} relays, buffer size {k}",
            f"Final coverage: {covered}",
        ),
    )
