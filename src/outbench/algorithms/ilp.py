"""
Exact maximum coverage by branch and bound.

Writers are indexed and each relay's coverage is encoded as an integer
bitset, so union is ``|``, "new writers" is ``& ~covered`` and counting
is ``int.bit_count()``. Relays are ordered by coverage (largest first,
ties by URL) to tighten the bound early.

The greedy solution seeds the incumbent. At every node the bound adds
the ``budget_left`` largest marginal gains of the remaining relays to the
current coverage, ignoring overlap; a node whose bound does not beat the
incumbent is pruned. The search explores include-before-exclude with an
explicit stack and polls the wall clock every ``poll_interval`` nodes; on
hitting the time box it returns the best solution found and says so in
the notes.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from outbench.models.result import AlgorithmResult

from .base import Stopwatch, budget_slots, followed_coverage


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.utils.rng import RandomSource


logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT_MS = 3000.0
DEFAULT_POLL_INTERVAL = 5000


class _Search:
    """Branch-and-bound state over ``len(bits)`` relays."""

    __slots__ = (
        "best_count",
        "best_set",
        "bits",
        "deadline",
        "nodes",
        "poll_interval",
        "timed_out",
    )

    def __init__(self, bits: list[int], deadline: float, poll_interval: int) -> None:
        self.bits = bits
        self.deadline = deadline
        self.poll_interval = poll_interval
        self.nodes = 0
        self.timed_out = False
        self.best_count = 0
        self.best_set: tuple[int, ...] = ()

    def seed_greedy(self, budget: int) -> None:
        covered = 0
        chosen: list[int] = []
        for _ in range(budget):
            best_idx, best_gain = -1, 0
            for idx, relay_bits in enumerate(self.bits):
                if idx in chosen:
                    continue
                gain = (relay_bits & ~covered).bit_count()
                if gain > best_gain:
                    best_idx, best_gain = idx, gain
            if best_idx < 0:
                break
            chosen.append(best_idx)
            covered |= self.bits[best_idx]
        self.best_count = covered.bit_count()
        self.best_set = tuple(chosen)

    def upper_bound(self, covered: int, count: int, start: int, budget_left: int) -> int:
        gains = sorted(
            (g for g in ((b & ~covered).bit_count() for b in self.bits[start:]) if g > 0),
            reverse=True,
        )
        return count + sum(gains[:budget_left])

    def run(self, budget: int) -> None:
        n = len(self.bits)
        # (selected, covered bits, covered count, next relay index, budget left)
        stack: list[tuple[tuple[int, ...], int, int, int, int]] = [((), 0, 0, 0, budget)]
        while stack:
            selected, covered, count, idx, budget_left = stack.pop()
            self.nodes += 1
            if self.nodes % self.poll_interval == 0 and time.perf_counter() > self.deadline:
                self.timed_out = True
                return

            if budget_left == 0 or idx >= n:
                if count > self.best_count:
                    self.best_count = count
                    self.best_set = selected
                continue

            if self.upper_bound(covered, count, idx, budget_left) <= self.best_count:
                continue

            included = covered | self.bits[idx]
            stack.append((selected, covered, count, idx + 1, budget_left))
            stack.append(
                (selected + (idx,), included, included.bit_count(), idx + 1, budget_left - 1)
            )


def ilp_optimal(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Optimal relay set of size ``max_connections`` maximizing covered writers."""
    time_limit_ms = params.time_limit_ms or DEFAULT_TIME_LIMIT_MS
    deadline = time.perf_counter() + time_limit_ms / 1000

    with Stopwatch() as watch:
        coverage = followed_coverage(data)
        writers = sorted({w for ws in coverage.values() for w in ws})
        index = {w: i for i, w in enumerate(writers)}

        relays = sorted(coverage, key=lambda r: (-len(coverage[r]), r))
        bits = []
        for relay in relays:
            mask = 0
            for writer in coverage[relay]:
                mask |= 1 << index[writer]
            bits.append(mask)

        budget = budget_slots(params.connection_budget(), len(relays))
        search = _Search(bits, deadline=deadline, poll_interval=DEFAULT_POLL_INTERVAL)
        search.seed_greedy(budget)
        if search.best_count < len(writers):
            search.run(budget)

        assignments = {relays[i]: coverage[relays[i]] for i in search.best_set}

    if search.timed_out:
        logger.warning(
            "ilp_time_limit nodes=%s best=%s/%s limit_ms=%s",
            search.nodes,
            search.best_count,
            len(writers),
            time_limit_ms,
        )

    total = len(writers)
    percent = search.best_count / total * 100 if total else 0.0
    notes = (
        f"B&B: {search.nodes} nodes explored",
        f"Coverage: {search.best_count}/{total} ({percent:.1f}%)",
        "TIME LIMIT - best found (may not be optimal)" if search.timed_out else "Exact optimal found",
    )
    return AlgorithmResult.from_relay_assignments(
        "ILP Optimal",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=notes,
    )
