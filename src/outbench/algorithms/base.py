"""
Shared building blocks for relay-selection strategies.

Every strategy is a plain function with the
[SelectionStrategy][outbench.algorithms.base.SelectionStrategy] signature
``(input, params, rng) -> AlgorithmResult``. Strategies never mutate the
input and iterate relays and writers in sorted order, so a fixed seed
gives byte-identical results regardless of hash randomization.

Attributes:
    SelectionStrategy: Callable type of a strategy.
    Stopwatch: Context manager measuring wall-clock milliseconds.
    greedy_cover: Budgeted set-cover loop shared by the greedy family.
    followed_coverage: relay -> followed writers, sorted by relay.
"""

from __future__ import annotations

import math
import time
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from types import TracebackType
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.models.result import AlgorithmResult
    from outbench.utils.rng import RandomSource


SelectionStrategy = Callable[["BenchmarkInput", "AlgorithmParams", "RandomSource"], "AlgorithmResult"]

#: Picks a relay among the sorted candidates, or None to fall back to the best gain.
ExplorePolicy = Callable[[list[str]], "str | None"]

#: Weighted marginal gain of a relay given how many pending writers it covers.
GainFunction = Callable[[str, int], float]


class Stopwatch:
    """Measure elapsed wall-clock time in milliseconds.

    Examples:
        ```python
        with Stopwatch() as watch:
            ...
        watch.elapsed_ms
        ```
    """

    __slots__ = ("_start", "_stop")

    def __init__(self) -> None:
        self._start = time.perf_counter()
        self._stop: float | None = None

    def __enter__(self) -> Stopwatch:
        self._start = time.perf_counter()
        self._stop = None
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._stop = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        end = self._stop if self._stop is not None else time.perf_counter()
        return (end - self._start) * 1000


def coverable_follows(data: BenchmarkInput) -> list[str]:
    """Follows with at least one declared relay, in follow order."""
    return [pk for pk in dict.fromkeys(data.follows) if data.graph.has_relays(pk)]


def followed_coverage(data: BenchmarkInput) -> dict[str, frozenset[str]]:
    """relay -> followed writers it carries, skipping relays with none; sorted by relay."""
    follow_set = set(data.follows)
    coverage: dict[str, frozenset[str]] = {}
    for relay in sorted(data.graph.relays()):
        relevant = data.graph.writers_of(relay) & follow_set
        if relevant:
            coverage[relay] = relevant
    return coverage


def budget_slots(budget: float, available: int) -> int:
    """``min(budget, available)`` as an int; an infinite budget means all."""
    if math.isinf(budget):
        return available
    return max(0, min(int(budget), available))


def greedy_cover(
    data: BenchmarkInput,
    *,
    budget: float,
    per_writer: float = math.inf,
    gain: GainFunction | None = None,
    explore: ExplorePolicy | None = None,
) -> tuple[dict[str, set[str]], list[str]]:
    """Budgeted greedy set cover with per-writer saturation.

    Each step picks the relay with the largest gain over the writers that
    are still below *per_writer* assigned relays, assigns it those writers,
    and retires writers that reach the target. Ties go to the smaller URL.

    Args:
        data: Benchmark input.
        budget: Maximum number of relays to select (``math.inf`` for none).
        per_writer: Relays per writer after which it stops counting.
        gain: Weighted gain ``(relay, marginal) -> float``; defaults to the
            marginal count. Selection stops when the best gain is ``<= 0``.
        explore: Called each step with the sorted remaining relays; a
            non-None return is selected instead of the best-gain relay.

    Returns:
        ``(writer -> assigned relays, relays in selection order)``.
    """
    pending = set(coverable_follows(data))
    coverage: dict[str, set[str]] = {
        relay: set(writers & pending) for relay, writers in followed_coverage(data).items()
    }
    coverage = {relay: writers for relay, writers in coverage.items() if writers}

    counts: Counter[str] = Counter()
    assignments: dict[str, set[str]] = {}
    selected: list[str] = []

    while pending and coverage and len(selected) < budget:
        relays = sorted(coverage)
        choice = explore(relays) if explore is not None else None
        if choice is None:
            choice = _best_relay(relays, coverage, gain)
            if choice is None:
                break

        chosen = coverage.pop(choice)
        saturated: set[str] = set()
        for writer in chosen:
            counts[writer] += 1
            assignments.setdefault(writer, set()).add(choice)
            if counts[writer] >= per_writer:
                pending.discard(writer)
                saturated.add(writer)
        selected.append(choice)

        if saturated:
            for relay in list(coverage):
                coverage[relay] -= saturated
                if not coverage[relay]:
                    del coverage[relay]

    return assignments, selected


def _best_relay(
    relays: list[str], coverage: Mapping[str, set[str]], gain: GainFunction | None
) -> str | None:
    best: str | None = None
    best_gain = -1.0
    for relay in relays:
        marginal = len(coverage[relay])
        value = float(marginal) if gain is None else gain(relay, marginal)
        if value > best_gain:
            best, best_gain = relay, value
    if best is None or best_gain <= 0:
        return None
    return best


def top_by_score(scored: Iterable[tuple[str, float]], limit: int) -> list[str]:
    """Relays with the highest scores (ties by ascending URL), at most *limit*."""
    ranked = sorted(scored, key=lambda item: (-item[1], item[0]))
    return [relay for relay, _ in ranked[: max(0, limit)]]


def partial_shuffle(items: list[str], picks: int, rng: RandomSource) -> list[str]:
    """Fisher-Yates draw of *picks* items without replacement (mutates *items*)."""
    chosen = []
    for i in range(min(picks, len(items))):
        j = i + math.floor(rng() * (len(items) - i))
        items[i], items[j] = items[j], items[i]
        chosen.append(items[i])
    return chosen


def shuffle(items: list, rng: RandomSource) -> None:
    """In-place Fisher-Yates shuffle driven by *rng*."""
    for i in range(len(items) - 1, 0, -1):
        j = math.floor(rng() * (i + 1))
        items[i], items[j] = items[j], items[i]


def prior_notes(label: str, priors: Mapping[str, object] | None, lookups: int) -> list[str]:
    if priors:
        return [f"{label}: {len(priors)} relay priors loaded, {lookups} prior lookups used"]
    return [f"{label}: cold start (uniform priors)"]
