"""
Metrics engine.

[compute_metrics][outbench.evaluation.compute_metrics] projects one
[AlgorithmResult][outbench.models.result.AlgorithmResult] onto coverage,
load and concentration figures. It is pure: the same inputs always give
the same [AlgorithmMetrics][outbench.models.metrics.AlgorithmMetrics],
and every ratio is ``0`` (never NaN) when its denominator is zero.

Orphans are split by cause. A *structural* orphan is an uncovered follow
that declares no relay at all; an *algorithm* orphan is an uncovered
follow that had relays the strategy chose not to use. The two always sum
to the result's orphan count, including for broadcast baselines that
cover writers without relay lists.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import TYPE_CHECKING

from outbench.models.metrics import AlgorithmMetrics, Distribution
from outbench.utils.stats import mean, median, percentile


if TYPE_CHECKING:
    from collections.abc import Sequence

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams
    from outbench.models.result import AlgorithmResult


logger = logging.getLogger(__name__)


def gini(values: Sequence[float]) -> float:
    """Gini coefficient ``sum((2i - n - 1) * x_i) / (n * sum(x))`` over ascending values."""
    n = len(values)
    if n <= 1:
        return 0.0
    ordered = sorted(values)
    total = math.fsum(ordered)
    if total == 0:
        return 0.0
    weighted = math.fsum((2 * (i + 1) - n - 1) * x for i, x in enumerate(ordered))
    return weighted / (n * total)


def hhi(loads: Sequence[float]) -> float:
    """Herfindahl-Hirschman index of the load shares."""
    total = math.fsum(loads)
    if total == 0:
        return 0.0
    return math.fsum((load / total) ** 2 for load in loads)


def distribution(values: Sequence[float]) -> Distribution:
    ordered = sorted(values)
    if not ordered:
        return Distribution()
    return Distribution(
        min=ordered[0],
        max=ordered[-1],
        mean=mean(ordered),
        median=median(ordered),
        p90=percentile(ordered, 0.9),
        p99=percentile(ordered, 0.99),
    )


def _top_share(result: AlgorithmResult, ranked: Sequence[str], top: int, covered: int) -> float:
    reached: set[str] = set()
    for relay in ranked[:top]:
        reached |= result.relay_assignments[relay]
    return len(reached) / covered


def compute_metrics(
    result: AlgorithmResult, data: BenchmarkInput, params: AlgorithmParams
) -> AlgorithmMetrics:
    """Score *result* against the input it was computed from.

    Args:
        result: Strategy output.
        data: The input the strategy ran on.
        params: Parameters used; only the per-writer target is read, for
            target attainment.
    """
    total = len(dict.fromkeys(data.follows))
    covered = len(result.pubkey_assignments)

    violations = result.partition_violations(data.follows)
    if violations:
        logger.warning(
            "result_partition_violation algorithm=%s pubkeys=%s", result.name, len(violations)
        )

    structural = sum(1 for pk in result.orphaned_pubkeys if not data.graph.has_relays(pk))
    algorithmic = len(result.orphaned_pubkeys) - structural

    relay_counts = [len(relays) for relays in result.pubkey_assignments.values()]
    loads = [len(writers) for writers in result.relay_assignments.values()]

    target = params.per_writer_target()
    attained = sum(1 for count in relay_counts if count >= target)

    top1 = top5 = concentration = inequality = 0.0
    if covered and result.relay_assignments:
        ranked = sorted(
            result.relay_assignments, key=lambda r: (-len(result.relay_assignments[r]), r)
        )
        top1 = _top_share(result, ranked, 1, covered)
        top5 = _top_share(result, ranked, 5, covered)
        concentration = hhi(loads)
        inequality = gini(loads)

    return AlgorithmMetrics(
        name=result.name,
        total_relays_selected=len(result.relay_assignments),
        assignment_coverage=covered / total if total else 0.0,
        covered_pubkeys=covered,
        orphaned_pubkeys=len(result.orphaned_pubkeys),
        structural_orphans=structural,
        algorithm_orphans=algorithmic,
        avg_relays_per_pubkey=mean(relay_counts),
        median_relays_per_pubkey=median(sorted(relay_counts)),
        pubkeys_per_relay=mean(loads),
        pubkey_relay_count_distribution=dict(sorted(Counter(relay_counts).items())),
        relay_load_distribution=distribution(loads),
        target_attainment_rate=attained / covered if covered else 0.0,
        top1_relay_share=top1,
        top5_relay_share=top5,
        hhi=concentration,
        gini=inequality,
        execution_time_ms=result.execution_time_ms,
    )
