"""
Derived metric records.

[AlgorithmMetrics][outbench.models.metrics.AlgorithmMetrics] is a
read-only projection of one
[AlgorithmResult][outbench.models.result.AlgorithmResult]; it is
recomputed on demand and never persisted. For stochastic strategies the
numeric fields listed in ``NUMERIC_METRIC_FIELDS`` are replaced by their
across-run means and the spread is kept in
[StochasticStats][outbench.models.metrics.StochasticStats].
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Final

from pydantic.alias_generators import to_camel


NUMERIC_METRIC_FIELDS: Final[tuple[str, ...]] = (
    "total_relays_selected",
    "assignment_coverage",
    "covered_pubkeys",
    "orphaned_pubkeys",
    "structural_orphans",
    "algorithm_orphans",
    "avg_relays_per_pubkey",
    "median_relays_per_pubkey",
    "pubkeys_per_relay",
    "target_attainment_rate",
    "top1_relay_share",
    "top5_relay_share",
    "hhi",
    "gini",
    "execution_time_ms",
)


def _camel_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(k): v for k, v in data.items()}


@dataclass(frozen=True, slots=True)
class Distribution:
    """Summary of a numeric distribution (percentiles use a floor index)."""

    min: float = 0
    max: float = 0
    mean: float = 0
    median: float = 0
    p90: float = 0
    p99: float = 0

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class StochasticStats:
    """Spread of the numeric metrics over repeated seeded runs.

    Attributes:
        runs: Number of runs (seeds ``seed`` .. ``seed + runs - 1``).
        seed: First seed.
        mean: Per-field mean, keyed by snake_case field name.
        stddev: Per-field population standard deviation.
        ci95_lower: ``mean - 1.96 * stddev / sqrt(runs)``.
        ci95_upper: ``mean + 1.96 * stddev / sqrt(runs)``.
    """

    runs: int
    seed: int
    mean: dict[str, float] = field(default_factory=dict)
    stddev: dict[str, float] = field(default_factory=dict)
    ci95_lower: dict[str, float] = field(default_factory=dict)
    ci95_upper: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs": self.runs,
            "seed": self.seed,
            "mean": _camel_keys(self.mean),
            "stddev": _camel_keys(self.stddev),
            "ci95": {
                "lower": _camel_keys(self.ci95_lower),
                "upper": _camel_keys(self.ci95_upper),
            },
        }


@dataclass(frozen=True, slots=True)
class AlgorithmMetrics:
    """Coverage, load, and concentration metrics for one result.

    ``structural_orphans + algorithm_orphans == orphaned_pubkeys`` always
    holds, and every ratio is ``0`` when its denominator is zero.
    """

    name: str
    total_relays_selected: float = 0
    assignment_coverage: float = 0
    covered_pubkeys: float = 0
    orphaned_pubkeys: float = 0
    structural_orphans: float = 0
    algorithm_orphans: float = 0
    avg_relays_per_pubkey: float = 0
    median_relays_per_pubkey: float = 0
    pubkeys_per_relay: float = 0
    pubkey_relay_count_distribution: dict[int, int] = field(default_factory=dict)
    relay_load_distribution: Distribution = field(default_factory=Distribution)
    target_attainment_rate: float = 0
    top1_relay_share: float = 0
    top5_relay_share: float = 0
    hhi: float = 0
    gini: float = 0
    execution_time_ms: float = 0
    stochastic: StochasticStats | None = None

    def numeric_values(self) -> dict[str, float]:
        return {name: float(getattr(self, name)) for name in NUMERIC_METRIC_FIELDS}

    def with_means(self, stats: StochasticStats) -> AlgorithmMetrics:
        """Overwrite the numeric fields with *stats* means and attach *stats*."""
        return replace(self, stochastic=stats, **stats.mean)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        for name in NUMERIC_METRIC_FIELDS:
            data[to_camel(name)] = getattr(self, name)
        data["pubkeyRelayCountDistribution"] = {
            str(k): v for k, v in sorted(self.pubkey_relay_count_distribution.items())
        }
        data["relayLoadDistribution"] = self.relay_load_distribution.to_dict()
        if self.stochastic is not None:
            data["stochastic"] = self.stochastic.to_dict()
        return data
