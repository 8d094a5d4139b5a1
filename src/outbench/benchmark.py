"""
Benchmark orchestration: Regime A, Regime B, budget sweep and Phase 2.

A run takes one [BenchmarkInput][outbench.models.benchmark.BenchmarkInput]
and a [BenchmarkConfig][outbench.benchmark.BenchmarkConfig] and produces a
[BenchmarkReport][outbench.benchmark.BenchmarkReport]:

- **Regime A**: every algorithm under the same connection budget.
- **Regime B**: every algorithm under the same per-writer relay target,
  each keeping its own default connection budget (skipped in fast mode).
- **Sweep**: assignment coverage of every algorithm across connection
  budgets, from 5 relays to unlimited.
- **Phase 2** (optional): verification of the Regime A assignments against
  relay-served events, followed by Thompson Sampling prior learning.

Stochastic algorithms run ``runs`` times over consecutive seeds and report
means; the sweep and Phase 2 use a single run.

Examples:
    ```python
    config = BenchmarkConfig.from_yaml("config/benchmark.yaml")
    report = await run_benchmark(BenchmarkInput.from_snapshot(snapshot), config)
    print(report.output_path)
    ```
"""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from outbench.algorithms import (
    THOMPSON_IDS,
    get_algorithms,
    run_algorithm,
    run_stochastic,
)
from outbench.core.exceptions import ConfigurationError
from outbench.core.logger import Logger
from outbench.core.metrics import MetricsConfig
from outbench.core.yaml import load_yaml
from outbench.evaluation import compute_metrics
from outbench.learning import load_relay_scores, save_relay_scores, update_relay_scores
from outbench.models.constants import FilterProfile
from outbench.models.params import DEFAULT_PER_WRITER_TARGET, AlgorithmParams
from outbench.utils.rng import mulberry32, resolve_seed
from outbench.verification import Phase2Config, run_phase2


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from outbench.algorithms import AlgorithmEntry
    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.metrics import AlgorithmMetrics
    from outbench.models.params import BetaPrior
    from outbench.models.phase2 import Phase2Result
    from outbench.models.relay_score import RelayScoreDB
    from outbench.models.result import AlgorithmResult
    from outbench.nip66.cache import Nip66DataCache
    from outbench.verification.relay_pool import WebSocketLike


logger = Logger("benchmark")

SWEEP_BUDGETS_FULL: tuple[float, ...] = (5, 10, 15, 20, 25, 28, 30, 50, 100, math.inf)
SWEEP_BUDGETS_FAST: tuple[float, ...] = (10, 20, 28, 50, math.inf)
FAST_MAX_RUNS = 3
SUMMARY_TOP_RELAYS = 20
PHASE2_SEED = 0


def budget_label(budget: float) -> str:
    return "unlimited" if math.isinf(budget) else str(int(budget))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class BenchmarkConfig(BaseModel):
    """Settings for one benchmark run.

    Attributes:
        algorithms: Registry ids to run, or ``["all"]``.
        max_connections: Regime A connection budget.
        relays_per_user: Per-writer target; overrides algorithm defaults in
            Regime A and the sweep, and sets the Regime B target.
        runs: Repetitions of stochastic algorithms (capped at 3 in fast mode).
        seed: First PRNG seed, or ``"random"``.
        sweep: Also run the connection-budget sweep.
        fast: Reduced sweep, fewer runs, no Regime B.
        verify: Run Phase 2 verification and prior learning.
        use_phase2_cache: Reuse the on-disk Phase 2 baseline.
        full_assignments: Write every assignment to JSON instead of the
            heaviest relays only.
        write_json: Write the JSON report to ``output_dir``.
        output_dir: Directory for JSON reports.
        scores_dir: Directory for relay-score files.
        filter_profile: Relay URL filter the input was built with; part of
            the relay-score key.
        phase2: Phase 2 collection settings.
        metrics: Prometheus endpoint settings.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    algorithms: tuple[str, ...] = ("all",)
    max_connections: int = Field(default=20, ge=1, le=10_000)
    relays_per_user: int | None = Field(default=None, ge=1, le=50)
    runs: int = Field(default=10, ge=1, le=1000)
    seed: int | Literal["random"] = 0
    sweep: bool = False
    fast: bool = False
    verify: bool = False
    use_phase2_cache: bool = True
    full_assignments: bool = False
    write_json: bool = True
    output_dir: Path = Path("results")
    scores_dir: Path = Path(".cache")
    filter_profile: FilterProfile = FilterProfile.STRICT
    phase2: Phase2Config = Field(default_factory=Phase2Config)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> Self:
        """Load and validate a YAML configuration file.

        Raises:
            ConfigurationError: If the file is not valid YAML or fails
                validation.
        """
        try:
            return cls.model_validate(load_yaml(config_path))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid benchmark config {config_path}: {e}") from e

    @property
    def effective_runs(self) -> int:
        return min(self.runs, FAST_MAX_RUNS) if self.fast else self.runs

    @property
    def sweep_budgets(self) -> tuple[float, ...]:
        return SWEEP_BUDGETS_FAST if self.fast else SWEEP_BUDGETS_FULL


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class BenchmarkReport:
    """Everything one benchmark run produced."""

    seed: int
    regime_a_metrics: list[AlgorithmMetrics] = field(default_factory=list)
    regime_a_results: list[AlgorithmResult] = field(default_factory=list)
    regime_b_metrics: list[AlgorithmMetrics] | None = None
    regime_b_target: int | None = None
    sweep: dict[str, dict[str, float]] | None = None
    phase2: Phase2Result | None = None
    relay_scores: RelayScoreDB | None = None
    output_path: Path | None = None


def build_json_output(
    data: BenchmarkInput,
    report: BenchmarkReport,
    config: BenchmarkConfig,
) -> dict[str, Any]:
    """``{meta, metrics, results[, regimeB, sweep, phase2]}`` report document."""
    top = None if config.full_assignments else SUMMARY_TOP_RELAYS
    output: dict[str, Any] = {
        "meta": {
            "targetPubkey": data.target_pubkey,
            "fetchedAt": data.fetched_at,
            "follows": len(data.follows),
            "followsMissingRelayList": len(data.follows_missing_relay_list),
            "fetchMeta": data.fetch_meta.model_dump(mode="json", by_alias=True),
            "seed": report.seed,
            "runs": config.effective_runs,
            "maxConnections": config.max_connections,
            "filterProfile": str(config.filter_profile),
        },
        "metrics": [m.to_dict() for m in report.regime_a_metrics],
        "results": [r.to_dict(top_relays=top) for r in report.regime_a_results],
    }
    if report.regime_b_metrics is not None:
        output["regimeB"] = {
            "target": report.regime_b_target,
            "metrics": [m.to_dict() for m in report.regime_b_metrics],
        }
    if report.sweep is not None:
        output["sweep"] = report.sweep
    if report.phase2 is not None:
        output["phase2"] = report.phase2.to_dict()
    return output


def write_json_output(output: dict[str, Any], target_pubkey: str, directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{target_pubkey[:16]}_{int(time.time() * 1000)}.json"
    path.write_text(json.dumps(output, indent=2, default=str), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Regimes
# ---------------------------------------------------------------------------


def regime_params(
    entry: AlgorithmEntry,
    *,
    max_connections: float | None,
    relays_per_user: int | None,
    priors: dict[str, BetaPrior] | None = None,
) -> AlgorithmParams:
    params = entry.defaults
    if max_connections is not None:
        params = params.model_copy(update={"max_connections": max_connections})
    if relays_per_user is not None:
        params = params.with_per_writer_target(relays_per_user)
    if priors and entry.id in THOMPSON_IDS:
        params = params.model_copy(update={"relay_priors": priors})
    return params


def run_entry(
    entry: AlgorithmEntry,
    data: BenchmarkInput,
    params: AlgorithmParams,
    *,
    seed: int,
    runs: int,
) -> tuple[AlgorithmResult, AlgorithmMetrics]:
    """Run *entry* once, or *runs* times if it is stochastic."""
    if entry.stochastic and runs > 1:
        run = run_stochastic(entry, data, params, seed, runs)
        return run.result, run.metrics
    result = run_algorithm(entry, data, params, mulberry32(seed))
    return result, compute_metrics(result, data, params)


def run_regime_a(
    data: BenchmarkInput,
    entries: Sequence[AlgorithmEntry],
    config: BenchmarkConfig,
    seed: int,
    priors: dict[str, BetaPrior] | None = None,
) -> tuple[list[AlgorithmResult], list[AlgorithmMetrics]]:
    results: list[AlgorithmResult] = []
    metrics: list[AlgorithmMetrics] = []
    for entry in entries:
        params = regime_params(
            entry,
            max_connections=config.max_connections,
            relays_per_user=config.relays_per_user,
            priors=priors,
        )
        result, m = run_entry(entry, data, params, seed=seed, runs=config.effective_runs)
        results.append(result)
        metrics.append(m)
    logger.info("regime_a_completed", algorithms=len(entries), max_connections=config.max_connections)
    return results, metrics


def run_regime_b(
    data: BenchmarkInput,
    entries: Sequence[AlgorithmEntry],
    config: BenchmarkConfig,
    seed: int,
) -> tuple[int, list[AlgorithmMetrics]]:
    target = config.relays_per_user or DEFAULT_PER_WRITER_TARGET
    metrics = []
    for entry in entries:
        params = entry.defaults.with_per_writer_target(target)
        _, m = run_entry(entry, data, params, seed=seed, runs=config.effective_runs)
        metrics.append(m)
    logger.info("regime_b_completed", algorithms=len(entries), target=target)
    return target, metrics


def run_sweep(
    data: BenchmarkInput,
    entries: Sequence[AlgorithmEntry],
    config: BenchmarkConfig,
    seed: int,
) -> dict[str, dict[str, float]]:
    """Assignment coverage per algorithm name and budget label (single run each)."""
    rows: dict[str, dict[str, float]] = {}
    for entry in entries:
        row: dict[str, float] = {}
        for budget in config.sweep_budgets:
            params = regime_params(
                entry, max_connections=budget, relays_per_user=config.relays_per_user
            )
            result = run_algorithm(entry, data, params, mulberry32(seed))
            row[budget_label(budget)] = compute_metrics(result, data, params).assignment_coverage
        rows[entry.name] = row
    logger.info("sweep_completed", algorithms=len(entries), budgets=len(config.sweep_budgets))
    return rows


def phase2_results(
    data: BenchmarkInput,
    entries: Sequence[AlgorithmEntry],
    regime_a: Sequence[AlgorithmResult],
    config: BenchmarkConfig,
    priors: dict[str, BetaPrior] | None = None,
) -> list[AlgorithmResult]:
    """Regime A results with stochastic entries replaced by one seed-0 run."""
    results = []
    for entry, result in zip(entries, regime_a, strict=True):
        if entry.stochastic:
            params = regime_params(
                entry,
                max_connections=config.max_connections,
                relays_per_user=config.relays_per_user,
                priors=priors,
            )
            single = run_algorithm(entry, data, params, mulberry32(PHASE2_SEED))
            result = single.renamed(f"{single.name} (seed={PHASE2_SEED}, single run)")
        results.append(result)
    return results


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run_benchmark(
    data: BenchmarkInput,
    config: BenchmarkConfig | None = None,
    *,
    nip66_cache: Nip66DataCache | None = None,
    connector: Callable[[str, float], Awaitable[WebSocketLike]] | None = None,
) -> BenchmarkReport:
    """Run every configured regime on *data*.

    Raises:
        ConfigurationError: If an algorithm id is unknown.
    """
    config = config or BenchmarkConfig()
    entries = get_algorithms(config.algorithms, nip66_cache=nip66_cache)
    seed = resolve_seed(config.seed)
    report = BenchmarkReport(seed=seed)
    logger.info(
        "benchmark_started",
        target=data.target_pubkey[:16],
        follows=len(data.follows),
        relays=len(data.relay_to_writers),
        algorithms=len(entries),
        seed=seed,
        runs=config.effective_runs,
    )

    duality = data.graph.duality_violations()
    if duality:
        logger.warning("adjacency_duality_mismatch", pairs=len(duality))

    thompson = next((e for e in entries if e.id in THOMPSON_IDS), None)
    filter_mode = str(config.filter_profile)
    scores = None
    if thompson is not None and config.verify:
        scores = load_relay_scores(
            data.target_pubkey,
            config.phase2.window_seconds,
            filter_mode=filter_mode,
            algorithm_id=thompson.id,
            directory=config.scores_dir,
        )
    priors = scores.priors() if scores is not None and scores.relays else None
    if priors:
        logger.info("thompson_priors_loaded", relays=len(priors), session=scores.session_count)

    if config.sweep:
        report.sweep = run_sweep(data, entries, config, seed)

    report.regime_a_results, report.regime_a_metrics = run_regime_a(
        data, entries, config, seed, priors
    )
    if not config.fast:
        report.regime_b_target, report.regime_b_metrics = run_regime_b(data, entries, config, seed)

    if config.verify:
        verify_results = phase2_results(data, entries, report.regime_a_results, config, priors)
        report.phase2 = await run_phase2(
            data,
            verify_results,
            config.phase2,
            use_cache=config.use_phase2_cache,
            connector=connector,
        )
        if thompson is not None and scores is not None:
            learned = verify_results[entries.index(thompson)]
            update_relay_scores(
                scores, learned, report.phase2.baselines, report.phase2.query_cache
            )
            save_relay_scores(
                scores,
                filter_mode=filter_mode,
                algorithm_id=thompson.id,
                directory=config.scores_dir,
            )
            report.relay_scores = scores
            scored = list(scores.relays.values())
            logger.info(
                "thompson_learning_state",
                session=scores.session_count,
                relays=len(scored),
                strong_preference=sum(1 for e in scored if e.alpha > 5),
                learned_to_avoid=sum(1 for e in scored if e.beta > 5),
            )

    if config.write_json:
        report.output_path = write_json_output(
            build_json_output(data, report, config), data.target_pubkey, config.output_dir
        )
        logger.info("results_written", path=report.output_path)
    return report
