"""
Phase 2 orchestration: baseline collection, then per-algorithm verification.

[run_phase2][outbench.verification.runner.run_phase2] owns the whole
network-facing part of a benchmark: it opens one
[RelayPool][outbench.verification.relay_pool.RelayPool], collects (or
reloads) the baseline, queries relays that algorithms picked outside the
declared set, and then scores every result offline.

Examples:
    ```python
    phase2 = await run_phase2(data, results, Phase2Config(window_seconds=3600))
    for verification in phase2.algorithms:
        print(verification.algorithm_name, verification.event_recall_rate)
    ```
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from outbench.core.exceptions import CacheError
from outbench.core.logger import format_kv_pairs
from outbench.models.constants import BaselineClassification
from outbench.models.phase2 import BaselineStats, Phase2Result, TimingStats, TimingSummary
from outbench.utils.stats import mean, median, percentile

from .baseline import check_classification, collect_baseline
from .cache import (
    cache_path,
    populate_query_cache,
    read_phase2_cache,
    relay_success,
    write_phase2_cache,
)
from .configs import Phase2Config
from .latency import profile_view_latency
from .query_cache import QueryCache
from .relay_pool import RelayPool
from .verify import verify_algorithm


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.phase2 import PoolDiagnostics, PubkeyBaseline, RelayOutcome
    from outbench.models.result import AlgorithmResult

    from .relay_pool import WebSocketLike


_logger = logging.getLogger(__name__)

MAX_DIAGNOSTIC_LINES = 10


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs))


def extra_relays(
    data: BenchmarkInput, results: Sequence[AlgorithmResult]
) -> dict[str, set[str]]:
    """Relays chosen by any algorithm but declared by no writer, with their writers."""
    declared = data.relay_to_writers
    extra: dict[str, set[str]] = {}
    for result in results:
        for relay, writers in result.relay_assignments.items():
            if relay not in declared:
                extra.setdefault(relay, set()).update(writers)
    return extra


def timing_stats(outcomes: Mapping[str, RelayOutcome], diagnostics: PoolDiagnostics) -> TimingStats | None:
    """Connect and query time summaries over connected relays."""
    connect = [o.connect_time_ms for o in outcomes.values() if o.connected]
    query = [o.query_time_ms or 0.0 for o in outcomes.values() if o.connected]
    if not connect:
        return None

    def summarize(values: list[float]) -> TimingSummary:
        ordered = sorted(values)
        return TimingSummary(median=median(ordered), p95=percentile(ordered, 0.95), mean=mean(values))

    return TimingStats(
        connect_ms=summarize(connect),
        query_ms=summarize(query),
        timeout_count=diagnostics.timeouts,
        timeout_relay_count=sum(1 for o in outcomes.values() if o.timed_out),
        total_relay_count=len(outcomes),
    )


def _report_diagnostics(diagnostics: PoolDiagnostics) -> None:
    if diagnostics.timeouts:
        _log("INFO", "phase2_subscription_timeouts", count=diagnostics.timeouts)
    if diagnostics.closed_messages:
        _log("INFO", "phase2_closed_messages", count=len(diagnostics.closed_messages))
        for line in diagnostics.closed_messages[:MAX_DIAGNOSTIC_LINES]:
            _log("DEBUG", "phase2_closed_message", detail=line)
    if diagnostics.rate_limit_notices:
        _log("WARNING", "phase2_rate_limited", notices=diagnostics.rate_limit_notices)


def _baseline_stats(
    baselines: Mapping[str, PubkeyBaseline],
    collection_time_ms: float,
    timing: TimingStats | None,
) -> BaselineStats:
    testable = [
        len(b.event_ids)
        for b in baselines.values()
        if b.classification
        in (BaselineClassification.TESTABLE_RELIABLE, BaselineClassification.TESTABLE_PARTIAL)
    ]
    queried, succeeded = relay_success(baselines)
    return BaselineStats(
        total_relays_queried=queried,
        relay_success_rate=succeeded / queried if queried else 0.0,
        total_unique_events=sum(testable),
        mean_events_per_testable_author=mean(testable),
        median_events_per_testable_author=median(sorted(testable)),
        collection_time_ms=collection_time_ms,
        timing_stats=timing,
    )


async def run_phase2(
    data: BenchmarkInput,
    results: Sequence[AlgorithmResult],
    config: Phase2Config | None = None,
    *,
    use_cache: bool = True,
    connector: Callable[[str, float], Awaitable[WebSocketLike]] | None = None,
    now: float | None = None,
) -> Phase2Result:
    """Collect ground truth and verify every result in *results*.

    Args:
        data: Benchmark input; its adjacency defines the declared relays.
        results: Algorithm outputs to verify.
        config: Collection settings.
        use_cache: Reuse and refresh the on-disk baseline cache.
        connector: WebSocket factory passed to the pool (tests).
        now: Wall-clock seconds used for ``since``; defaults to ``time.time()``.
    """
    config = config or Phase2Config()
    since = int(time.time() if now is None else now) - config.window_seconds
    writer_to_relays = data.writer_to_relays
    declared = frozenset(data.relay_to_writers)
    extra = extra_relays(data, results)
    if extra:
        _log("INFO", "phase2_extra_relays", count=len(extra), relays=",".join(sorted(extra)))

    _log(
        "INFO",
        "phase2_started",
        window=config.window_seconds,
        kinds=",".join(map(str, config.kinds)),
        concurrency=config.max_concurrent_conns,
    )

    cache = QueryCache()
    path = cache_path(
        config.cache_dir,
        data.target_pubkey,
        config.window_seconds,
        len(writer_to_relays),
        len(declared),
    )
    started = time.perf_counter()
    baselines: dict[str, PubkeyBaseline] | None = None

    async with RelayPool(config, connector=connector) as pool:
        if use_cache:
            try:
                baselines = read_phase2_cache(path)
            except CacheError as e:
                _log("DEBUG", "phase2_cache_miss", reason=str(e))
            else:
                populate_query_cache(baselines, cache)
                _log(
                    "INFO",
                    "phase2_cache_hit",
                    authors=len(baselines),
                    cached_pairs=cache.total_entries,
                )
        cache_hit = baselines is not None
        if baselines is None:
            baselines = await collect_baseline(data, pool, cache, since=since)

        if extra:
            await asyncio.gather(
                *(
                    pool.query_batched(relay, sorted(writers), cache, since=since)
                    for relay, writers in extra.items()
                )
            )

        collection_time_ms = (time.perf_counter() - started) * 1000
        diagnostics = pool.diagnostics
        outcomes = pool.outcomes

    _report_diagnostics(diagnostics)
    timing = None if cache_hit else timing_stats(outcomes, diagnostics)

    if not cache_hit and use_cache:
        try:
            write_phase2_cache(
                path,
                baselines,
                pubkey=data.target_pubkey,
                window_seconds=config.window_seconds,
                since=since,
                follow_count=len(writer_to_relays),
                relay_count=len(declared),
            )
        except OSError as e:
            _log("WARNING", "phase2_cache_write_failed", path=path, error=str(e))

    counts = check_classification(baselines, len(writer_to_relays))
    testable_reliable = counts[BaselineClassification.TESTABLE_RELIABLE]

    replay = None if cache_hit else outcomes
    verifications = tuple(
        verify_algorithm(
            result,
            baselines,
            cache,
            declared | frozenset(extra),
            declared,
            outcomes=replay,
            eose_timeout_ms=config.eose_timeout_ms,
            concurrency=config.max_concurrent_conns,
        )
        for result in results
    )
    for verification in verifications:
        if verification.testable_reliable_authors != testable_reliable:
            _log(
                "WARNING",
                "testable_author_mismatch",
                algorithm=verification.algorithm_name,
                got=verification.testable_reliable_authors,
                expected=testable_reliable,
            )

    profile_view = None if replay is None else profile_view_latency(data, baselines, cache, replay)

    _log(
        "INFO",
        "phase2_completed",
        algorithms=len(verifications),
        testable_reliable=testable_reliable,
        from_cache=cache_hit,
        elapsed_ms=round(collection_time_ms),
    )
    return Phase2Result(
        options=config.to_options(),
        since=since,
        total_authors_with_relay_data=len(writer_to_relays),
        testable_reliable_authors=testable_reliable,
        testable_partial_authors=counts[BaselineClassification.TESTABLE_PARTIAL],
        authors_zero_baseline=counts[BaselineClassification.ZERO_BASELINE],
        authors_unreliable_baseline=counts[BaselineClassification.UNRELIABLE],
        baseline_stats=_baseline_stats(baselines, collection_time_ms, timing),
        algorithms=verifications,
        profile_view_latency=profile_view,
        from_cache=cache_hit,
        baselines=baselines,
        query_cache=cache,
    )
