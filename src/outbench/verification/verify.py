"""
Recall of algorithm assignments against the Phase 2 baseline.

Verification reads only the [QueryCache][outbench.verification.query_cache.QueryCache]
filled during collection: for each testable author, the ids its assigned
relays returned are intersected with its baseline. Relays outside the
baseline are reported and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from outbench.core.logger import format_kv_pairs
from outbench.models.constants import BaselineClassification
from outbench.models.phase2 import AlgorithmVerification

from .latency import algorithm_latency


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from outbench.models.phase2 import PubkeyBaseline, RelayOutcome
    from outbench.models.result import AlgorithmResult

    from .query_cache import QueryCache


_logger = logging.getLogger(__name__)


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs))


@dataclass(slots=True)
class _Recall:
    total_baseline: int = 0
    total_found: int = 0
    authors_with_events: int = 0
    per_author: list[float] = field(default_factory=list)


def _recall(
    authors: Sequence[str],
    result: AlgorithmResult,
    baselines: Mapping[str, PubkeyBaseline],
    cache: QueryCache,
    skipped: frozenset[str],
) -> _Recall:
    recall = _Recall()
    for pubkey in authors:
        baseline = baselines[pubkey]
        recall.total_baseline += len(baseline.event_ids)
        assigned = result.pubkey_assignments.get(pubkey)
        if not assigned:
            recall.per_author.append(0.0)
            continue
        found = cache.for_pubkey(pubkey, (r for r in assigned if r not in skipped))
        hits = len(found & baseline.event_ids)
        recall.total_found += hits
        if hits:
            recall.authors_with_events += 1
        recall.per_author.append(hits / len(baseline.event_ids) if baseline.event_ids else 0.0)
    recall.per_author.sort()
    return recall


def _rate(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


def verify_algorithm(
    result: AlgorithmResult,
    baselines: Mapping[str, PubkeyBaseline],
    cache: QueryCache,
    baseline_relays: Iterable[str],
    declared_relays: Iterable[str],
    *,
    outcomes: Mapping[str, RelayOutcome] | None = None,
    eose_timeout_ms: float = 15000.0,
    concurrency: int = 20,
) -> AlgorithmVerification:
    """Score *result* against *baselines* without any network access.

    Args:
        result: Algorithm output to verify.
        baselines: Per-author ground truth.
        cache: Ids each relay returned per author during collection.
        baseline_relays: Every relay queried (declared plus extra).
        declared_relays: Relays present in the input adjacency. Only these
            count toward ``selected_relay_success_rate``.
        outcomes: Recorded relay outcomes; when given (fresh runs) the
            latency of the selected relay set is replayed.
        eose_timeout_ms: EOSE timeout used during collection.
        concurrency: Connection concurrency used during collection.
    """
    headline = [pk for pk, b in baselines.items() if b.classification == BaselineClassification.TESTABLE_RELIABLE]
    partial = [pk for pk, b in baselines.items() if b.classification == BaselineClassification.TESTABLE_PARTIAL]
    secondary = headline + partial

    queried = frozenset(baseline_relays)
    declared = frozenset(declared_relays)
    selected = sorted(result.relay_assignments)
    out_of_baseline = tuple(relay for relay in selected if relay not in queried)
    if out_of_baseline:
        _log(
            "WARNING",
            "out_of_baseline_relays",
            algorithm=result.name,
            count=len(out_of_baseline),
        )
    skipped = frozenset(out_of_baseline)

    primary = _recall(headline, result, baselines, cache, skipped)
    incl_partial = _recall(secondary, result, baselines, cache, skipped)

    succeeded_anywhere = frozenset().union(*(b.relays_succeeded for b in baselines.values()))
    in_baseline = [r for r in selected if r not in skipped and r in declared]
    success_rate = (
        sum(1 for r in in_baseline if r in succeeded_anywhere) / len(in_baseline)
        if in_baseline
        else None
    )

    latency = None
    if outcomes is not None:
        latency = algorithm_latency(
            result, baselines, cache, outcomes,
            eose_timeout_ms=eose_timeout_ms, concurrency=concurrency,
        )

    return AlgorithmVerification(
        algorithm_name=result.name,
        event_recall_rate=_rate(primary.total_found, primary.total_baseline),
        author_recall_rate=_rate(primary.authors_with_events, len(headline)),
        event_recall_inc_partial=_rate(incl_partial.total_found, incl_partial.total_baseline),
        author_recall_inc_partial=_rate(incl_partial.authors_with_events, len(secondary)),
        selected_relay_success_rate=success_rate,
        total_baseline_events_reliable=primary.total_baseline,
        total_baseline_events_incl_partial=incl_partial.total_baseline,
        total_found_events_reliable=primary.total_found,
        total_found_events_incl_partial=incl_partial.total_found,
        testable_reliable_authors=len(headline),
        testable_partial_authors=len(partial),
        authors_with_events=primary.authors_with_events,
        out_of_baseline_relays=out_of_baseline,
        per_author_recall_rates=tuple(primary.per_author),
        latency=latency,
    )
