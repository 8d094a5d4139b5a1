"""
Phase 2 ground-truth collection.

Every relay in the input's adjacency is queried for all of its writers
through one [RelayPool][outbench.verification.relay_pool.RelayPool]. An
author's baseline is the union of event ids from the declared relays that
both connected and reached EOSE; the four-way classification then says how
far that baseline can be trusted.

See Also:
    [PubkeyBaseline][outbench.models.phase2.PubkeyBaseline]: The per-author
        record and its classification rule.
    [verify_algorithm][outbench.verification.verify.verify_algorithm]:
        Scores assignments against these baselines.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import TYPE_CHECKING, Any

from outbench.core.logger import format_kv_pairs
from outbench.models.phase2 import PubkeyBaseline


if TYPE_CHECKING:
    from collections.abc import Mapping

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.phase2 import RelayOutcome

    from .query_cache import QueryCache
    from .relay_pool import RelayPool


_logger = logging.getLogger(__name__)

PROGRESS_EVERY = 50


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs))


def build_baselines(
    writer_to_relays: Mapping[str, frozenset[str]],
    outcomes: Mapping[str, RelayOutcome],
    reached_eose: Mapping[str, bool],
    cache: QueryCache,
) -> dict[str, PubkeyBaseline]:
    """Classify every writer from recorded relay outcomes and cached ids.

    A relay counts as succeeded for a writer only if its outcome says
    connected and the relay's batched query reached EOSE.
    """
    baselines: dict[str, PubkeyBaseline] = {}
    for pubkey, declared in writer_to_relays.items():
        event_ids: set[str] = set()
        succeeded: set[str] = set()
        failed: set[str] = set()
        with_events: set[str] = set()

        for relay in declared:
            outcome = outcomes.get(relay)
            if outcome is not None and outcome.connected and reached_eose.get(relay, False):
                succeeded.add(relay)
                ids = cache.get(relay, pubkey)
                if ids:
                    with_events.add(relay)
                    event_ids |= ids
            else:
                failed.add(relay)

        queried = len(declared)
        success_rate = len(succeeded) / queried if queried else 0.0
        reliability, classification = PubkeyBaseline.classify(bool(event_ids), success_rate)
        baselines[pubkey] = PubkeyBaseline(
            pubkey=pubkey,
            event_ids=frozenset(event_ids),
            relays_queried=queried,
            relays_succeeded=frozenset(succeeded),
            relays_failed=frozenset(failed),
            relays_with_events=frozenset(with_events),
            reliability=reliability,
            classification=classification,
        )
    return baselines


def check_classification(baselines: Mapping[str, PubkeyBaseline], expected_total: int) -> Counter:
    """Recount classifications from each baseline's own outcome fields.

    A stored classification that disagrees with its event ids and relay
    success rate is logged and the derived class is counted instead. Also
    warns when the counts do not sum to *expected_total*.
    """
    counts: Counter = Counter()
    for pubkey, baseline in baselines.items():
        queried = baseline.relays_queried
        success_rate = len(baseline.relays_succeeded) / queried if queried else 0.0
        _, derived = PubkeyBaseline.classify(bool(baseline.event_ids), success_rate)
        if derived != baseline.classification:
            _log(
                "WARNING",
                "classification_inconsistent",
                pubkey=pubkey,
                stored=baseline.classification,
                derived=derived,
            )
        counts[derived] += 1
    total = sum(counts.values())
    if total != expected_total:
        _log("WARNING", "classification_mismatch", total=total, expected=expected_total)
    return counts


async def collect_baseline(
    data: BenchmarkInput,
    pool: RelayPool,
    cache: QueryCache,
    *,
    since: int,
) -> dict[str, PubkeyBaseline]:
    """Query every declared relay and build one baseline per writer.

    Relays run concurrently under the pool's semaphore; completion order
    does not affect the result.
    """
    relay_to_writers = data.relay_to_writers
    relays = [relay for relay, writers in relay_to_writers.items() if writers]
    _log(
        "INFO",
        "baseline_started",
        relays=len(relays),
        authors=len(data.writer_to_relays),
        since=since,
    )

    reached_eose: dict[str, bool] = {}
    completed = 0

    async def query(relay: str) -> None:
        nonlocal completed
        result = await pool.query_batched(
            relay, sorted(relay_to_writers[relay]), cache, since=since
        )
        reached_eose[relay] = result.reached_eose
        completed += 1
        if completed % PROGRESS_EVERY == 0 or completed == len(relays):
            _log("INFO", "baseline_progress", completed=completed, total=len(relays))

    await asyncio.gather(*(query(relay) for relay in relays))

    baselines = build_baselines(data.writer_to_relays, pool.outcomes, reached_eose, cache)
    _log(
        "INFO",
        "baseline_collected",
        authors=len(baselines),
        relays_eose=sum(1 for v in reached_eose.values() if v),
        cached_pairs=cache.total_entries,
    )
    return baselines
