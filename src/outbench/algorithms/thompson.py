"""
Thompson Sampling strategies.

Each strategy replaces a uniform or lexicographic ranking with a draw from
the relay's Beta(alpha, beta) delivery posterior, taken from
``params.relay_priors``. Without a prior the draw is ``Beta(1, 1)``,
which is a single uniform draw, so a cold start behaves like the
untrained baseline.

See Also:
    [update_relay_scores][outbench.learning.relay_scores.update_relay_scores]:
        Produces the priors these strategies consume.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from outbench.models.constants import DITTO_APP_RELAYS
from outbench.models.result import AlgorithmResult
from outbench.utils.sampling import sample_beta

from .base import Stopwatch, prior_notes, top_by_score


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from outbench.models.benchmark import BenchmarkInput
    from outbench.models.params import AlgorithmParams, BetaPrior
    from outbench.utils.rng import RandomSource


DEFAULT_LIMIT = 3

THOMPSON_IDS: frozenset[str] = frozenset({"welshman-thompson", "fd-thompson"})


class _PriorSampler:
    """Draw per-relay Beta samples and count how many used a stored prior."""

    __slots__ = ("lookups", "priors", "rng")

    def __init__(self, priors: Mapping[str, BetaPrior] | None, rng: RandomSource) -> None:
        self.priors = priors or {}
        self.rng = rng
        self.lookups = 0

    def __call__(self, relay: str) -> float:
        prior = self.priors.get(relay)
        if prior is None:
            return sample_beta(1.0, 1.0, self.rng)
        self.lookups += 1
        return sample_beta(prior.alpha, prior.beta, self.rng)

    def rank(self, relays: Iterable[str], limit: int, weight: Mapping[str, float] | None = None) -> list[str]:
        scored = []
        for relay in sorted(relays):
            factor = weight[relay] if weight is not None else 1.0
            scored.append((relay, factor * self(relay)))
        return top_by_score(scored, limit)


def welshman_thompson(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Welshman scoring with the uniform draw replaced by a Beta posterior sample."""
    limit = next(
        (v for v in (params.relay_limit, params.max_relays_per_user) if v is not None),
        DEFAULT_LIMIT,
    )
    sampler = _PriorSampler(params.relay_priors, rng)
    with Stopwatch() as watch:
        popularity = {
            relay: 1 + math.log(len(data.graph.writers_of(relay)) or 1)
            for relay in data.graph.relays()
        }
        assignments = {
            pk: sampler.rank(data.graph.relays_of(pk), limit, popularity) for pk in data.follows
        }
    return AlgorithmResult.from_pubkey_assignments(
        "Welshman+Thompson",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=prior_notes("Thompson Sampling", params.relay_priors, sampler.lookups),
    )


def fd_thompson(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Filter decomposition ranked purely by Beta samples (no popularity weight)."""
    limit = next(
        (v for v in (params.write_limit, params.relay_limit) if v is not None),
        DEFAULT_LIMIT,
    )
    sampler = _PriorSampler(params.relay_priors, rng)
    with Stopwatch() as watch:
        assignments = {pk: sampler.rank(data.graph.relays_of(pk), limit) for pk in data.follows}
    return AlgorithmResult.from_pubkey_assignments(
        "FD+Thompson",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=prior_notes("FD+Thompson", params.relay_priors, sampler.lookups),
    )


def ditto_outbox(
    data: BenchmarkInput, params: AlgorithmParams, rng: RandomSource
) -> AlgorithmResult:
    """Broadcast to the four Ditto app relays plus Thompson-ranked outbox relays.

    Every follow, including ones without a relay list, is routed to all
    app relays, so the strategy never orphans anyone. Writers with
    declared relays outside the app set also get up to ``write_limit`` of
    them.
    """
    write_limit = max(0, int(params.write_limit or DEFAULT_LIMIT))
    sampler = _PriorSampler(params.relay_priors, rng)
    app_relays = frozenset(DITTO_APP_RELAYS)

    with Stopwatch() as watch:
        assignments: dict[str, set[str]] = {}
        with_outbox = 0
        for pubkey in data.follows:
            chosen = set(app_relays)
            candidates = data.graph.relays_of(pubkey) - app_relays
            if candidates:
                chosen.update(sampler.rank(candidates, write_limit))
                with_outbox += 1
            assignments[pubkey] = chosen

    total = len(data.follows)
    notes = [
        f"App relays: {len(DITTO_APP_RELAYS)} (broadcast to all {total} authors)",
        f"Outbox: {with_outbox}/{total} authors got additional write relays (top {write_limit})",
        *prior_notes("Thompson Sampling", params.relay_priors, sampler.lookups),
    ]
    return AlgorithmResult.from_pubkey_assignments(
        "Ditto+Outbox Thompson",
        assignments,
        data.follows,
        params,
        execution_time_ms=watch.elapsed_ms,
        notes=notes,
    )
