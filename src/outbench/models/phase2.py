"""
Phase 2 verification records.

Phase 2 checks algorithm assignments against events actually served by
relays. The records here carry what the relay pool observed
([RelayOutcome][outbench.models.phase2.RelayOutcome]), the per-writer
ground truth ([PubkeyBaseline][outbench.models.phase2.PubkeyBaseline]),
and the per-algorithm recall and latency results
([AlgorithmVerification][outbench.models.phase2.AlgorithmVerification]).

All records are immutable and serialize to camelCase dicts for reports.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from pydantic.alias_generators import to_camel

from .constants import BaselineClassification, Reliability


def _camel_dict(obj: Any) -> dict[str, Any]:
    return {to_camel(k): v for k, v in asdict(obj).items()}


# ---------------------------------------------------------------------------
# Pool observations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RelayOutcome:
    """What happened when the pool queried one relay.

    A timeout is a degraded success: ``connected`` stays True,
    ``reached_eose`` is False, and whatever arrived is kept.

    Attributes:
        connected: The WebSocket handshake succeeded.
        reached_eose: At least one batch ended with EOSE.
        connect_time_ms: Handshake duration.
        query_time_ms: Time from first REQ to the last batch resolving.
        first_event_ms: Time from first REQ to the first EVENT, if any.
        timed_out: At least one batch hit the EOSE timeout.
        error: Connection or transport error text.
    """

    connected: bool
    reached_eose: bool
    connect_time_ms: float = 0.0
    query_time_ms: float | None = None
    first_event_ms: float | None = None
    timed_out: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.connected and self.reached_eose


@dataclass(frozen=True, slots=True)
class PoolDiagnostics:
    """Counters for relay-side refusals seen during collection."""

    timeouts: int = 0
    closed_messages: tuple[str, ...] = ()
    notices: tuple[str, ...] = ()
    rate_limit_notices: int = 0


# ---------------------------------------------------------------------------
# Ground truth
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PubkeyBaseline:
    """Ground-truth events for one writer, unioned over its working relays.

    Attributes:
        pubkey: The writer.
        event_ids: Union of ids from declared relays that connected and
            reached EOSE.
        relays_queried: Number of declared relays.
        relays_succeeded: Declared relays that connected and reached EOSE.
        relays_failed: Declared relays that did not.
        relays_with_events: Succeeded relays that returned events for it.
        reliability: ``reliable`` when at least half the relays succeeded.
        classification: Four-way testability class.
    """

    pubkey: str
    event_ids: frozenset[str]
    relays_queried: int
    relays_succeeded: frozenset[str]
    relays_failed: frozenset[str]
    relays_with_events: frozenset[str]
    reliability: Reliability
    classification: BaselineClassification

    @staticmethod
    def classify(has_events: bool, success_rate: float) -> tuple[Reliability, BaselineClassification]:
        reliability = Reliability.RELIABLE if success_rate >= 0.5 else Reliability.PARTIAL
        if has_events:
            classification = (
                BaselineClassification.TESTABLE_RELIABLE
                if reliability == Reliability.RELIABLE
                else BaselineClassification.TESTABLE_PARTIAL
            )
        else:
            classification = (
                BaselineClassification.ZERO_BASELINE
                if reliability == Reliability.RELIABLE
                else BaselineClassification.UNRELIABLE
            )
        return reliability, classification

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": self.pubkey,
            "eventIds": sorted(self.event_ids),
            "relaysQueried": self.relays_queried,
            "relaysSucceeded": sorted(self.relays_succeeded),
            "relaysFailed": sorted(self.relays_failed),
            "relaysWithEvents": sorted(self.relays_with_events),
            "reliability": str(self.reliability),
            "classification": str(self.classification),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PubkeyBaseline:
        """Inverse of ``to_dict``.

        Raises:
            KeyError: If a field is missing.
            ValueError: If an enum value is unknown.
        """
        return cls(
            pubkey=str(data["pubkey"]),
            event_ids=frozenset(data["eventIds"]),
            relays_queried=int(data["relaysQueried"]),
            relays_succeeded=frozenset(data["relaysSucceeded"]),
            relays_failed=frozenset(data["relaysFailed"]),
            relays_with_events=frozenset(data["relaysWithEvents"]),
            reliability=Reliability(data["reliability"]),
            classification=BaselineClassification(data["classification"]),
        )


# ---------------------------------------------------------------------------
# Latency replay
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EoseRacePoint:
    cutoff_ms: float
    completeness: float


@dataclass(frozen=True, slots=True)
class AlgorithmLatencyStats:
    """Replayed latency of querying one algorithm's relay set in parallel.

    Derived from recorded outcomes only; available for fresh runs.
    """

    ttfe_ms: float | None = None
    ttfe_connect_only_ms: float | None = None
    query_p50_ms: float | None = None
    query_p80_ms: float | None = None
    query_max_ms: float | None = None
    timeout_count: int = 0
    relays_with_outcomes: int = 0
    relays_connected: int = 0
    relays_with_events: int = 0
    total_events: int = 0
    timeout_tax_ms: float = 0.0
    relays_connected_no_events: int = 0
    progressive_completeness: dict[int, float] = field(default_factory=dict)
    eose_race: dict[int, EoseRacePoint] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = _camel_dict(self)
        data["progressiveCompleteness"] = {
            str(k): v for k, v in self.progressive_completeness.items()
        }
        data["eoseRace"] = {
            str(k): {"cutoffMs": p.cutoff_ms, "completeness": p.completeness}
            for k, p in self.eose_race.items()
        }
        return data


@dataclass(frozen=True, slots=True)
class ProfileViewLatencyStats:
    """Replayed latency of opening each author's profile (direct relay lookup)."""

    author_count: int = 0
    mean_ttfe_ms: float | None = None
    median_ttfe_ms: float | None = None
    p95_ttfe_ms: float | None = None
    mean_relays_queried: float = 0.0
    mean_relays_with_events: float = 0.0
    hit_rate: float = 0.0
    mean_timeouts: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return _camel_dict(self)


# ---------------------------------------------------------------------------
# Verification results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AlgorithmVerification:
    """Recall of one algorithm's assignment against the Phase 2 baseline.

    Headline rates use testable-reliable authors; the ``*_inc_partial``
    rates add testable-partial authors. Rates are ``0`` with an empty
    denominator.
    """

    algorithm_name: str
    event_recall_rate: float = 0.0
    author_recall_rate: float = 0.0
    event_recall_inc_partial: float = 0.0
    author_recall_inc_partial: float = 0.0
    selected_relay_success_rate: float | None = None
    total_baseline_events_reliable: int = 0
    total_baseline_events_incl_partial: int = 0
    total_found_events_reliable: int = 0
    total_found_events_incl_partial: int = 0
    testable_reliable_authors: int = 0
    testable_partial_authors: int = 0
    authors_with_events: int = 0
    out_of_baseline_relays: tuple[str, ...] = ()
    per_author_recall_rates: tuple[float, ...] = ()
    latency: AlgorithmLatencyStats | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            if name == "latency":
                continue
            value = getattr(self, name)
            data[to_camel(name)] = list(value) if isinstance(value, tuple) else value
        if self.latency is not None:
            data["latency"] = self.latency.to_dict()
        return data


@dataclass(frozen=True, slots=True)
class TimingSummary:
    median: float = 0.0
    p95: float = 0.0
    mean: float = 0.0


@dataclass(frozen=True, slots=True)
class TimingStats:
    """Connect and query timing over connected relays (fresh runs)."""

    connect_ms: TimingSummary
    query_ms: TimingSummary
    timeout_count: int
    timeout_relay_count: int
    total_relay_count: int

    def to_dict(self) -> dict[str, Any]:
        return _camel_dict(self)


@dataclass(frozen=True, slots=True)
class BaselineStats:
    total_relays_queried: int = 0
    relay_success_rate: float = 0.0
    total_unique_events: int = 0
    mean_events_per_testable_author: float = 0.0
    median_events_per_testable_author: float = 0.0
    collection_time_ms: float = 0.0
    timing_stats: TimingStats | None = None

    def to_dict(self) -> dict[str, Any]:
        data = _camel_dict(self)
        if self.timing_stats is None:
            del data["timingStats"]
        else:
            data["timingStats"] = self.timing_stats.to_dict()
        return data


@dataclass(frozen=True, slots=True)
class Phase2Result:
    """Outcome of one Phase 2 run.

    ``baselines`` and ``query_cache`` are carried for relay-score learning
    and are not serialized.
    """

    options: Mapping[str, Any]
    since: int
    total_authors_with_relay_data: int
    testable_reliable_authors: int
    testable_partial_authors: int
    authors_zero_baseline: int
    authors_unreliable_baseline: int
    baseline_stats: BaselineStats
    algorithms: tuple[AlgorithmVerification, ...] = ()
    profile_view_latency: ProfileViewLatencyStats | None = None
    from_cache: bool = False
    baselines: Mapping[str, PubkeyBaseline] = field(default_factory=dict, repr=False)
    query_cache: Any = field(default=None, repr=False)

    @property
    def classification_total(self) -> int:
        return (
            self.testable_reliable_authors
            + self.testable_partial_authors
            + self.authors_zero_baseline
            + self.authors_unreliable_baseline
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "options": dict(self.options),
            "since": self.since,
            "fromCache": self.from_cache,
            "totalAuthorsWithRelayData": self.total_authors_with_relay_data,
            "testableReliableAuthors": self.testable_reliable_authors,
            "testablePartialAuthors": self.testable_partial_authors,
            "authorsZeroBaseline": self.authors_zero_baseline,
            "authorsUnreliableBaseline": self.authors_unreliable_baseline,
            "baselineStats": self.baseline_stats.to_dict(),
            "algorithms": [a.to_dict() for a in self.algorithms],
        }
        if self.profile_view_latency is not None:
            data["profileViewLatency"] = self.profile_view_latency.to_dict()
        return data
