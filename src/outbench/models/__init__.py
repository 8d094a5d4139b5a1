"""Frozen dataclasses and pydantic models with zero I/O.

The models layer is the foundation of the diamond DAG. It depends on no
other outbench package; pydantic and rfc3986 are its only third-party
imports. Everything here is immutable except
[RelayGraph][outbench.models.graph.RelayGraph], whose mutations keep both
adjacency directions consistent, and
[RelayScoreDB][outbench.models.relay_score.RelayScoreDB], which is
mutated in memory between a load and a save.

Attributes:
    RelayGraph: Writer <-> relay relation with a derived inverse index.
    BenchmarkInput: Frozen snapshot every strategy runs against.
    AlgorithmParams: Shared parameter surface (camelCase aliases accepted).
    AlgorithmResult: Dual-consistent assignment produced by a strategy.
    AlgorithmMetrics: Coverage and concentration metrics for one result.
    PubkeyBaseline: Phase 2 ground truth for one writer.
    AlgorithmVerification: Phase 2 recall for one algorithm.
    RelayScoreDB: Persisted Beta priors per relay.

See Also:
    [outbench.models.relay][]: URL normalization and filtering.
    [outbench.models.phase2][]: Verification records.
    [outbench.models.nip66][]: Monitor observations and quality scores.
"""

from .benchmark import BenchmarkInput, FetchMeta, PubkeyRelayList, RelayFetchStats
from .constants import (
    DITTO_APP_RELAYS,
    POPULAR_RELAYS,
    RELAY_DAMUS,
    RELAY_DITTO,
    RELAY_NOS_LOL,
    RELAY_PRIMAL,
    BaselineClassification,
    FilterProfile,
    FilterReason,
    GeoHint,
    Reliability,
    Trend,
)
from .graph import RelayGraph
from .metrics import NUMERIC_METRIC_FIELDS, AlgorithmMetrics, Distribution, StochasticStats
from .nip66 import Nip66RelayData, Nip66RelayScore, Nip66ScoreFactors, Nip66Source
from .params import DEFAULT_MAX_CONNECTIONS, AlgorithmParams, BetaPrior
from .phase2 import (
    AlgorithmLatencyStats,
    AlgorithmVerification,
    BaselineStats,
    EoseRacePoint,
    Phase2Result,
    PoolDiagnostics,
    ProfileViewLatencyStats,
    PubkeyBaseline,
    RelayOutcome,
    TimingStats,
    TimingSummary,
)
from .relay import FilteredUrlReport, filter_relay_url, filter_relay_urls, normalize_relay_url
from .relay_score import RelayScoreDB, RelayScoreEntry
from .result import AlgorithmResult


__all__ = [
    "DEFAULT_MAX_CONNECTIONS",
    "DITTO_APP_RELAYS",
    "NUMERIC_METRIC_FIELDS",
    "POPULAR_RELAYS",
    "RELAY_DAMUS",
    "RELAY_DITTO",
    "RELAY_NOS_LOL",
    "RELAY_PRIMAL",
    "AlgorithmLatencyStats",
    "AlgorithmMetrics",
    "AlgorithmParams",
    "AlgorithmResult",
    "AlgorithmVerification",
    "BaselineClassification",
    "BaselineStats",
    "BenchmarkInput",
    "BetaPrior",
    "Distribution",
    "EoseRacePoint",
    "FetchMeta",
    "FilterProfile",
    "FilterReason",
    "FilteredUrlReport",
    "GeoHint",
    "Nip66RelayData",
    "Nip66RelayScore",
    "Nip66ScoreFactors",
    "Nip66Source",
    "Phase2Result",
    "PoolDiagnostics",
    "ProfileViewLatencyStats",
    "PubkeyBaseline",
    "PubkeyRelayList",
    "RelayFetchStats",
    "RelayGraph",
    "RelayOutcome",
    "RelayScoreDB",
    "RelayScoreEntry",
    "Reliability",
    "StochasticStats",
    "TimingStats",
    "TimingSummary",
    "Trend",
    "filter_relay_url",
    "filter_relay_urls",
    "normalize_relay_url",
]
