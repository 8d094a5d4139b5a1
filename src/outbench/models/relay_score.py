"""
Persisted Thompson Sampling state.

A [RelayScoreDB][outbench.models.relay_score.RelayScoreDB] holds one
Beta(alpha, beta) delivery estimate per relay for a given target and time
window. It is loaded once per session, mutated in memory by
[update_relay_scores][outbench.learning.relay_scores.update_relay_scores],
and written back atomically.

The JSON shape uses camelCase keys and carries ``schemaVersion``; readers
reject any other version.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import Trend
from .params import BetaPrior


RELAY_SCORE_SCHEMA_VERSION = 1


class RelayScoreEntry(BaseModel):
    """Learned delivery reliability for one relay.

    Attributes:
        alpha: Beta success pseudo-count (>= 1 after decay).
        beta: Beta failure pseudo-count (>= 1 after decay).
        last_queried: Last session timestamp (ms) the relay was assigned.
        total_events: Cumulative events the relay returned for assigned writers.
        total_expected: Cumulative baseline events for those writers.
        session_rates: Per-session aggregate delivery rate, oldest first.
        trend: Direction of ``session_rates``.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, validate_assignment=True)

    alpha: float = Field(default=1.0, gt=0)
    beta: float = Field(default=1.0, gt=0)
    last_queried: int = 0
    total_events: int = Field(default=0, ge=0)
    total_expected: int = Field(default=0, ge=0)
    session_rates: list[float] = Field(default_factory=list)
    trend: Trend | None = None

    def to_prior(self) -> BetaPrior:
        return BetaPrior(alpha=self.alpha, beta=self.beta)


class RelayScoreDB(BaseModel):
    """All relay entries for one (target, window) pair."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    schema_version: Literal[1] = RELAY_SCORE_SCHEMA_VERSION
    pubkey: str
    window_seconds: int = Field(ge=1)
    updated_at: int = 0
    session_count: int = Field(default=0, ge=0)
    relays: dict[str, RelayScoreEntry] = Field(default_factory=dict)

    def priors(self) -> dict[str, BetaPrior]:
        """Per-relay priors for Thompson Sampling strategies."""
        return {relay: entry.to_prior() for relay, entry in self.relays.items()}

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
