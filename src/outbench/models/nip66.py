"""NIP-66 relay monitor observations and the quality scores derived from them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Nip66Source(StrEnum):
    """Where a batch of monitor data came from."""

    NOSTR = "nostr"
    HTTP_API = "http-api"
    SYNTHETIC = "synthetic"


# Pseudo monitor pubkeys marking non-monitor provenance
SYNTHETIC_MONITOR = "synthetic"
HTTP_API_MONITOR = "http-api"


class Nip66RelayData(BaseModel):
    """Latest monitor observation for one relay (kind 30166 or equivalent)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    relay_url: str
    rtt_open_ms: float | None = None
    rtt_read_ms: float | None = None
    rtt_write_ms: float | None = None
    supported_nips: list[int] = Field(default_factory=list)
    network: str | None = None
    last_seen_at: int = Field(default=0, ge=0)
    monitor_pubkey: str = SYNTHETIC_MONITOR


@dataclass(frozen=True, slots=True)
class Nip66ScoreFactors:
    uptime: float
    rtt: float
    freshness: float
    nip_support: float


@dataclass(frozen=True, slots=True)
class Nip66RelayScore:
    """Composite quality score in [0, 1] with its factor breakdown."""

    relay_url: str
    score: float
    factors: Nip66ScoreFactors

    def to_dict(self) -> dict[str, Any]:
        return {
            "relayUrl": self.relay_url,
            "score": self.score,
            "factors": {
                "uptime": self.factors.uptime,
                "rtt": self.factors.rtt,
                "freshness": self.factors.freshness,
                "nipSupport": self.factors.nip_support,
            },
        }
