"""NIP-66 relay quality scoring and the monitor data cache it reads."""

from .cache import (
    NIP66_SCHEMA_VERSION,
    NIP66_TTL_SECONDS,
    Nip66DataCache,
    read_envelope,
    synthetic_data,
    write_envelope,
)
from .score import (
    DEFAULT_WEIGHTS,
    NEUTRAL_SCORE,
    RELEVANT_NIPS,
    Nip66ScoreWeights,
    score_all_relays,
    score_relay,
)


__all__ = [
    "DEFAULT_WEIGHTS",
    "NEUTRAL_SCORE",
    "NIP66_SCHEMA_VERSION",
    "NIP66_TTL_SECONDS",
    "RELEVANT_NIPS",
    "Nip66DataCache",
    "Nip66ScoreWeights",
    "read_envelope",
    "score_all_relays",
    "score_relay",
    "synthetic_data",
    "write_envelope",
]
