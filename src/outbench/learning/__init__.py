"""Thompson Sampling prior learning from Phase 2 verification results."""

from outbench.learning.relay_scores import (
    DECAY_FACTOR,
    classify_trend,
    decay,
    load_relay_scores,
    save_relay_scores,
    score_path,
    update_relay_scores,
)


__all__ = [
    "DECAY_FACTOR",
    "classify_trend",
    "decay",
    "load_relay_scores",
    "save_relay_scores",
    "score_path",
    "update_relay_scores",
]
