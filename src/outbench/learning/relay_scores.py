"""
Relay-score learning for Thompson Sampling strategies.

After a Phase 2 run the relays an algorithm selected are scored by how much
of each assigned author's baseline they returned. One session is a single
read-modify-write of the score file:

1. [load_relay_scores][outbench.learning.relay_scores.load_relay_scores]
2. [update_relay_scores][outbench.learning.relay_scores.update_relay_scores]:
   decay every entry toward Beta(1, 1), then fold in the new observations.
3. [save_relay_scores][outbench.learning.relay_scores.save_relay_scores]:
   write to a temp file and rename over the old one.

Examples:
    ```python
    db = load_relay_scores(target, 86400, filter_mode="strict", algorithm_id="welshman-thompson")
    update_relay_scores(db, result, phase2.baselines, phase2.query_cache)
    save_relay_scores(db, filter_mode="strict", algorithm_id="welshman-thompson")
    params = AlgorithmParams(relay_priors=db.priors())
    ```
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from outbench.core.logger import format_kv_pairs
from outbench.models.constants import Trend
from outbench.models.relay_score import RELAY_SCORE_SCHEMA_VERSION, RelayScoreDB, RelayScoreEntry
from outbench.utils.stats import ols_slope


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from outbench.models.phase2 import PubkeyBaseline
    from outbench.models.result import AlgorithmResult
    from outbench.verification.query_cache import QueryCache


_logger = logging.getLogger(__name__)

DEFAULT_SCORES_DIR = Path(".cache")
DECAY_FACTOR = 0.95
SESSION_HISTORY = 10
TREND_THRESHOLD = 0.05


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs))


def _now_ms() -> int:
    return int(time.time() * 1000)


def score_path(
    pubkey: str,
    window_seconds: int,
    *,
    filter_mode: str | None = None,
    algorithm_id: str | None = None,
    directory: Path = DEFAULT_SCORES_DIR,
) -> Path:
    name = f"relay_scores_{pubkey[:16]}_{window_seconds}"
    if filter_mode:
        name += f"_{filter_mode}"
    if algorithm_id:
        name += f"_{algorithm_id}"
    return directory / f"{name}.json"


def fresh_db(pubkey: str, window_seconds: int) -> RelayScoreDB:
    return RelayScoreDB(pubkey=pubkey, window_seconds=window_seconds, updated_at=_now_ms())


def load_relay_scores(
    pubkey: str,
    window_seconds: int,
    *,
    filter_mode: str | None = None,
    algorithm_id: str | None = None,
    directory: Path = DEFAULT_SCORES_DIR,
) -> RelayScoreDB:
    """Load the score DB, or start a fresh one if it is missing or unusable."""
    path = score_path(
        pubkey, window_seconds, filter_mode=filter_mode, algorithm_id=algorithm_id, directory=directory
    )
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return fresh_db(pubkey, window_seconds)
    except (OSError, ValueError) as e:
        _log("WARNING", "relay_scores_unreadable", path=path, error=str(e))
        return fresh_db(pubkey, window_seconds)

    try:
        db = RelayScoreDB.model_validate_json(raw)
    except ValidationError as e:
        _log("WARNING", "relay_scores_schema_mismatch", path=path, errors=e.error_count())
        return fresh_db(pubkey, window_seconds)

    _log(
        "INFO",
        "relay_scores_loaded",
        relays=len(db.relays),
        session=db.session_count,
        schema=RELAY_SCORE_SCHEMA_VERSION,
    )
    return db


def decay(entry: RelayScoreEntry, factor: float = DECAY_FACTOR) -> None:
    """Pull ``alpha`` and ``beta`` toward 1 by *factor*."""
    entry.alpha = 1 + (entry.alpha - 1) * factor
    entry.beta = 1 + (entry.beta - 1) * factor


def classify_trend(rates: Sequence[float], threshold: float = TREND_THRESHOLD) -> Trend:
    """Trend of per-session rates from the OLS slope over session index."""
    slope = ols_slope(rates)
    if slope > threshold:
        return Trend.IMPROVING
    if slope < -threshold:
        return Trend.DECLINING
    return Trend.STABLE


def update_relay_scores(
    db: RelayScoreDB,
    result: AlgorithmResult,
    baselines: Mapping[str, PubkeyBaseline],
    cache: QueryCache,
    *,
    decay_factor: float = DECAY_FACTOR,
    history: int = SESSION_HISTORY,
    trend_threshold: float = TREND_THRESHOLD,
    now_ms: int | None = None,
) -> RelayScoreDB:
    """Decay all entries, then fold in this session's delivery observations.

    For each author routed through a selected relay with a non-empty
    baseline, ``delivered = min(relay_count / baseline_count, 1)`` adds
    ``delivered`` to alpha and ``1 - delivered`` to beta. Mutates and
    returns *db*.
    """
    stamp = _now_ms() if now_ms is None else now_ms
    for entry in db.relays.values():
        decay(entry, decay_factor)

    for relay in sorted(result.relay_assignments):
        entry = db.relays.get(relay) or RelayScoreEntry()
        entry.last_queried = stamp
        session_events = session_expected = 0

        for pubkey in sorted(result.relay_assignments[relay]):
            baseline = baselines.get(pubkey)
            if baseline is None or not baseline.event_ids:
                continue
            returned = len(cache.get(relay, pubkey) or ())
            expected = len(baseline.event_ids)
            delivered = min(returned / expected, 1.0)
            entry.alpha += delivered
            entry.beta += 1 - delivered
            session_events += returned
            session_expected += expected

        entry.total_events += session_events
        entry.total_expected += session_expected
        if session_expected:
            rates = [*entry.session_rates, min(session_events / session_expected, 1.0)]
            entry.session_rates = rates[-history:]
            entry.trend = classify_trend(entry.session_rates, trend_threshold)
        db.relays[relay] = entry

    db.session_count += 1
    db.updated_at = stamp
    _log(
        "INFO",
        "relay_scores_updated",
        algorithm=result.name,
        relays=len(db.relays),
        session=db.session_count,
    )
    return db


def save_relay_scores(
    db: RelayScoreDB,
    *,
    filter_mode: str | None = None,
    algorithm_id: str | None = None,
    directory: Path = DEFAULT_SCORES_DIR,
) -> Path:
    """Write *db* atomically and return its path."""
    path = score_path(
        db.pubkey, db.window_seconds, filter_mode=filter_mode, algorithm_id=algorithm_id, directory=directory
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(db.to_json())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    _log("INFO", "relay_scores_saved", path=path)
    return path
