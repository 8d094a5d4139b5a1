"""
Phase 2 baseline disk cache.

Baselines for one target, window, follow count and relay count are stored
as a JSON envelope under ``<cache_dir>/phase2_<prefix16>_<window>_<follows>_<relays>.json``
so that repeated runs (other algorithms, other filter modes) reuse the
ground truth instead of re-querying every relay. Envelopes from another
schema version or older than their TTL are misses.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from outbench.core.exceptions import CacheError
from outbench.core.logger import format_kv_pairs
from outbench.models.phase2 import PubkeyBaseline


if TYPE_CHECKING:
    from collections.abc import Mapping

    from .query_cache import QueryCache


_logger = logging.getLogger(__name__)

PHASE2_SCHEMA_VERSION = 1
PHASE2_TTL_MS = 4 * 3600 * 1000
LOW_SUCCESS_RATE = 0.8


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs, max_value_length=None))


def cache_path(
    cache_dir: Path, pubkey: str, window_seconds: int, follow_count: int, relay_count: int
) -> Path:
    return cache_dir / f"phase2_{pubkey[:16]}_{window_seconds}_{follow_count}_{relay_count}.json"


def relay_success(baselines: Mapping[str, PubkeyBaseline]) -> tuple[int, int]:
    """``(relays queried, relays succeeded)``, counting each relay once."""
    seen: set[str] = set()
    queried = succeeded = 0
    for baseline in baselines.values():
        for relay in baseline.relays_succeeded:
            if relay not in seen:
                seen.add(relay)
                queried += 1
                succeeded += 1
        for relay in baseline.relays_failed:
            if relay not in seen:
                seen.add(relay)
                queried += 1
    return queried, succeeded


def read_phase2_cache(
    path: Path, *, now_ms: float | None = None
) -> dict[str, PubkeyBaseline]:
    """Load baselines from *path*.

    Raises:
        CacheError: If the file is missing, malformed, from another schema
            version, or expired.
    """
    try:
        envelope = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise CacheError(f"unreadable Phase 2 cache {path}: {e}") from e
    if not isinstance(envelope, dict) or envelope.get("schemaVersion") != PHASE2_SCHEMA_VERSION:
        raise CacheError(f"Phase 2 cache {path} has a foreign schema")

    now = time.time() * 1000 if now_ms is None else now_ms
    age_ms = now - float(envelope.get("fetchedAt", 0))
    if age_ms > float(envelope.get("ttlMs", PHASE2_TTL_MS)):
        raise CacheError(f"Phase 2 cache {path} expired ({round(age_ms / 60000)} min old)")

    rate = float(envelope.get("relaySuccessRate", 0))
    if rate < LOW_SUCCESS_RATE:
        _log(
            "WARNING",
            "phase2_cache_low_success_rate",
            rate=round(rate, 3),
            succeeded=envelope.get("totalRelaysSucceeded"),
            queried=envelope.get("totalRelaysQueried"),
        )

    try:
        baselines = [PubkeyBaseline.from_dict(entry) for entry in envelope["baselines"]]
    except (KeyError, TypeError, ValueError) as e:
        raise CacheError(f"malformed Phase 2 cache {path}: {e}") from e
    return {b.pubkey: b for b in baselines}


def write_phase2_cache(
    path: Path,
    baselines: Mapping[str, PubkeyBaseline],
    *,
    pubkey: str,
    window_seconds: int,
    since: int,
    follow_count: int,
    relay_count: int,
    now_ms: float | None = None,
) -> None:
    """Persist *baselines* atomically (temp file then rename)."""
    queried, succeeded = relay_success(baselines)
    envelope = {
        "schemaVersion": PHASE2_SCHEMA_VERSION,
        "pubkey": pubkey,
        "windowSeconds": window_seconds,
        "since": since,
        "followCount": follow_count,
        "relayCount": relay_count,
        "fetchedAt": int(time.time() * 1000 if now_ms is None else now_ms),
        "ttlMs": PHASE2_TTL_MS,
        "relaySuccessRate": succeeded / queried if queried else 0,
        "totalRelaysQueried": queried,
        "totalRelaysSucceeded": succeeded,
        "baselines": [b.to_dict() for b in baselines.values()],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(envelope, fh)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    _log("INFO", "phase2_cache_written", path=path, authors=len(baselines))


def populate_query_cache(baselines: Mapping[str, PubkeyBaseline], cache: QueryCache) -> None:
    """Seed *cache* from cached baselines.

    Per-relay ids are not persisted, so every relay that had events for an
    author is credited with the author's whole baseline; succeeded relays
    without events get an empty entry.
    """
    for baseline in baselines.values():
        for relay in baseline.relays_with_events:
            cache.set(relay, baseline.pubkey, baseline.event_ids)
        for relay in baseline.relays_succeeded - baseline.relays_with_events:
            cache.set(relay, baseline.pubkey, ())
