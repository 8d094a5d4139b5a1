"""
Owned cache of NIP-66 monitor data.

A [Nip66DataCache][outbench.nip66.cache.Nip66DataCache] is created by the
caller, loaded once before a sweep and handed to the NIP-66 weighted
strategy, so there is no process-wide state. On disk the data lives in a
JSON envelope::

    {"schemaVersion": 1, "fetchedAt": <ms>, "ttlSeconds": 3600,
     "source": "nostr" | "http-api" | "synthetic", "relays": [...]}

An envelope with a foreign schema version or older than its TTL is a
cache miss, never an error.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from outbench.core.exceptions import CacheError
from outbench.core.logger import format_kv_pairs
from outbench.models.nip66 import SYNTHETIC_MONITOR, Nip66RelayData, Nip66Source


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


_logger = logging.getLogger(__name__)

NIP66_SCHEMA_VERSION = 1
NIP66_TTL_SECONDS = 3600
DEFAULT_CACHE_PATH = Path(".cache") / "nip66_relay_data.json"


def _log(level: str, message: str, **kwargs: Any) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    if _logger.isEnabledFor(log_level):
        _logger.log(log_level, message + format_kv_pairs(kwargs, max_value_length=None))


def synthetic_data(relay_urls: Iterable[str], *, now: float | None = None) -> dict[str, Nip66RelayData]:
    """Neutral placeholder observations for relays with no monitor data."""
    seen_at = int(time.time() if now is None else now)
    return {
        url: Nip66RelayData(
            relay_url=url,
            network="clearnet",
            last_seen_at=seen_at,
            monitor_pubkey=SYNTHETIC_MONITOR,
        )
        for url in relay_urls
    }


def read_envelope(
    path: Path, *, now: float | None = None
) -> tuple[Nip66Source, dict[str, Nip66RelayData]]:
    """Parse a cache envelope.

    Raises:
        CacheError: If the file is missing, malformed, from another schema
            version, or older than its TTL.
    """
    try:
        envelope = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise CacheError(f"unreadable NIP-66 cache {path}: {e}") from e

    if not isinstance(envelope, dict) or envelope.get("schemaVersion") != NIP66_SCHEMA_VERSION:
        raise CacheError(f"NIP-66 cache {path} has a foreign schema")

    now_ms = (time.time() if now is None else now) * 1000
    ttl_ms = float(envelope.get("ttlSeconds", NIP66_TTL_SECONDS)) * 1000
    if now_ms - float(envelope.get("fetchedAt", 0)) > ttl_ms:
        raise CacheError(f"NIP-66 cache {path} expired")

    try:
        source = Nip66Source(envelope.get("source", Nip66Source.SYNTHETIC))
        relays = [Nip66RelayData.model_validate(entry) for entry in envelope.get("relays", [])]
    except (ValueError, ValidationError) as e:
        raise CacheError(f"malformed NIP-66 cache {path}: {e}") from e
    return source, {entry.relay_url: entry for entry in relays}


def write_envelope(
    path: Path,
    data: Mapping[str, Nip66RelayData],
    source: Nip66Source,
    *,
    now: float | None = None,
) -> None:
    """Persist *data* atomically (temp file then rename)."""
    envelope = {
        "schemaVersion": NIP66_SCHEMA_VERSION,
        "fetchedAt": int((time.time() if now is None else now) * 1000),
        "ttlSeconds": NIP66_TTL_SECONDS,
        "source": str(source),
        "relays": [entry.model_dump(by_alias=True) for entry in data.values()],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(envelope, fh, indent=2)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class Nip66DataCache:
    """Monitor data loaded once and shared across strategy runs.

    Examples:
        ```python
        cache = Nip66DataCache()
        cache.load()
        params = AlgorithmParams(max_connections=20)
        result = nip66_weighted_greedy(data, params, rng, cache=cache)
        ```
    """

    __slots__ = ("_data", "_initialized", "_source", "path")

    def __init__(self, path: Path | str = DEFAULT_CACHE_PATH) -> None:
        self.path = Path(path)
        self._data: dict[str, Nip66RelayData] | None = None
        self._source: Nip66Source | None = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def source(self) -> Nip66Source | None:
        return self._source

    def load(self, *, now: float | None = None) -> dict[str, Nip66RelayData] | None:
        """Read the on-disk envelope once; a miss leaves the cache empty."""
        if self._initialized:
            return self._data
        try:
            self._source, self._data = read_envelope(self.path, now=now)
            _log("INFO", "nip66_cache_loaded", relays=len(self._data), source=self._source)
        except CacheError as e:
            _log("DEBUG", "nip66_cache_miss", reason=str(e))
            self._data = None
            self._source = None
        self._initialized = True
        return self._data

    def set(self, data: Mapping[str, Nip66RelayData], source: Nip66Source) -> None:
        self._data = dict(data)
        self._source = source
        self._initialized = True

    def get(self) -> dict[str, Nip66RelayData] | None:
        return self._data

    def save(self, *, now: float | None = None) -> None:
        if self._data is None or self._source is None:
            return
        write_envelope(self.path, self._data, self._source, now=now)

    def reset(self) -> None:
        self._data = None
        self._source = None
        self._initialized = False

    def data_for(self, relay_urls: Iterable[str]) -> dict[str, Nip66RelayData]:
        """Loaded data, or synthetic observations for *relay_urls* when empty."""
        if self._data:
            return self._data
        return synthetic_data(relay_urls)
