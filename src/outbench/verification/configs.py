"""Phase 2 verification settings.

Examples:
    ```yaml
    phase2:
      kinds: [1]
      window_seconds: 86400
      max_concurrent_conns: 20
      eose_timeout_ms: 15000
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


DEFAULT_MAX_EVENTS_PER_PAIR = 100


class Phase2Config(BaseModel):
    """How baseline collection queries relays.

    Attributes:
        kinds: Event kinds to request.
        window_seconds: Look-back window; ``since = now - window``.
        max_concurrent_conns: Relays queried at the same time.
        max_open_sockets: Sockets kept open before LRU eviction.
        max_events_per_pair: Cap on ids kept per (relay, author).
        batch_size: Authors per REQ filter.
        eose_timeout_ms: Per-subscription wait for EOSE.
        connect_timeout_ms: WebSocket handshake timeout.
        cache_dir: Directory of the baseline disk cache.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    kinds: tuple[int, ...] = (1,)
    window_seconds: int = Field(default=86400, ge=60)
    max_concurrent_conns: int = Field(default=20, ge=1, le=500)
    max_open_sockets: int = Field(default=50, ge=1, le=2000)
    max_events_per_pair: int = Field(default=DEFAULT_MAX_EVENTS_PER_PAIR, ge=1)
    batch_size: int = Field(default=50, ge=1, le=1000)
    eose_timeout_ms: float = Field(default=15000.0, gt=0)
    connect_timeout_ms: float = Field(default=10000.0, gt=0)
    cache_dir: Path = Path(".cache")

    def to_options(self) -> dict[str, Any]:
        """camelCase dict echoed in Phase 2 reports."""
        return self.model_dump(mode="json", by_alias=True, exclude={"cache_dir"})
