"""(relay, author) -> event id cache filled during baseline collection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from outbench.core.metrics import QUERY_CACHE_EVENT_IDS


if TYPE_CHECKING:
    from collections.abc import Iterable


class QueryCache:
    """Event ids each relay returned for each author.

    Writing a key again replaces its set and adjusts the running total,
    so repeated insertion never double counts.
    """

    __slots__ = ("_entries", "_total_event_ids")

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], frozenset[str]] = {}
        self._total_event_ids = 0

    def set(self, relay: str, pubkey: str, event_ids: Iterable[str]) -> None:
        key = (relay, pubkey)
        ids = frozenset(event_ids)
        previous = self._entries.get(key)
        if previous is not None:
            self._total_event_ids -= len(previous)
        self._entries[key] = ids
        self._total_event_ids += len(ids)
        QUERY_CACHE_EVENT_IDS.set(self._total_event_ids)

    def get(self, relay: str, pubkey: str) -> frozenset[str] | None:
        return self._entries.get((relay, pubkey))

    def for_pubkey(self, pubkey: str, relays: Iterable[str]) -> set[str]:
        """Union of the ids *relays* returned for *pubkey*."""
        found: set[str] = set()
        for relay in relays:
            ids = self._entries.get((relay, pubkey))
            if ids:
                found |= ids
        return found

    def has_relay(self, relay: str) -> bool:
        return any(key[0] == relay for key in self._entries)

    @property
    def total_entries(self) -> int:
        return len(self._entries)

    @property
    def total_event_ids(self) -> int:
        return self._total_event_ids

    def __len__(self) -> int:
        return len(self._entries)
