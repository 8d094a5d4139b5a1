"""
Bipartite writer/relay relation with a derived inverse index.

A writer's declared write relays are the single source of truth; the
relay -> writers index is derived from them and rebuilt whenever the
relation changes, so ``relay in relays_of(w)`` holds exactly when
``w in writers_of(relay)``. Both directions hand out ``frozenset``
values, which keeps algorithm code from mutating the shared input.

Writers with no declared relays are not stored at all: ``relays_of``
returns an empty set for them, which is what makes them structural
orphans downstream.

Examples:
    ```python
    graph = RelayGraph({"alice": ["wss://r1", "wss://r2"], "bob": ["wss://r2"]})
    graph.writers_of("wss://r2")   # frozenset({'alice', 'bob'})
    graph.remove_relay("wss://r2")
    graph.relays_of("bob")         # frozenset()
    ```
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType


_EMPTY: frozenset[str] = frozenset()


class RelayGraph:
    """Writer <-> relay adjacency that cannot drift out of sync."""

    __slots__ = ("_inverse", "_writer_to_relays")

    def __init__(self, writer_to_relays: Mapping[str, Iterable[str]] | None = None) -> None:
        self._writer_to_relays: dict[str, frozenset[str]] = {}
        self._inverse: dict[str, frozenset[str]] | None = None
        for writer, relays in (writer_to_relays or {}).items():
            relay_set = frozenset(relays)
            if relay_set:
                self._writer_to_relays[writer] = relay_set

    # -- Read access -----------------------------------------------------

    @property
    def writer_to_relays(self) -> Mapping[str, frozenset[str]]:
        return MappingProxyType(self._writer_to_relays)

    @property
    def relay_to_writers(self) -> Mapping[str, frozenset[str]]:
        return MappingProxyType(self._index())

    def relays_of(self, writer: str) -> frozenset[str]:
        return self._writer_to_relays.get(writer, _EMPTY)

    def writers_of(self, relay: str) -> frozenset[str]:
        return self._index().get(relay, _EMPTY)

    def has_relays(self, writer: str) -> bool:
        return writer in self._writer_to_relays

    def writers(self) -> Iterator[str]:
        return iter(self._writer_to_relays)

    def relays(self) -> Iterator[str]:
        return iter(self._index())

    @property
    def relay_count(self) -> int:
        return len(self._index())

    @property
    def writer_count(self) -> int:
        return len(self._writer_to_relays)

    def __len__(self) -> int:
        return len(self._writer_to_relays)

    # -- Mutation --------------------------------------------------------

    def set_relays(self, writer: str, relays: Iterable[str]) -> None:
        """Replace *writer*'s declared relays; an empty iterable removes the writer."""
        relay_set = frozenset(relays)
        if relay_set:
            self._writer_to_relays[writer] = relay_set
        else:
            self._writer_to_relays.pop(writer, None)
        self._inverse = None

    def remove_relay(self, relay: str) -> list[str]:
        """Drop *relay* from every writer; returns writers left with no relays."""
        emptied: list[str] = []
        for writer in self.writers_of(relay):
            remaining = self._writer_to_relays[writer] - {relay}
            if remaining:
                self._writer_to_relays[writer] = remaining
            else:
                del self._writer_to_relays[writer]
                emptied.append(writer)
        self._inverse = None
        return sorted(emptied)

    def copy(self) -> RelayGraph:
        return RelayGraph(self._writer_to_relays)

    # -- Invariants ------------------------------------------------------

    def duality_violations(self) -> list[tuple[str, str]]:
        """Return ``(writer, relay)`` pairs present in only one direction."""
        forward = {(w, r) for w, rs in self._writer_to_relays.items() for r in rs}
        backward = {(w, r) for r, ws in self._index().items() for w in ws}
        return sorted(forward ^ backward)

    def _index(self) -> dict[str, frozenset[str]]:
        if self._inverse is None:
            building: dict[str, set[str]] = {}
            for writer, relays in self._writer_to_relays.items():
                for relay in relays:
                    building.setdefault(relay, set()).add(writer)
            self._inverse = {relay: frozenset(ws) for relay, ws in building.items()}
        return self._inverse
