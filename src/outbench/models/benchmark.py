"""
Benchmark input snapshot.

A [BenchmarkInput][outbench.models.benchmark.BenchmarkInput] is the frozen
view every algorithm run operates on: the target identity, its follow
list, the writer/relay adjacency held in a
[RelayGraph][outbench.models.graph.RelayGraph], the raw relay lists it was
built from, and metadata describing how the fetch went.

Inputs are produced by an external fetch layer and exchanged as JSON
snapshots (``from_snapshot`` / ``to_snapshot``). Building from a snapshot
keeps only follows that have a relay list with at least one write relay
in the graph; the rest are structural orphans.

Note:
    The dataclass is frozen, but the graph is mutable through its own
    methods. Only pre-run filtering (e.g. dropping relays unknown to NIP-66
    monitors) should mutate it; algorithms must treat it as read-only.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import FilterProfile
from .graph import RelayGraph


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")


class RelayFetchStats(_CamelModel):
    """Per-indexer statistics from the relay-list fetch."""

    events_received: int = 0
    unique_pubkeys_covered: int = 0
    connection_time_ms: float = 0
    errors: list[str] = Field(default_factory=list)


class FetchMeta(_CamelModel):
    """How the relay-list fetch went; carried through to reports unchanged."""

    indexer_relays: list[str] = Field(default_factory=list)
    per_relay_stats: dict[str, RelayFetchStats] = Field(default_factory=dict)
    total_follows: int = 0
    follows_with_relay_list: int = 0
    follows_missing_relay_list: int = 0
    follows_filtered_to_empty: int = 0
    missing_rate: float = 0
    filtered_urls: dict[str, Any] = Field(default_factory=dict)
    filter_profile: FilterProfile = FilterProfile.STRICT


@dataclass(frozen=True, slots=True)
class PubkeyRelayList:
    """A writer's NIP-65 relay list as fetched."""

    pubkey: str
    write_relays: tuple[str, ...]
    read_relays: tuple[str, ...] = ()
    event_created_at: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PubkeyRelayList:
        return cls(
            pubkey=str(data["pubkey"]),
            write_relays=tuple(data.get("writeRelays", ())),
            read_relays=tuple(data.get("readRelays", ())),
            event_created_at=int(data.get("eventCreatedAt", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": self.pubkey,
            "writeRelays": list(self.write_relays),
            "readRelays": list(self.read_relays),
            "eventCreatedAt": self.event_created_at,
        }


@dataclass(frozen=True, slots=True)
class BenchmarkInput:
    """Frozen snapshot consumed by every relay-selection strategy.

    Attributes:
        target_pubkey: The reader whose follow list is being served.
        follows: Followed writers, in follow-list order.
        graph: Writer <-> relay adjacency (declared write relays only).
        relay_lists: Raw relay lists keyed by writer.
        follows_missing_relay_list: Follows the fetch found no relay list for.
        fetched_at: Fetch timestamp in milliseconds since the epoch.
        fetch_meta: Fetch-quality metadata.
    """

    target_pubkey: str
    follows: tuple[str, ...]
    graph: RelayGraph
    relay_lists: Mapping[str, PubkeyRelayList] = field(default_factory=dict)
    follows_missing_relay_list: tuple[str, ...] = ()
    fetched_at: int = 0
    fetch_meta: FetchMeta = field(default_factory=FetchMeta)

    @property
    def writer_to_relays(self) -> Mapping[str, frozenset[str]]:
        return self.graph.writer_to_relays

    @property
    def relay_to_writers(self) -> Mapping[str, frozenset[str]]:
        return self.graph.relay_to_writers

    def structural_orphans(self) -> list[str]:
        """Follows with no declared write relay in the graph."""
        return [pk for pk in self.follows if not self.graph.has_relays(pk)]

    @classmethod
    def from_adjacency(
        cls,
        target_pubkey: str,
        follows: list[str] | tuple[str, ...],
        writer_to_relays: Mapping[str, list[str] | set[str] | frozenset[str]],
    ) -> BenchmarkInput:
        """Build an input directly from a writer -> relays mapping."""
        follow_set = set(follows)
        graph = RelayGraph({w: rs for w, rs in writer_to_relays.items() if w in follow_set})
        return cls(
            target_pubkey=target_pubkey,
            follows=tuple(follows),
            graph=graph,
            follows_missing_relay_list=tuple(pk for pk in follows if not graph.has_relays(pk)),
        )

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any]) -> BenchmarkInput:
        """Build an input from the JSON snapshot written by the fetch layer.

        Raises:
            KeyError: If ``targetPubkey`` or ``follows`` is missing.
        """
        relay_lists = {
            rl.pubkey: rl
            for rl in (PubkeyRelayList.from_dict(d) for d in snapshot.get("relayLists", []))
        }
        follows = tuple(snapshot["follows"])

        adjacency: dict[str, frozenset[str]] = {}
        for pubkey in follows:
            relay_list = relay_lists.get(pubkey)
            if relay_list is None or not relay_list.write_relays:
                continue
            adjacency[pubkey] = frozenset(relay_list.write_relays)

        return cls(
            target_pubkey=str(snapshot["targetPubkey"]),
            follows=follows,
            graph=RelayGraph(adjacency),
            relay_lists=relay_lists,
            follows_missing_relay_list=tuple(snapshot.get("followsMissingRelayList", ())),
            fetched_at=int(snapshot.get("fetchedAt", 0)),
            fetch_meta=FetchMeta.model_validate(snapshot.get("fetchMeta", {})),
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "targetPubkey": self.target_pubkey,
            "follows": list(self.follows),
            "relayLists": [rl.to_dict() for rl in self.relay_lists.values()],
            "followsMissingRelayList": list(self.follows_missing_relay_list),
            "fetchedAt": self.fetched_at,
            "fetchMeta": self.fetch_meta.model_dump(mode="json", by_alias=True),
        }
