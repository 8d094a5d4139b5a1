"""
Algorithm output model.

An [AlgorithmResult][outbench.models.result.AlgorithmResult] records which
relays a strategy chose and which writers it routes through each. Results
are always built from a single writer -> relays mapping and the follow
list, so the two assignment maps are exact duals and every follow lands in
exactly one of ``pubkey_assignments`` or ``orphaned_pubkeys``.

See Also:
    [compute_metrics][outbench.evaluation.compute_metrics]: Derives
        coverage and concentration metrics from a result.
    [post_process_cap][outbench.algorithms.registry.post_process_cap]:
        Trims a result to a connection budget.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .params import AlgorithmParams


@dataclass(frozen=True, slots=True)
class AlgorithmResult:
    """Output of one relay-selection run.

    Attributes:
        name: Display name (may include parameters, e.g. ``"... (cap@20)"``).
        relay_assignments: relay -> writers routed through it.
        pubkey_assignments: writer -> relays it is routed through.
        orphaned_pubkeys: Follows left uncovered (structural and algorithmic).
        params: Effective parameters the run used.
        execution_time_ms: Wall-clock runtime of the strategy.
        notes: Free-text remarks (time-box hits, data sources, ...).
    """

    name: str
    relay_assignments: Mapping[str, frozenset[str]]
    pubkey_assignments: Mapping[str, frozenset[str]]
    orphaned_pubkeys: frozenset[str]
    params: AlgorithmParams = field(default_factory=AlgorithmParams)
    execution_time_ms: float = 0.0
    notes: tuple[str, ...] = ()

    # -- Builders --------------------------------------------------------

    @classmethod
    def from_pubkey_assignments(
        cls,
        name: str,
        assignments: Mapping[str, Iterable[str]],
        follows: Iterable[str],
        params: AlgorithmParams,
        *,
        execution_time_ms: float = 0.0,
        notes: Iterable[str] = (),
    ) -> AlgorithmResult:
        """Build a result from writer -> relays; orphans are the uncovered follows.

        Writers with an empty relay collection count as uncovered, and
        writers outside *follows* are ignored.
        """
        follow_list = list(follows)
        follow_set = set(follow_list)

        pubkey_assignments: dict[str, frozenset[str]] = {}
        relay_building: dict[str, set[str]] = {}
        for pubkey, relays in assignments.items():
            if pubkey not in follow_set:
                continue
            relay_set = frozenset(relays)
            if not relay_set:
                continue
            pubkey_assignments[pubkey] = relay_set
            for relay in relay_set:
                relay_building.setdefault(relay, set()).add(pubkey)

        return cls(
            name=name,
            relay_assignments={r: frozenset(ws) for r, ws in relay_building.items()},
            pubkey_assignments=pubkey_assignments,
            orphaned_pubkeys=frozenset(pk for pk in follow_list if pk not in pubkey_assignments),
            params=params,
            execution_time_ms=execution_time_ms,
            notes=tuple(notes),
        )

    @classmethod
    def from_relay_assignments(
        cls,
        name: str,
        assignments: Mapping[str, Iterable[str]],
        follows: Iterable[str],
        params: AlgorithmParams,
        *,
        execution_time_ms: float = 0.0,
        notes: Iterable[str] = (),
    ) -> AlgorithmResult:
        """Build a result from relay -> writers by inverting it first."""
        inverted: dict[str, set[str]] = {}
        for relay, writers in assignments.items():
            for writer in writers:
                inverted.setdefault(writer, set()).add(relay)
        return cls.from_pubkey_assignments(
            name,
            inverted,
            follows,
            params,
            execution_time_ms=execution_time_ms,
            notes=notes,
        )

    # -- Derived views ---------------------------------------------------

    @property
    def selected_relays(self) -> frozenset[str]:
        return frozenset(self.relay_assignments)

    def relay_load(self, relay: str) -> int:
        return len(self.relay_assignments.get(relay, ()))

    def with_timing(self, execution_time_ms: float) -> AlgorithmResult:
        return replace(self, execution_time_ms=execution_time_ms)

    def renamed(self, name: str) -> AlgorithmResult:
        return replace(self, name=name)

    def partition_violations(self, follows: Iterable[str]) -> list[str]:
        """Follows that are both covered and orphaned, or neither."""
        bad = []
        for pubkey in dict.fromkeys(follows):
            covered = pubkey in self.pubkey_assignments
            orphaned = pubkey in self.orphaned_pubkeys
            if covered == orphaned:
                bad.append(pubkey)
        return bad

    # -- Serialization ---------------------------------------------------

    def to_dict(self, *, top_relays: int | None = None) -> dict[str, Any]:
        """JSON-ready dict.

        Args:
            top_relays: When set, keep only the heaviest relays (load
                descending, URL ascending) and drop per-writer assignments.
        """
        relays = sorted(self.relay_assignments, key=lambda r: (-self.relay_load(r), r))
        if top_relays is not None:
            relays = relays[:top_relays]
            pubkey_part: dict[str, list[str]] = {}
        else:
            pubkey_part = {pk: sorted(rs) for pk, rs in sorted(self.pubkey_assignments.items())}

        data: dict[str, Any] = {
            "name": self.name,
            "params": self.params.to_dict(),
            "executionTimeMs": self.execution_time_ms,
            "relayAssignments": {r: sorted(self.relay_assignments[r]) for r in relays},
            "pubkeyAssignments": pubkey_part,
            "orphanedPubkeys": sorted(self.orphaned_pubkeys),
        }
        if self.notes:
            data["notes"] = list(self.notes)
        return data
