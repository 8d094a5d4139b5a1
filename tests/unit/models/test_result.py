"""
Unit tests for models.result and models.params.

Tests:
- AlgorithmResult dual construction and follow partition
- to_dict() ordering and top-relay truncation
- AlgorithmParams aliases, merging and per-writer target resolution
"""

import math

import pytest
from pydantic import ValidationError

from outbench.models.params import DEFAULT_PER_WRITER_TARGET, AlgorithmParams, BetaPrior
from outbench.models.result import AlgorithmResult


# ============================================================================
# AlgorithmResult Tests
# ============================================================================


class TestAlgorithmResult:
    """Tests for AlgorithmResult builders."""

    def test_dual_from_pubkey_assignments(self) -> None:
        """Test that both assignment maps agree."""
        result = AlgorithmResult.from_pubkey_assignments(
            "x", {"a": ["r1", "r2"], "b": ["r2"]}, ["a", "b", "c"], AlgorithmParams()
        )
        assert result.relay_assignments == {
            "r1": frozenset({"a"}),
            "r2": frozenset({"a", "b"}),
        }
        assert result.orphaned_pubkeys == frozenset({"c"})
        assert result.partition_violations(["a", "b", "c"]) == []

    def test_empty_relay_set_is_orphan(self) -> None:
        """Test that a writer with no relays counts as orphaned."""
        result = AlgorithmResult.from_pubkey_assignments(
            "x", {"a": [], "b": ["r1"]}, ["a", "b"], AlgorithmParams()
        )
        assert "a" in result.orphaned_pubkeys
        assert "a" not in result.pubkey_assignments

    def test_non_follow_ignored(self) -> None:
        """Test that writers outside the follow list are dropped."""
        result = AlgorithmResult.from_pubkey_assignments(
            "x", {"z": ["r1"]}, ["a"], AlgorithmParams()
        )
        assert result.relay_assignments == {}
        assert result.orphaned_pubkeys == frozenset({"a"})

    def test_from_relay_assignments(self) -> None:
        """Test that relay -> writers input is inverted."""
        result = AlgorithmResult.from_relay_assignments(
            "x", {"r1": ["a", "b"], "r2": ["b"]}, ["a", "b"], AlgorithmParams()
        )
        assert result.pubkey_assignments["b"] == frozenset({"r1", "r2"})
        assert not result.orphaned_pubkeys

    def test_to_dict_top_relays(self) -> None:
        """Test that truncation keeps the heaviest relays and drops pubkey assignments."""
        result = AlgorithmResult.from_relay_assignments(
            "x",
            {"r1": ["a"], "r2": ["a", "b", "c"], "r3": ["b", "c"]},
            ["a", "b", "c"],
            AlgorithmParams(),
        )
        full = result.to_dict()
        assert list(full["relayAssignments"]) == ["r2", "r3", "r1"]
        assert full["pubkeyAssignments"]["a"] == ["r1", "r2"]

        top = result.to_dict(top_relays=2)
        assert list(top["relayAssignments"]) == ["r2", "r3"]
        assert top["pubkeyAssignments"] == {}

    def test_renamed(self) -> None:
        """Test that renaming keeps assignments."""
        result = AlgorithmResult.from_pubkey_assignments("x", {"a": ["r"]}, ["a"], AlgorithmParams())
        assert result.renamed("y").name == "y"
        assert result.renamed("y").relay_assignments == result.relay_assignments


# ============================================================================
# AlgorithmParams Tests
# ============================================================================


class TestAlgorithmParams:
    """Tests for AlgorithmParams."""

    def test_camel_case_and_unknown_keys(self) -> None:
        """Test that wire spellings are accepted and unknown keys ignored."""
        params = AlgorithmParams.model_validate({"maxConnections": 20, "relayLimit": 3, "foo": 1})
        assert params.max_connections == 20
        assert params.relay_limit == 3

    def test_invalid_epsilon(self) -> None:
        """Test that epsilon outside [0, 1] is rejected."""
        with pytest.raises(ValidationError):
            AlgorithmParams(epsilon=1.5)

    def test_merged_applies_only_set_fields(self) -> None:
        """Test that unset override fields leave defaults alone."""
        defaults = AlgorithmParams(max_connections=20, relay_limit=3)
        merged = defaults.merged(AlgorithmParams(relay_limit=5))
        assert merged.max_connections == 20
        assert merged.relay_limit == 5

    def test_connection_budget(self) -> None:
        """Test the budget fallback and the finite-cap flag."""
        assert AlgorithmParams().connection_budget() == 20
        assert not AlgorithmParams().has_finite_cap
        assert not AlgorithmParams(max_connections=math.inf).has_finite_cap
        assert AlgorithmParams(max_connections=10).has_finite_cap

    def test_per_writer_target(self) -> None:
        """Test precedence and default of the per-writer target."""
        assert AlgorithmParams().per_writer_target() == DEFAULT_PER_WRITER_TARGET
        assert AlgorithmParams(write_limit=4).per_writer_target() == 4
        assert AlgorithmParams(relay_limit=1, relay_goal_per_author=3).per_writer_target() == 3
        params = AlgorithmParams().with_per_writer_target(5)
        assert (params.max_relays_per_user, params.relay_goal_per_author) == (5, 5)
        assert (params.relay_limit, params.write_limit) == (5, 5)

    def test_to_dict(self) -> None:
        """Test infinite budgets and priors in the report form."""
        params = AlgorithmParams(
            max_connections=math.inf, relay_priors={"r": BetaPrior(alpha=2, beta=1)}
        )
        data = params.to_dict()
        assert data["maxConnections"] == "unlimited"
        assert data["relayPriors"] == 1
