"""
Unit tests for the greedy family and the exact ILP strategy.

Tests:
- Greedy set cover on the three-writer A/B/C input
- Coverage monotonicity in the connection budget
- Per-writer saturation
- ILP optimum against brute-force enumeration
- ILP time limit measured from entry
"""

from itertools import combinations
from types import SimpleNamespace

import pytest

from outbench.algorithms import ilp
from outbench.algorithms.greedy import greedy_epsilon, greedy_set_cover
from outbench.algorithms.ilp import ilp_optimal
from outbench.models.benchmark import BenchmarkInput
from outbench.models.params import AlgorithmParams
from outbench.utils.rng import mulberry32


R1 = "wss://r1.example.com"
R2 = "wss://r2.example.com"
R3 = "wss://r3.example.com"


def _covered(data: BenchmarkInput, relays: tuple[str, ...]) -> int:
    follows = set(data.follows)
    reached: set[str] = set()
    for relay in relays:
        reached |= data.graph.writers_of(relay) & follows
    return len(reached)


def _brute_force(data: BenchmarkInput, budget: int) -> int:
    relays = sorted(data.graph.relays())
    return max(
        (_covered(data, combo) for combo in combinations(relays, min(budget, len(relays)))),
        default=0,
    )


# ============================================================================
# Greedy Set Cover Tests
# ============================================================================


class TestGreedySetCover:
    """Tests for greedy_set_cover()."""

    def test_abc_budget_two(self, abc_input: BenchmarkInput) -> None:
        """Test that R2 then R3 are picked and D stays a structural orphan."""
        result = greedy_set_cover(abc_input, AlgorithmParams(max_connections=2), mulberry32(0))
        assert set(result.relay_assignments) == {R2, R3}
        assert result.orphaned_pubkeys == frozenset({"D"})
        assert result.pubkey_assignments["B"] == frozenset({R2, R3})

    def test_abc_budget_one_tie_break(self, abc_input: BenchmarkInput) -> None:
        """Test that the R2/R3 tie goes to the smaller URL."""
        result = greedy_set_cover(abc_input, AlgorithmParams(max_connections=1), mulberry32(0))
        assert set(result.relay_assignments) == {R2}
        assert result.orphaned_pubkeys == frozenset({"C", "D"})

    def test_saturation(self, abc_input: BenchmarkInput) -> None:
        """Test that saturated writers stop attracting relays."""
        params = AlgorithmParams(max_connections=3, max_relays_per_user=1)
        result = greedy_set_cover(abc_input, params, mulberry32(0))
        assert all(len(rs) == 1 for rs in result.pubkey_assignments.values())
        assert R1 not in result.relay_assignments

    def test_monotone_in_budget(self, medium_input: BenchmarkInput) -> None:
        """Test that coverage never drops as the budget grows."""
        previous = 0
        for budget in range(1, 13):
            result = greedy_set_cover(
                medium_input, AlgorithmParams(max_connections=budget), mulberry32(0)
            )
            covered = len(result.pubkey_assignments)
            assert covered >= previous
            assert len(result.relay_assignments) <= budget
            previous = covered

    def test_zero_epsilon_matches_greedy(self, medium_input: BenchmarkInput) -> None:
        """Test that greedy+epsilon with epsilon 0 reproduces plain greedy."""
        params = AlgorithmParams(max_connections=5, epsilon=0.0)
        explore = greedy_epsilon(medium_input, params, mulberry32(3))
        plain = greedy_set_cover(medium_input, params, mulberry32(3))
        assert explore.relay_assignments == plain.relay_assignments


# ============================================================================
# ILP Tests
# ============================================================================


class TestIlpOptimal:
    """Tests for ilp_optimal()."""

    @pytest.mark.parametrize("budget", [1, 2, 3, 4])
    def test_matches_brute_force(self, medium_input: BenchmarkInput, budget: int) -> None:
        """Test that branch and bound finds the true maximum coverage."""
        result = ilp_optimal(medium_input, AlgorithmParams(max_connections=budget), mulberry32(0))
        assert len(result.pubkey_assignments) == _brute_force(medium_input, budget)
        assert len(result.relay_assignments) <= budget
        assert "Exact optimal found" in result.notes

    def test_at_least_greedy(self, medium_input: BenchmarkInput) -> None:
        """Test that the optimum is never below the greedy solution."""
        for budget in (2, 3, 5):
            params = AlgorithmParams(max_connections=budget)
            exact = ilp_optimal(medium_input, params, mulberry32(0))
            greedy = greedy_set_cover(medium_input, params, mulberry32(0))
            assert len(exact.pubkey_assignments) >= len(greedy.pubkey_assignments)

    def test_abc(self, abc_input: BenchmarkInput) -> None:
        """Test full coverage of A, B and C with two relays."""
        result = ilp_optimal(abc_input, AlgorithmParams(max_connections=2), mulberry32(0))
        assert result.orphaned_pubkeys == frozenset({"D"})

    def test_empty_input(self) -> None:
        """Test a follow list with no relay data."""
        data = BenchmarkInput.from_adjacency("t", ["a", "b"], {})
        result = ilp_optimal(data, AlgorithmParams(max_connections=5), mulberry32(0))
        assert result.relay_assignments == {}
        assert result.orphaned_pubkeys == frozenset({"a", "b"})

    def test_time_limit_counts_preprocessing(
        self, abc_input: BenchmarkInput, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that time spent before the search counts against the limit."""
        clock = [0.0]
        real_coverage = ilp.followed_coverage

        def slow_coverage(data: BenchmarkInput) -> dict[str, frozenset[str]]:
            clock[0] += 10.0
            return real_coverage(data)

        monkeypatch.setattr(ilp, "time", SimpleNamespace(perf_counter=lambda: clock[0]))
        monkeypatch.setattr(ilp, "followed_coverage", slow_coverage)
        monkeypatch.setattr(ilp, "DEFAULT_POLL_INTERVAL", 1)

        params = AlgorithmParams(max_connections=1, time_limit_ms=1000)
        result = ilp.ilp_optimal(abc_input, params, mulberry32(0))
        assert "TIME LIMIT - best found (may not be optimal)" in result.notes
        assert len(result.pubkey_assignments) == 2
