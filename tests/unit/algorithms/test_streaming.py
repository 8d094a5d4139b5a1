"""
Unit tests for the streaming coverage strategy.

Tests:
- A later relay swaps out a buffer member when coverage grows
- A covering buffer member is never swapped for a subset
- Buffer size and seeded determinism
"""

import pytest

from outbench.algorithms.streaming import streaming_coverage
from outbench.models.benchmark import BenchmarkInput
from outbench.models.params import AlgorithmParams
from outbench.utils.rng import mulberry32


SMALL = "wss://small.example.com"
BIG = "wss://big.example.com"


@pytest.fixture
def subset_input() -> BenchmarkInput:
    """SMALL carries only a; BIG carries a, b and c."""
    return BenchmarkInput.from_adjacency(
        "target", ["a", "b", "c"], {"a": [SMALL, BIG], "b": [BIG], "c": [BIG]}
    )


class TestStreamingCoverage:
    """Tests for streaming_coverage()."""

    @pytest.mark.parametrize("seed", range(6))
    def test_swap_keeps_larger_cover(self, subset_input: BenchmarkInput, seed: int) -> None:
        """Test that either stream order ends with the relay covering everyone."""
        result = streaming_coverage(subset_input, AlgorithmParams(max_connections=1), mulberry32(seed))
        assert set(result.relay_assignments) == {BIG}
        assert result.orphaned_pubkeys == frozenset()
        assert "Final coverage: 3" in result.notes

    def test_buffer_size(self, medium_input: BenchmarkInput) -> None:
        """Test that the buffer never exceeds the budget."""
        result = streaming_coverage(medium_input, AlgorithmParams(max_connections=4), mulberry32(2))
        assert len(result.relay_assignments) == 4
        assert "Single-pass over 12 relays, buffer size 4" in result.notes

    def test_seeded_determinism(self, medium_input: BenchmarkInput) -> None:
        """Test that the stream order depends only on the seed."""
        params = AlgorithmParams(max_connections=3)
        first = streaming_coverage(medium_input, params, mulberry32(21))
        second = streaming_coverage(medium_input, params, mulberry32(21))
        assert first.relay_assignments == second.relay_assignments

    def test_empty_input(self) -> None:
        """Test a follow list without relay data."""
        data = BenchmarkInput.from_adjacency("t", ["a"], {})
        result = streaming_coverage(data, AlgorithmParams(max_connections=3), mulberry32(0))
        assert result.relay_assignments == {}
        assert result.orphaned_pubkeys == frozenset({"a"})
