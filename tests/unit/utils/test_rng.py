"""
Unit tests for utils.rng and utils.sampling.

Tests:
- Mulberry32 determinism, range and 32-bit seed reduction
- positive() clamping
- resolve_seed() for integers and "random"
- Beta/Gamma samplers: bounds, cold-start shortcut, moments
"""

import pytest

from outbench.utils.rng import MIN_POSITIVE, mulberry32, positive, resolve_seed
from outbench.utils.sampling import sample_beta, sample_gamma
from outbench.utils.stats import mean


# ============================================================================
# Mulberry32 Tests
# ============================================================================


class TestMulberry32:
    """Tests for the seedable generator."""

    def test_same_seed_same_sequence(self) -> None:
        """Test that two generators with one seed agree draw for draw."""
        a = mulberry32(42)
        b = mulberry32(42)
        assert [a() for _ in range(100)] == [b() for _ in range(100)]

    def test_different_seeds_differ(self) -> None:
        """Test that consecutive seeds give independent streams."""
        a = mulberry32(1)
        b = mulberry32(2)
        assert [a() for _ in range(10)] != [b() for _ in range(10)]

    def test_range(self) -> None:
        """Test that every draw lies in [0, 1)."""
        rng = mulberry32(7)
        for _ in range(10_000):
            value = rng()
            assert 0.0 <= value < 1.0

    def test_seed_reduced_modulo_2_32(self) -> None:
        """Test that seeds differing by 2**32 produce the same stream."""
        a = mulberry32(5)
        b = mulberry32(5 + 2**32)
        assert [a() for _ in range(5)] == [b() for _ in range(5)]

    def test_roughly_uniform(self) -> None:
        """Test that the sample mean is near 0.5."""
        rng = mulberry32(123)
        assert mean([rng() for _ in range(20_000)]) == pytest.approx(0.5, abs=0.01)


class TestPositive:
    """Tests for positive()."""

    def test_zero_clamped(self) -> None:
        """Test that an exact zero becomes the smallest positive float."""
        assert positive(lambda: 0.0) == MIN_POSITIVE

    def test_nonzero_unchanged(self) -> None:
        """Test that other draws pass through."""
        assert positive(lambda: 0.25) == 0.25


class TestResolveSeed:
    """Tests for resolve_seed()."""

    def test_integer(self) -> None:
        """Test that integers pass through."""
        assert resolve_seed(17) == 17

    def test_random(self) -> None:
        """Test that "random" yields a wall-clock integer."""
        assert resolve_seed("random") > 0


# ============================================================================
# Sampler Tests
# ============================================================================


class TestSampleBeta:
    """Tests for sample_beta()."""

    def test_uniform_prior_single_draw(self) -> None:
        """Test that Beta(1, 1) consumes exactly one draw."""
        draws = iter([0.3, 0.9])
        assert sample_beta(1, 1, lambda: next(draws)) == 0.3

    @pytest.mark.parametrize(("alpha", "beta"), [(0.5, 0.5), (2.0, 5.0), (0.3, 4.0), (10.0, 1.0)])
    def test_bounds(self, alpha: float, beta: float) -> None:
        """Test that samples stay in [0, 1]."""
        rng = mulberry32(99)
        for _ in range(2_000):
            assert 0.0 <= sample_beta(alpha, beta, rng) <= 1.0

    @pytest.mark.slow
    @pytest.mark.parametrize(("alpha", "beta"), [(2.0, 5.0), (0.5, 0.5), (6.0, 2.0)])
    def test_mean_matches_moments(self, alpha: float, beta: float) -> None:
        """Test that the sample mean approaches alpha / (alpha + beta)."""
        rng = mulberry32(2024)
        samples = [sample_beta(alpha, beta, rng) for _ in range(20_000)]
        assert mean(samples) == pytest.approx(alpha / (alpha + beta), abs=0.015)

    @pytest.mark.slow
    def test_variance_matches_moments(self) -> None:
        """Test the sample variance of Beta(2, 5)."""
        rng = mulberry32(11)
        samples = [sample_beta(2.0, 5.0, rng) for _ in range(20_000)]
        m = mean(samples)
        variance = mean([(s - m) ** 2 for s in samples])
        expected = (2 * 5) / ((2 + 5) ** 2 * (2 + 5 + 1))
        assert variance == pytest.approx(expected, rel=0.1)

    def test_deterministic(self) -> None:
        """Test that a seeded generator reproduces samples."""
        a = [sample_beta(3.0, 2.0, mulberry32(5)) for _ in range(3)]
        b = [sample_beta(3.0, 2.0, mulberry32(5)) for _ in range(3)]
        assert a == b


class TestSampleGamma:
    """Tests for sample_gamma()."""

    @pytest.mark.parametrize("shape", [0.4, 1.0, 3.5])
    def test_positive(self, shape: float) -> None:
        """Test that samples are non-negative."""
        rng = mulberry32(3)
        for _ in range(1_000):
            assert sample_gamma(shape, rng) >= 0.0

    @pytest.mark.slow
    @pytest.mark.parametrize("shape", [0.5, 2.0, 7.0])
    def test_mean_equals_shape(self, shape: float) -> None:
        """Test that the sample mean approaches the shape parameter."""
        rng = mulberry32(77)
        samples = [sample_gamma(shape, rng) for _ in range(20_000)]
        assert mean(samples) == pytest.approx(shape, rel=0.05)
