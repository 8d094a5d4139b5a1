"""Random sources, distribution samplers, and descriptive statistics.

The utils layer sits beside ``core`` in the diamond DAG and imports only
the standard library. Everything here is pure and synchronous.

Attributes:
    rng: Mulberry32 seedable generator and the ``RandomSource`` callable
        type every stochastic strategy accepts.
    sampling: Beta (Johnk / gamma ratio) and Gamma (Marsaglia-Tsang)
        samplers used by the Thompson Sampling strategies.
    stats: Mean, median, floor-index percentile, population standard
        deviation and OLS slope, all returning ``0.0`` on empty input.

See Also:
    [outbench.algorithms][outbench.algorithms]: Main consumer of the
        random source and samplers.
"""

from .rng import MIN_POSITIVE, Mulberry32, RandomSource, mulberry32, positive, resolve_seed
from .sampling import sample_beta, sample_gamma
from .stats import mean, median, ols_slope, percentile, pstdev


__all__ = [
    "MIN_POSITIVE",
    "Mulberry32",
    "RandomSource",
    "mean",
    "median",
    "mulberry32",
    "ols_slope",
    "percentile",
    "positive",
    "pstdev",
    "resolve_seed",
    "sample_beta",
    "sample_gamma",
]
