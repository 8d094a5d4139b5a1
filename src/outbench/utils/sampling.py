"""Beta and Gamma samplers driven by a ``RandomSource``.

Thompson-Sampling algorithms score relays by drawing from each relay's
Beta(alpha, beta) posterior. ``sample_beta(1, 1, rng)`` short-circuits to a
single ``rng()`` draw, which is the cold-start behavior for relays without
a learned prior.

* ``alpha < 1`` and ``beta < 1``: Jöhnk's rejection method, falling back to
  a log-domain ratio when both candidate terms underflow to zero.
* otherwise: ``X / (X + Y)`` with ``X ~ Gamma(alpha)``, ``Y ~ Gamma(beta)``,
  where Gamma uses Marsaglia-Tsang's squeeze method with Box-Muller
  normal deviates and the ``U ** (1/shape)`` boost for shapes below 1.
"""

from __future__ import annotations

import math

from .rng import MIN_POSITIVE, RandomSource, positive


def sample_beta(alpha: float, beta: float, rng: RandomSource) -> float:
    """Draw one sample from Beta(alpha, beta); the result lies in ``[0, 1]``."""
    if alpha == 1 and beta == 1:
        return rng()

    if alpha < 1 and beta < 1:
        while True:
            u = positive(rng)
            v = positive(rng)
            x = u ** (1 / alpha)
            y = v ** (1 / beta)
            if x + y <= 1:
                if x + y > 0:
                    return x / (x + y)
                log_x = math.log(u) / alpha
                log_y = math.log(v) / beta
                log_m = max(log_x, log_y)
                ex = math.exp(log_x - log_m)
                ey = math.exp(log_y - log_m)
                return ex / (ex + ey)

    x = sample_gamma(alpha, rng)
    y = sample_gamma(beta, rng)
    return x / (x + y)


def sample_gamma(shape: float, rng: RandomSource) -> float:
    """Draw one sample from Gamma(shape, 1)."""
    if shape < 1:
        return sample_gamma(shape + 1, rng) * positive(rng) ** (1 / shape)

    d = shape - 1 / 3
    c = 1 / math.sqrt(9 * d)

    while True:
        while True:
            x = math.sqrt(-2 * math.log(positive(rng))) * math.cos(2 * math.pi * rng())
            v = 1 + c * x
            if v > 0:
                break

        v = v * v * v
        u = rng()
        if u < 1 - 0.0331 * (x * x) * (x * x):
            return d * v
        if math.log(max(u, MIN_POSITIVE)) < 0.5 * x * x + d * (1 - v + math.log(v)):
            return d * v
