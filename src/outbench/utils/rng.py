"""Seedable deterministic random source (Mulberry32).

Every stochastic algorithm draws from a ``RandomSource`` -- a zero-argument
callable returning floats in ``[0, 1)`` -- so that a fixed seed reproduces
a run bit-for-bit and repeated runs can use independent streams
(``seed``, ``seed + 1``, ...).

The generator keeps its state as an unsigned 32-bit integer and emulates
32-bit wrapping multiplication, so sequences match other Mulberry32
implementations for the same seed.

Examples:
    ```python
    rng = mulberry32(42)
    first = rng()
    assert mulberry32(42)() == first
    ```
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable


RandomSource = Callable[[], float]

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0

#: Smallest positive float; substituted for an exact 0 before logs and powers.
MIN_POSITIVE = math.ulp(0.0)


def _imul(a: int, b: int) -> int:
    """Low 32 bits of the product of two 32-bit integers."""
    return (a * b) & _MASK32


class Mulberry32:
    """Callable Mulberry32 generator producing floats in ``[0, 1)``."""

    __slots__ = ("_state",)

    def __init__(self, seed: int) -> None:
        self._state = int(seed) & _MASK32

    def __call__(self) -> float:
        self._state = (self._state + _INCREMENT) & _MASK32
        state = self._state
        t = _imul(state ^ (state >> 15), 1 | state)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32


def mulberry32(seed: int) -> Mulberry32:
    """Create a generator seeded with *seed* (reduced modulo 2**32)."""
    return Mulberry32(seed)


def positive(rng: RandomSource) -> float:
    """Draw from *rng*, clamping an exact ``0.0`` to the smallest positive float."""
    return max(rng(), MIN_POSITIVE)


def resolve_seed(seed: int | str) -> int:
    """Return *seed* unchanged, or a wall-clock seed for ``"random"``."""
    if seed == "random":
        return int(time.time() * 1000)
    return int(seed)
