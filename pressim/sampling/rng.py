"""Deterministic RNG — Mulberry32, a seeded 32-bit stream.

The whole generator state is one uint32, so a run is fully described by
(seed, number of draws).
"""

from typing import Callable

RNG = Callable[[], float]

_MASK = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply."""
    return (a * b) & _MASK


class Mulberry32:
    """Zero-argument callable returning floats in [0, 1)."""

    def __init__(self, seed: int):
        self.seed = seed & _MASK
        self.state = self.seed
        self.calls = 0

    def __call__(self) -> float:
        self.state = (self.state + _INCREMENT) & _MASK
        self.calls += 1
        t = self.state
        r = _imul(t ^ (t >> 15), t | 1)
        r ^= (r + _imul(r ^ (r >> 7), r | 61)) & _MASK
        return ((r ^ (r >> 14)) & _MASK) / 4294967296

    def __repr__(self) -> str:
        return f"Mulberry32(seed={self.seed}, calls={self.calls})"


def create_rng(seed: int) -> Mulberry32:
    return Mulberry32(seed)
