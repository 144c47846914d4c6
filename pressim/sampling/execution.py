"""Execution sampler — noisy resource draws and pressure slowdown."""

from pressim.models.task import ResourceCurve
from pressim.sampling.rng import RNG


def sample_usage(curve: ResourceCurve, rng: RNG) -> float:
    """Draw a usage value centered on `base`. Clipped at zero; may exceed `peak`."""
    spread = curve.peak - curve.base
    noise = (rng() - 0.5) * 2
    return max(0.0, curve.base + spread * curve.variance * noise)


def slowdown_factor(pressure: float) -> float:
    """Convex penalty on CPU-bound progress."""
    return 1 + pressure * pressure
