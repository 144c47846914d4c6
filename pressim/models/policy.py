"""Admission policies — named weight vectors for the cost model."""

from dataclasses import dataclass
from enum import Enum


class PolicyName(str, Enum):
    FAIRNESS = "FAIRNESS"
    BALANCED = "BALANCED"
    THROUGHPUT = "THROUGHPUT"


@dataclass(frozen=True)
class Policy:
    """Immutable weights applied to each cost term."""
    starvation_weight: float
    lateness_weight: float
    failure_weight: float
    instability_weight: float


POLICIES: dict[PolicyName, Policy] = {
    PolicyName.FAIRNESS: Policy(
        starvation_weight=2.0,
        lateness_weight=0.8,
        failure_weight=1.0,
        instability_weight=0.5,
    ),
    PolicyName.BALANCED: Policy(
        starvation_weight=0.5,
        lateness_weight=1.0,
        failure_weight=2.0,
        instability_weight=1.0,
    ),
    PolicyName.THROUGHPUT: Policy(
        starvation_weight=0.1,
        lateness_weight=1.5,
        failure_weight=3.0,
        instability_weight=2.0,
    ),
}


def get_policy(name: str) -> PolicyName:
    """Resolve a policy by name (case-insensitive)."""
    try:
        return PolicyName(name.upper())
    except ValueError:
        available = ", ".join(p.value for p in PolicyName)
        raise ValueError(f"Unknown policy: {name}. Available: {available}") from None
