"""Cost Model — how "bad" it is to leave a task where it is right now.

Each term is a deterrent, not a value score:
  total = starvation + lateness + failure_risk + instability

Lower total means the task is cheaper and safer to admit. The active policy
supplies the weights; system pressure scales the risk terms.
"""

from dataclasses import dataclass

from pressim.models.policy import POLICIES
from pressim.models.state import SystemState
from pressim.models.task import Task


@dataclass(frozen=True)
class CostBreakdown:
    starvation: float
    lateness: float
    failure_risk: float
    instability: float
    total: float


def compute_task_cost(task: Task, state: SystemState) -> CostBreakdown:
    """Score a task against the current policy, clock and pressure."""
    policy = POLICIES[state.policy]
    now = state.time
    pressure = state.metrics.pressure

    # A started task accrues no further starvation cost
    waiting_time = now - task.created_at if task.started_at is None else 0.0
    starvation = waiting_time * policy.starvation_weight

    lateness = max(0.0, now - task.deadline) * policy.lateness_weight

    failure_risk = task.failure_probability * pressure * policy.failure_weight

    instability = pressure * pressure * policy.instability_weight

    return CostBreakdown(
        starvation=starvation,
        lateness=lateness,
        failure_risk=failure_risk,
        instability=instability,
        total=starvation + lateness + failure_risk + instability,
    )
