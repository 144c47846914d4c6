"""Tick Orchestrator — one atomic state transition: metrics → schedule → metrics."""

from typing import Optional

from pressim.metrics.aggregator import compute_metrics
from pressim.models.state import SystemState
from pressim.sampling.rng import RNG
from pressim.schedulers.base import BaseScheduler
from pressim.schedulers.pressure import PressureScheduler

_DEFAULT_SCHEDULER = PressureScheduler()


def tick(
    state: SystemState,
    dt: float,
    rng: RNG,
    scheduler: Optional[BaseScheduler] = None,
) -> SystemState:
    """Return the state one tick later. The input state is left untouched.

    Pre-scheduling metrics drive this tick's decisions; post-scheduling
    metrics are what collapse detection and observers see.
    """
    scheduler = scheduler or _DEFAULT_SCHEDULER

    next_state = state.model_copy(deep=True)
    next_state.time = state.time + dt

    next_state.metrics = compute_metrics(next_state)
    next_state = scheduler.schedule(next_state, dt, rng)
    next_state.metrics = compute_metrics(next_state)

    return next_state
