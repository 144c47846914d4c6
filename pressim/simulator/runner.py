"""Scenario runner — drives a session's cadence and feeds it timed arrivals."""

from typing import Optional

from pressim.metrics.collector import MetricsCollector
from pressim.models.state import SystemState
from pressim.simulator.generator import Arrival
from pressim.simulator.session import SimulationSession


def run_scenario(
    initial_state: SystemState,
    arrivals: list[Arrival],
    seed: int = 1,
    dt: float = 0.1,
    max_ticks: int = 600,
    session: Optional[SimulationSession] = None,
) -> tuple[SimulationSession, MetricsCollector]:
    """Init, start, and tick until max_ticks or collapse.

    Arrivals are injected between ticks once simulated time reaches them.
    """
    session = session or SimulationSession(dt=dt)
    collector = MetricsCollector()
    session.subscribe(collector.observe)
    try:
        session.init(initial_state, seed)
        session.start()

        pending = sorted(arrivals, key=lambda a: a.at)
        for _ in range(max_ticks):
            while pending and pending[0].at <= session.state.time:
                session.add_task(pending.pop(0).task)
            if session.advance(1) == 0:
                break
    finally:
        session.unsubscribe(collector.observe)

    collector.calculate()
    return session, collector
