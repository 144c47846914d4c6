"""Metrics Aggregator — recomputes system pressure and stability from task state."""

import math

from pressim.models.state import SystemMetrics, SystemState
from pressim.models.task import TaskStatus

# Penalty caps. They can sum past 100; the floor at zero absorbs the overlap.
PRESSURE_PENALTY_CAP = 60.0
QUEUE_PENALTY_CAP = 25.0
FAILURE_PENALTY_CAP = 40.0


def stability_index(pressure: float, queue_length: int, failed: int) -> int:
    """Bounded 0–100 health score."""
    score = (
        100.0
        - min(pressure * 50.0, PRESSURE_PENALTY_CAP)
        - min(queue_length * 3.0, QUEUE_PENALTY_CAP)
        - min(failed * 5.0, FAILURE_PENALTY_CAP)
    )
    # Halves round up, not to even
    return math.floor(max(0.0, score) + 0.5)


def compute_metrics(state: SystemState) -> SystemMetrics:
    """Aggregate from scratch. Pressure uses the static curve bases of running tasks."""
    used_cpu = 0.0
    used_ram = 0.0
    queue_length = 0
    completed = 0
    failed = 0

    for task in state.tasks.values():
        if task.status == TaskStatus.RUNNING:
            used_cpu += task.execution.cpu_curve.base
            used_ram += task.execution.ram_curve.base
        elif task.status == TaskStatus.QUEUED:
            queue_length += 1
        elif task.status == TaskStatus.COMPLETED:
            completed += 1
        elif task.status == TaskStatus.FAILED:
            failed += 1

    cpu_pressure = used_cpu / state.resources.total_cpu
    ram_pressure = used_ram / state.resources.total_ram
    pressure = max(cpu_pressure, ram_pressure)

    return SystemMetrics(
        queue_length=queue_length,
        cpu_pressure=cpu_pressure,
        ram_pressure=ram_pressure,
        pressure=pressure,
        completed=completed,
        failed=failed,
        stability_index=stability_index(pressure, queue_length, failed),
    )
