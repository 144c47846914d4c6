"""Scenario generator — creates reproducible initial states and arrival schedules."""

import random
from dataclasses import dataclass

from pressim.models.policy import PolicyName
from pressim.models.state import SystemConfig, SystemResources, SystemState
from pressim.models.task import ExecutionProfile, ResourceCurve, Task
from pressim.models.worker import Worker


@dataclass(frozen=True)
class Arrival:
    """A task to inject once simulated time reaches `at`."""
    at: float
    task: Task


class ScenarioGenerator:
    """Generates deterministic scenarios using a seeded RNG.

    Independent of the engine's RNG: a scenario can be regenerated without
    disturbing the draws a run depends on.
    """

    def __init__(self, seed: int = 42):
        self.rng = random.Random(seed)
        self._task_counter = 0
        self._worker_counter = 0

    def generate_state(
        self,
        num_workers: int = 2,
        total_cpu: float = 8.0,
        total_ram: float = 32.0,
        policy: PolicyName = PolicyName.BALANCED,
        max_concurrent_tasks: int = 6,
    ) -> SystemState:
        """An empty system whose pooled capacity is split evenly across workers."""
        workers: list[Worker] = []
        for _ in range(num_workers):
            workers.append(Worker(
                id=f"worker-{self._worker_counter:03d}",
                max_cpu=total_cpu / num_workers,
                max_ram=total_ram / num_workers,
            ))
            self._worker_counter += 1

        return SystemState(
            policy=policy,
            resources=SystemResources(total_cpu=total_cpu, total_ram=total_ram),
            config=SystemConfig(max_concurrent_tasks=max_concurrent_tasks),
            workers=workers,
        )

    def generate_arrivals(
        self,
        num_tasks: int = 30,
        arrival_spread: float = 20.0,
        deadline_slack: float = 3.0,
        failure_range: tuple[float, float] = (0.0, 0.15),
        starvation_share: float = 0.3,
    ) -> list[Arrival]:
        """Tasks with random profiles and arrival times, sorted by arrival."""
        arrivals: list[Arrival] = []

        for _ in range(num_tasks):
            task_id = f"task-{self._task_counter:04d}"
            self._task_counter += 1

            at = round(self.rng.uniform(0.0, arrival_spread), 1)
            mean_duration = round(self.rng.uniform(2.0, 10.0), 1)
            cpu_base = round(self.rng.uniform(0.5, 2.0), 2)
            ram_base = round(self.rng.uniform(1.0, 6.0), 2)

            max_queue_time = None
            if self.rng.random() < starvation_share:
                max_queue_time = round(self.rng.uniform(1.0, 5.0), 1)

            arrivals.append(Arrival(at=at, task=Task(
                id=task_id,
                value=round(self.rng.uniform(1.0, 10.0), 1),
                deadline=round(at + mean_duration * self.rng.uniform(1.0, deadline_slack), 1),
                execution=ExecutionProfile(
                    mean_duration=mean_duration,
                    cpu_curve=ResourceCurve(
                        base=cpu_base,
                        peak=round(cpu_base * self.rng.uniform(1.2, 2.0), 2),
                        variance=round(self.rng.uniform(0.1, 0.5), 2),
                    ),
                    ram_curve=ResourceCurve(
                        base=ram_base,
                        peak=round(ram_base * self.rng.uniform(1.2, 2.0), 2),
                        variance=round(self.rng.uniform(0.1, 0.5), 2),
                    ),
                ),
                failure_probability=round(self.rng.uniform(*failure_range), 3),
                max_queue_time=max_queue_time,
            )))

        arrivals.sort(key=lambda a: a.at)
        return arrivals
