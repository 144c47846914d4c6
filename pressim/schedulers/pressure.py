"""Pressure Scheduler — the four-stage policy engine run once per tick.

Stages run in order on the same working copy, so each sees the previous
one's transitions:

  A. starvation eviction   queued too long while the system is overloaded
  B. load shedding         drop the costliest queued task above MAX_PRESSURE
  C. admission control     policy-ordered promotion under the concurrency cap
  D. execution             progress, timeouts, hazard failures, completion

Every failure path is terminal. No task is retried or re-queued.
"""

import logging
import math

from pressim.models.policy import PolicyName
from pressim.models.state import SystemState
from pressim.models.task import FailureType, Task, TaskPhase, TaskStatus
from pressim.sampling.execution import sample_usage, slowdown_factor
from pressim.sampling.rng import RNG
from pressim.schedulers.base import BaseScheduler
from pressim.schedulers.cost import compute_task_cost

logger = logging.getLogger(__name__)

MAX_PRESSURE = 1.2
IO_PROGRESS_RATE = 0.3
IO_FAILURE_MULTIPLIER = 1.6
PHASE_FLIP_PROBABILITY = 0.15
FATIGUE_HORIZON = 10.0


def admission_order(queued: list[Task], state: SystemState) -> list[Task]:
    """Order queued tasks for admission under the active policy.

    Sorting is stable, so ties keep collection order.
    """
    if state.policy == PolicyName.FAIRNESS:
        return sorted(queued, key=lambda t: t.created_at)

    costs = {t.id: compute_task_cost(t, state).total for t in queued}
    if state.policy == PolicyName.THROUGHPUT:
        return sorted(queued, key=lambda t: costs[t.id])

    # BALANCED mixes a cost magnitude with a raw timestamp, un-normalized
    return sorted(queued, key=lambda t: 0.5 * costs[t.id] + 0.5 * t.created_at)


class PressureScheduler(BaseScheduler):
    """Admits, advances and fails tasks according to system pressure."""

    def schedule(self, state: SystemState, dt: float, rng: RNG) -> SystemState:
        self._evict_starved(state)
        self._shed_load(state)
        self._admit(state, rng)
        self._execute(state, dt, rng)
        return state

    # ── Stage A ───────────────────────────────────────────────────────

    def _evict_starved(self, state: SystemState) -> None:
        """Fail queued tasks that outlived max_queue_time while pressure > 1."""
        now = state.time
        pressure = state.metrics.pressure
        if pressure <= 1:
            return

        for task in state.tasks_with_status(TaskStatus.QUEUED):
            if task.max_queue_time is None:
                continue
            waited = now - task.created_at
            if waited > task.max_queue_time:
                task.mark_failed(
                    FailureType.STARVATION, now,
                    f"Starved: queued {waited:.2f}s (limit {task.max_queue_time:.2f}s) "
                    f"at pressure {pressure:.2f}",
                )
                logger.debug("t=%.2f %s starved", now, task.id)

    # ── Stage B ───────────────────────────────────────────────────────

    def _shed_load(self, state: SystemState) -> None:
        """Fail the single costliest queued task when pressure exceeds MAX_PRESSURE."""
        pressure = state.metrics.pressure
        if pressure <= MAX_PRESSURE:
            return

        worst: Task | None = None
        worst_cost = -math.inf
        for task in state.tasks_with_status(TaskStatus.QUEUED):
            cost = compute_task_cost(task, state).total
            if cost > worst_cost:
                worst, worst_cost = task, cost

        if worst is not None:
            worst.mark_failed(
                FailureType.LOAD_SHED, state.time,
                f"Load shed: cost {worst_cost:.3f} at pressure {pressure:.2f}",
            )
            logger.debug("t=%.2f %s shed (cost=%.3f)", state.time, worst.id, worst_cost)

    # ── Stage C ───────────────────────────────────────────────────────

    def _admit(self, state: SystemState, rng: RNG) -> None:
        """Promote queued tasks in policy order until the concurrency cap is hit."""
        now = state.time
        running_count = state.running_count
        cap = state.config.max_concurrent_tasks

        for task in admission_order(state.tasks_with_status(TaskStatus.QUEUED), state):
            if running_count >= cap:
                break
            task.mark_running(now, sample_usage(task.execution.ram_curve, rng))
            running_count += 1
            self._book_worker(state, task)
            logger.debug("t=%.2f %s admitted (ram=%.3f)", now, task.id, task.current_ram)

    def _book_worker(self, state: SystemState, task: Task) -> None:
        """Record the task against the least-loaded online worker, if any."""
        online = [w for w in state.workers if w.online]
        if not online:
            return
        worker = min(online, key=lambda w: w.load_ratio)
        worker.assign_task(task.id, task.execution.cpu_curve.base, task.current_ram or 0.0)
        task.assigned_worker = worker.id

    def _release_worker(self, state: SystemState, task: Task) -> None:
        if task.assigned_worker is None:
            return
        worker = state.find_worker(task.assigned_worker)
        if worker is not None:
            worker.release_task(task.id, task.execution.cpu_curve.base, task.current_ram or 0.0)

    # ── Stage D ───────────────────────────────────────────────────────

    def _execute(self, state: SystemState, dt: float, rng: RNG) -> None:
        """Advance running tasks and inject timeout/hazard failures."""
        now = state.time
        total_cpu = state.resources.total_cpu
        pressure = state.metrics.pressure
        cpu_slowdown = slowdown_factor(state.metrics.cpu_pressure)

        running = state.tasks_with_status(TaskStatus.RUNNING)
        cpu_tasks = [t for t in running if t.phase == TaskPhase.CPU]
        cpu_per_task = total_cpu / len(cpu_tasks) if cpu_tasks else 0.0

        # Within the tick, RAM pressure follows the sampled draws, not curve bases
        ram_pressure = sum(t.current_ram or 0.0 for t in running) / state.resources.total_ram
        io_slowdown = 1 + max(0.0, ram_pressure - 1)

        for task in running:
            mean_duration = task.execution.mean_duration
            if task.phase == TaskPhase.CPU:
                task.progress += (cpu_per_task / total_cpu) * (dt / mean_duration) / cpu_slowdown
            else:
                task.progress += IO_PROGRESS_RATE * (dt / mean_duration) / io_slowdown

            run_time = now - task.started_at

            if pressure > 1 and run_time > task.deadline * max(1.0, pressure):
                task.mark_failed(
                    FailureType.TIMEOUT, now,
                    f"Timed out after {run_time:.2f}s at pressure {pressure:.2f}",
                )
                self._release_worker(state, task)
                logger.debug("t=%.2f %s timed out", now, task.id)
                continue

            fatigue = 1 + min(run_time / FATIGUE_HORIZON, 1.0)
            phase_multiplier = IO_FAILURE_MULTIPLIER if task.phase == TaskPhase.IO else 1.0
            hazard = task.failure_probability * phase_multiplier * fatigue * pressure
            if rng() < 1 - math.exp(-hazard * dt):
                task.mark_failed(
                    FailureType.PRESSURE, now,
                    f"Failed under pressure (λ={hazard:.3f})",
                )
                self._release_worker(state, task)
                logger.debug("t=%.2f %s failed (λ=%.3f)", now, task.id, hazard)
                continue

            if task.progress >= 1:
                task.mark_completed(now)
                self._release_worker(state, task)
                logger.debug("t=%.2f %s completed", now, task.id)

            if rng() < PHASE_FLIP_PROBABILITY:
                task.phase = TaskPhase.IO if task.phase == TaskPhase.CPU else TaskPhase.CPU
