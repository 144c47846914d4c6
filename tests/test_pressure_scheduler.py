"""
Tests for the four-stage Pressure Scheduler.

These tests verify:
    1. Starvation eviction only fires under pressure > 1 past max_queue_time
    2. Load shedding drops exactly one costliest queued task above 1.2
    3. Admission order follows the active policy and honors the cap
    4. Execution advances progress and injects timeout/hazard failures
    5. Terminal tasks are never touched again
"""

import math

import pytest

from pressim.models.policy import PolicyName
from pressim.models.state import SystemConfig, SystemMetrics, SystemResources, SystemState
from pressim.models.task import (
    ExecutionProfile,
    FailureType,
    ResourceCurve,
    Task,
    TaskPhase,
    TaskStatus,
)
from pressim.models.worker import Worker
from pressim.schedulers.pressure import MAX_PRESSURE, PressureScheduler, admission_order


def constant(value: float):
    return lambda: value


def scripted(*values: float):
    """RNG that returns exactly these draws, then raises if asked for more."""
    draws = iter(values)
    return lambda: next(draws)


def make_task(id: str, created_at: float = 0.0, cpu: float = 1.0, ram: float = 1.0,
              mean_duration: float = 5.0, **overrides) -> Task:
    """Helper to create a queued task with flat resource curves."""
    defaults = dict(
        id=id,
        deadline=100.0,
        created_at=created_at,
        execution=ExecutionProfile(
            mean_duration=mean_duration,
            cpu_curve=ResourceCurve(base=cpu, peak=cpu),
            ram_curve=ResourceCurve(base=ram, peak=ram * 2, variance=0.5),
        ),
    )
    defaults.update(overrides)
    return Task(**defaults)


def make_running(id: str, started_at: float = 0.0, current_ram: float = 1.0, **overrides) -> Task:
    task = make_task(id, **overrides)
    task.mark_running(started_at, current_ram)
    return task


def make_state(tasks: list[Task], time: float = 0.0, pressure: float = 0.0,
               cpu_pressure: float | None = None, cap: int = 4,
               policy: PolicyName = PolicyName.BALANCED,
               cpu: float = 4.0, ram: float = 16.0,
               workers: list[Worker] | None = None) -> SystemState:
    """Helper to build a state whose pre-scheduling metrics are set by hand."""
    return SystemState(
        time=time,
        policy=policy,
        resources=SystemResources(total_cpu=cpu, total_ram=ram),
        config=SystemConfig(max_concurrent_tasks=cap),
        tasks={t.id: t for t in tasks},
        workers=workers or [],
        metrics=SystemMetrics(
            pressure=pressure,
            cpu_pressure=pressure if cpu_pressure is None else cpu_pressure,
        ),
    )


class TestStarvationEviction:
    """Stage A."""

    def setup_method(self):
        self.scheduler = PressureScheduler()

    def test_starves_under_pressure(self):
        task = make_task("victim", created_at=0.0, max_queue_time=1.0)
        state = make_state([task], time=2.0, pressure=1.1, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))

        victim = state.tasks["victim"]
        assert victim.status == TaskStatus.FAILED
        assert victim.failure_type == FailureType.STARVATION
        assert victim.finished_at == 2.0
        assert "Starved" in victim.failure_reason

    def test_no_starvation_without_pressure(self):
        task = make_task("patient", created_at=0.0, max_queue_time=1.0)
        state = make_state([task], time=5.0, pressure=1.0, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))
        assert state.tasks["patient"].status == TaskStatus.QUEUED

    def test_limit_must_be_exceeded(self):
        task = make_task("edge", created_at=0.0, max_queue_time=1.0)
        state = make_state([task], time=1.0, pressure=1.1, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))
        assert state.tasks["edge"].status == TaskStatus.QUEUED

    def test_tasks_without_limit_are_exempt(self):
        task = make_task("free", created_at=0.0)
        state = make_state([task], time=50.0, pressure=1.1, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))
        assert state.tasks["free"].status == TaskStatus.QUEUED


class TestLoadShedding:
    """Stage B."""

    def setup_method(self):
        self.scheduler = PressureScheduler()

    def test_sheds_costliest_queued_task(self):
        """Under BALANCED the longest-waiting task carries the highest cost."""
        old = make_task("old", created_at=0.0)
        new = make_task("new", created_at=1.5)
        state = make_state([new, old], time=2.0, pressure=1.5, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))

        assert state.tasks["old"].status == TaskStatus.FAILED
        assert state.tasks["old"].failure_type == FailureType.LOAD_SHED
        assert state.tasks["old"].finished_at == 2.0
        assert state.tasks["new"].status == TaskStatus.QUEUED

    def test_sheds_only_one_per_tick(self):
        tasks = [make_task(f"t{i}", created_at=float(i)) for i in range(3)]
        state = make_state(tasks, time=5.0, pressure=2.0, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))
        failed = [t for t in state.tasks.values() if t.status == TaskStatus.FAILED]
        assert [t.id for t in failed] == ["t0"]

    def test_ties_shed_first_encountered(self):
        tasks = [make_task("first"), make_task("second")]
        state = make_state(tasks, time=1.0, pressure=1.5, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))
        assert state.tasks["first"].status == TaskStatus.FAILED
        assert state.tasks["second"].status == TaskStatus.QUEUED

    def test_threshold_is_exclusive(self):
        state = make_state([make_task("a")], time=1.0, pressure=MAX_PRESSURE, cap=0)
        self.scheduler.schedule(state, 0.5, constant(0.5))
        assert state.tasks["a"].status == TaskStatus.QUEUED

    def test_running_tasks_are_not_shed(self):
        state = make_state([make_running("busy")], time=2.0, pressure=2.0)
        self.scheduler.schedule(state, 0.5, constant(0.9))
        assert state.tasks["busy"].status == TaskStatus.RUNNING


class TestAdmission:
    """Stage C."""

    def setup_method(self):
        self.scheduler = PressureScheduler()

    def _admitted(self, state: SystemState) -> list[str]:
        return [t.id for t in state.tasks.values() if t.status == TaskStatus.RUNNING]

    def test_fairness_admits_oldest(self):
        tasks = [make_task("c", 3.0), make_task("a", 1.0), make_task("b", 2.0)]
        state = make_state(tasks, time=4.0, cap=1, policy=PolicyName.FAIRNESS)
        self.scheduler.schedule(state, 0.1, constant(0.5))
        assert self._admitted(state) == ["a"]

    def test_throughput_admits_cheapest(self):
        """Lower starvation cost makes the newest task cheapest."""
        tasks = [make_task("old", 0.0), make_task("young", 5.0)]
        state = make_state(tasks, time=6.0, cap=1, policy=PolicyName.THROUGHPUT)
        self.scheduler.schedule(state, 0.1, constant(0.5))
        assert self._admitted(state) == ["young"]

    def test_balanced_mixes_cost_and_creation_time(self):
        """A very late old task loses to a fresh one under BALANCED, not under FAIRNESS."""
        late = make_task("late", 0.0, deadline=1.0)
        fresh = make_task("fresh", 8.0)

        balanced = make_state([late, fresh], time=10.0, cap=1, policy=PolicyName.BALANCED)
        self.scheduler.schedule(balanced, 0.1, constant(0.5))
        assert self._admitted(balanced) == ["fresh"]

        fair = make_state(
            [make_task("late", 0.0, deadline=1.0), make_task("fresh", 8.0)],
            time=10.0, cap=1, policy=PolicyName.FAIRNESS,
        )
        self.scheduler.schedule(fair, 0.1, constant(0.5))
        assert self._admitted(fair) == ["late"]

    def test_cap_counts_running_tasks(self):
        tasks = [make_running("r1")] + [make_task(f"q{i}") for i in range(3)]
        state = make_state(tasks, time=1.0, cap=2)
        self.scheduler.schedule(state, 0.1, constant(0.5))
        assert state.running_count == 2
        assert state.tasks["q0"].status == TaskStatus.RUNNING
        assert state.tasks["q1"].status == TaskStatus.QUEUED

    def test_zero_cap_admits_nothing(self):
        state = make_state([make_task("a")], time=1.0, cap=0)
        self.scheduler.schedule(state, 0.1, constant(0.5))
        assert state.running_count == 0

    def test_admission_fields(self):
        """Admission stamps the clock and samples RAM (midpoint draw → base)."""
        state = make_state([make_task("a", ram=3.0, mean_duration=4.0)], time=2.0, cap=1)
        self.scheduler.schedule(state, 0.1, constant(0.5))
        task = state.tasks["a"]
        assert task.started_at == 2.0
        assert task.expected_end_at == 6.0
        assert task.current_ram == pytest.approx(3.0)

    def test_terminal_tasks_not_readmitted(self):
        done = make_task("done")
        done.mark_failed(FailureType.RANDOM, 0.5, "injected")
        state = make_state([done], time=1.0, cap=4)
        self.scheduler.schedule(state, 0.1, constant(0.5))
        assert state.tasks["done"].status == TaskStatus.FAILED
        assert state.tasks["done"].started_at is None

    def test_stable_order_on_ties(self):
        tasks = [make_task(name) for name in ("x", "y", "z")]
        state = make_state(tasks, time=1.0, policy=PolicyName.THROUGHPUT)
        assert [t.id for t in admission_order(tasks, state)] == ["x", "y", "z"]

    def test_worker_bookkeeping(self):
        """Admissions book onto the least-loaded online worker."""
        workers = [Worker(id="w0", max_cpu=2.0, max_ram=8.0), Worker(id="w1", max_cpu=2.0, max_ram=8.0)]
        tasks = [make_task("a", cpu=1.0), make_task("b", cpu=0.5)]
        state = make_state(tasks, time=1.0, cap=2, workers=workers)
        self.scheduler.schedule(state, 0.1, constant(0.5))

        assert state.tasks["a"].assigned_worker == "w0"
        assert state.tasks["b"].assigned_worker == "w1"
        assert state.workers[0].used_cpu == pytest.approx(1.0)
        assert state.workers[1].active_task_ids == ["b"]


class TestExecution:
    """Stage D."""

    def setup_method(self):
        self.scheduler = PressureScheduler()

    def test_single_cpu_task_progress(self):
        state = make_state([make_running("a")], time=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert state.tasks["a"].progress == pytest.approx(0.2)

    def test_cpu_shared_equally(self):
        state = make_state([make_running("a"), make_running("b")], time=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert state.tasks["a"].progress == pytest.approx(0.1)
        assert state.tasks["b"].progress == pytest.approx(0.1)

    def test_cpu_pressure_slows_progress(self):
        state = make_state([make_running("a")], time=1.0, pressure=1.0, cpu_pressure=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert state.tasks["a"].progress == pytest.approx(0.1)

    def test_io_progress(self):
        task = make_running("a", phase=TaskPhase.IO)
        state = make_state([task], time=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert state.tasks["a"].progress == pytest.approx(0.06)

    def test_io_slowed_by_sampled_ram(self):
        """RAM pressure inside the tick comes from sampled draws (4 / 2 = 2)."""
        tasks = [
            make_running("a", current_ram=2.0, phase=TaskPhase.IO),
            make_running("b", current_ram=2.0, phase=TaskPhase.IO),
        ]
        state = make_state(tasks, time=1.0, ram=2.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert state.tasks["a"].progress == pytest.approx(0.03)

    def test_timeout_under_pressure(self):
        task = make_running("slow", started_at=0.0, deadline=10.0)
        state = make_state([task], time=20.0, pressure=1.5)
        self.scheduler.schedule(state, 1.0, constant(0.99))

        slow = state.tasks["slow"]
        assert slow.status == TaskStatus.FAILED
        assert slow.failure_type == FailureType.TIMEOUT
        assert slow.finished_at == 20.0

    def test_no_timeout_without_pressure(self):
        task = make_running("slow", started_at=0.0, deadline=10.0)
        state = make_state([task], time=20.0, pressure=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.99))
        assert state.tasks["slow"].status == TaskStatus.RUNNING

    def test_hazard_failure_records_lambda(self):
        """λ = 1.0 × 1.0 × fatigue 2 × pressure 1; p = 1 - e^-2 ≈ 0.86."""
        task = make_running("risky", started_at=0.0, failure_probability=1.0)
        state = make_state([task], time=10.0, pressure=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))

        risky = state.tasks["risky"]
        assert risky.status == TaskStatus.FAILED
        assert risky.failure_type == FailureType.PRESSURE
        assert "λ=2.000" in risky.failure_reason
        assert risky.finished_at == 10.0

    def test_io_phase_raises_hazard(self):
        task = make_running("risky", started_at=0.0, failure_probability=1.0, phase=TaskPhase.IO)
        state = make_state([task], time=10.0, pressure=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert "λ=3.200" in state.tasks["risky"].failure_reason

    def test_hazard_draw_above_probability_survives(self):
        assert 0.9 > 1 - math.exp(-2.0)
        task = make_running("lucky", started_at=0.0, failure_probability=1.0)
        state = make_state([task], time=10.0, pressure=1.0)
        self.scheduler.schedule(state, 1.0, constant(0.9))
        assert state.tasks["lucky"].status == TaskStatus.RUNNING

    def test_zero_pressure_never_fails(self):
        task = make_running("safe", started_at=0.0, failure_probability=1.0)
        state = make_state([task], time=10.0, pressure=0.0)
        self.scheduler.schedule(state, 1.0, constant(0.0))
        assert state.tasks["safe"].status == TaskStatus.RUNNING
        # The 0.0 draw is also below the flip probability
        assert state.tasks["safe"].phase == TaskPhase.IO

    def test_completion(self):
        workers = [Worker(id="w0", max_cpu=4.0, max_ram=16.0)]
        task = make_running("almost", started_at=0.0, progress=0.95)
        workers[0].assign_task("almost", 1.0, 1.0)
        task.assigned_worker = "w0"
        state = make_state([task], time=3.0, workers=workers)
        self.scheduler.schedule(state, 1.0, constant(0.5))

        almost = state.tasks["almost"]
        assert almost.status == TaskStatus.COMPLETED
        assert almost.progress >= 1.0
        assert almost.finished_at == 3.0
        assert state.workers[0].active_task_ids == []
        assert state.workers[0].used_cpu == 0.0

    def test_phase_flip(self):
        state = make_state([make_running("a")], time=1.0)
        self.scheduler.schedule(state, 1.0, scripted(0.9, 0.1))
        assert state.tasks["a"].phase == TaskPhase.IO

    def test_failed_task_skips_phase_flip(self):
        """A hazard failure ends the task's checks: no flip draw is taken."""
        task = make_running("doomed", started_at=0.0, failure_probability=1.0)
        state = make_state([task], time=10.0, pressure=1.0)
        self.scheduler.schedule(state, 1.0, scripted(0.0))
        assert state.tasks["doomed"].status == TaskStatus.FAILED
        assert state.tasks["doomed"].phase == TaskPhase.CPU

    def test_admitted_task_runs_same_tick(self):
        state = make_state([make_task("new")], time=1.0, cap=1)
        self.scheduler.schedule(state, 1.0, constant(0.5))
        assert state.tasks["new"].status == TaskStatus.RUNNING
        assert state.tasks["new"].progress == pytest.approx(0.2)

    def test_terminal_tasks_untouched(self):
        done = make_running("done")
        done.progress = 1.2
        done.mark_completed(0.5)
        state = make_state([done], time=1.0, pressure=2.0)
        self.scheduler.schedule(state, 1.0, constant(0.0))
        assert state.tasks["done"].status == TaskStatus.COMPLETED
        assert state.tasks["done"].progress == 1.2
        assert state.tasks["done"].finished_at == 0.5
