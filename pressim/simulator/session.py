"""Simulation Session — the host that owns state, RNG, cadence and the replay log.

All mutation goes through `dispatch()`, one command at a time and always
between ticks. Ticks only run from `step()` or from `advance()` while the
cadence is started, so a session never has two ticks in flight.
"""

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from pressim.metrics.aggregator import compute_metrics
from pressim.models.policy import get_policy
from pressim.models.state import SystemMetrics, SystemState, merge_partial
from pressim.models.task import Task, TaskPhase, TaskStatus
from pressim.sampling.rng import Mulberry32, create_rng
from pressim.schedulers.base import BaseScheduler
from pressim.schedulers.pressure import PressureScheduler
from pressim.simulator.events import (
    AddTaskCommand,
    CollapseNotification,
    Command,
    EventLog,
    Notification,
    PauseCommand,
    ReplayData,
    SetConfigCommand,
    SetPolicyCommand,
    SetResourcesCommand,
    StartCommand,
    StateNotification,
    StepCommand,
)
from pressim.simulator.tick import tick

logger = logging.getLogger(__name__)

Listener = Callable[[Notification], None]


class SimulationSession:
    """Explicit simulation host. One session, one run."""

    def __init__(
        self,
        dt: float = 0.1,
        collapse_pressure: float = 2.0,
        collapse_ticks: int = 5,
        collapse_stability: int = 15,
        scheduler: Optional[BaseScheduler] = None,
    ):
        """
        Args:
            dt: Simulated seconds per tick.
            collapse_pressure: Pressure above which the over-pressure streak grows.
            collapse_ticks: Consecutive over-pressure ticks that trigger collapse.
            collapse_stability: Stability index at or below which the run collapses.
            scheduler: Per-tick scheduler (default: PressureScheduler).
        """
        self.dt = dt
        self.collapse_pressure = collapse_pressure
        self.collapse_ticks = collapse_ticks
        self.collapse_stability = collapse_stability
        self.scheduler = scheduler or PressureScheduler()

        self.state: Optional[SystemState] = None
        self.seed: int = 1
        self.rng: Mulberry32 = create_rng(self.seed)
        self.event_log = EventLog()
        self.tick_count: int = 0
        self.running: bool = False
        self.collapsed: bool = False

        self._initial_snapshot: Optional[SystemState] = None
        self._overpressure_streak: int = 0
        self._listeners: list[Listener] = []

    @property
    def initialized(self) -> bool:
        return self.state is not None

    def subscribe(self, listener: Listener) -> None:
        """Register a callback for STATE and COLLAPSE notifications."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def snapshot(self) -> Optional[SystemState]:
        """Query the current state. Not logged."""
        return self.state.model_copy(deep=True) if self.state is not None else None

    # ── Lifecycle ─────────────────────────────────────────────────────

    def init(self, initial_state: SystemState, seed: int = 1) -> SystemMetrics:
        """Install a snapshot, reset the RNG and clear the log."""
        state = initial_state.model_copy(deep=True)
        state.metrics = compute_metrics(state)
        self._initial_snapshot = state.model_copy(deep=True)
        self._reset(seed)
        logger.info("Session initialized: seed=%d tasks=%d policy=%s",
                    seed, len(state.tasks), state.policy.value)
        self._emit_state()
        return self.state.metrics.model_copy()

    def export_replay(self) -> Optional[ReplayData]:
        if self.state is None:
            return None
        return ReplayData(
            seed=self.seed,
            dt=self.dt,
            ticks=self.tick_count,
            collapse_pressure=self.collapse_pressure,
            collapse_ticks=self.collapse_ticks,
            collapse_stability=self.collapse_stability,
            events=self.event_log.entries,
        )

    def replay(self, data: ReplayData) -> None:
        """Reset to the initial snapshot and re-run the logged commands and ticks.

        The exported dt and collapse thresholds replace the session's own.
        """
        if self._initial_snapshot is None:
            logger.debug("Replay ignored: session not initialized")
            return

        self.dt = data.dt
        self.collapse_pressure = data.collapse_pressure
        self.collapse_ticks = data.collapse_ticks
        self.collapse_stability = data.collapse_stability
        self._reset(data.seed)
        logger.info("Replaying %d commands over %d ticks (seed=%d)",
                    len(data.events), data.ticks, data.seed)

        for entry in data.events:
            self._run_ticks_until(entry.tick)
            self.dispatch(entry.command)
        self._run_ticks_until(data.ticks)
        self._emit_state()

    def _reset(self, seed: int) -> None:
        self.state = self._initial_snapshot.model_copy(deep=True)
        self.seed = seed
        self.rng = create_rng(seed)
        self.event_log.clear()
        self.tick_count = 0
        self.running = False
        self.collapsed = False
        self._overpressure_streak = 0

    # ── Commands ──────────────────────────────────────────────────────

    def dispatch(self, command: Command) -> None:
        """Apply one command. Commands before init are ignored."""
        if self.state is None:
            logger.debug("Ignoring %s: session not initialized", command.type)
            return

        self.event_log.append(self.state.time, self.tick_count, command)

        if self.collapsed:
            logger.debug("Ignoring %s: run has collapsed", command.type)
            return

        match command:
            case StartCommand():
                if not self.running:
                    self.running = True
                    logger.info("Cadence started at t=%.2f", self.state.time)
            case PauseCommand():
                if self.running:
                    self.running = False
                    logger.info("Cadence paused at t=%.2f", self.state.time)
            case StepCommand():
                self._run_tick()
            case AddTaskCommand(task=task):
                self._add_task(task)
            case SetPolicyCommand(policy=name):
                self._set_policy(name)
            case SetConfigCommand(changes=changes):
                self._merge("config", changes)
            case SetResourcesCommand(changes=changes):
                if self._merge("resources", changes):
                    self._propagate_capacity()

    def start(self) -> None:
        self.dispatch(StartCommand())

    def pause(self) -> None:
        self.dispatch(PauseCommand())

    def step(self) -> None:
        self.dispatch(StepCommand())

    def add_task(self, task: Task) -> None:
        self.dispatch(AddTaskCommand(task=task))

    def set_policy(self, name: str) -> None:
        self.dispatch(SetPolicyCommand(policy=name))

    def set_config(self, changes: dict[str, Any]) -> None:
        self.dispatch(SetConfigCommand(changes=changes))

    def set_resources(self, changes: dict[str, Any]) -> None:
        self.dispatch(SetResourcesCommand(changes=changes))

    def _add_task(self, task: Task) -> None:
        if task.id in self.state.tasks:
            logger.warning("Ignoring duplicate task id %r", task.id)
            return
        queued = task.model_copy(deep=True, update={
            "created_at": self.state.time,
            "status": TaskStatus.QUEUED,
            "progress": 0.0,
            "phase": TaskPhase.CPU,
            "started_at": None,
            "expected_end_at": None,
            "current_ram": None,
            "failure_type": None,
            "failure_reason": None,
            "finished_at": None,
            "assigned_worker": None,
        })
        self.state.tasks[queued.id] = queued
        self._emit_state()

    def _set_policy(self, name: str) -> None:
        try:
            self.state.policy = get_policy(name)
        except ValueError as exc:
            logger.warning("Ignoring SET_POLICY: %s", exc)
            return
        self._emit_state()

    def _merge(self, field: str, changes: dict[str, Any]) -> bool:
        try:
            merged = merge_partial(getattr(self.state, field), changes)
        except ValidationError as exc:
            logger.warning("Ignoring invalid %s update: %s", field, exc.errors())
            return False
        setattr(self.state, field, merged)
        self._emit_state()
        return True

    def _propagate_capacity(self) -> None:
        """Split pooled capacity evenly across online workers."""
        online = [w for w in self.state.workers if w.online]
        if not online:
            return
        for worker in online:
            worker.max_cpu = self.state.resources.total_cpu / len(online)
            worker.max_ram = self.state.resources.total_ram / len(online)

    # ── Cadence ───────────────────────────────────────────────────────

    def advance(self, ticks: int = 1) -> int:
        """Run up to `ticks` cadence ticks. Returns how many actually ran.

        Stops early on pause or collapse; does nothing while paused.
        """
        executed = 0
        while executed < ticks and self.running and not self.collapsed:
            self._run_tick()
            executed += 1
        return executed

    def _run_ticks_until(self, target: int) -> None:
        while self.tick_count < target and not self.collapsed:
            self._run_tick()

    def _run_tick(self) -> None:
        self.state = tick(self.state, self.dt, self.rng, self.scheduler)
        self.tick_count += 1
        self._emit_state()
        self._check_collapse()

    def _check_collapse(self) -> None:
        metrics = self.state.metrics
        if metrics.pressure > self.collapse_pressure:
            self._overpressure_streak += 1
        else:
            self._overpressure_streak = 0

        if metrics.stability_index <= self.collapse_stability:
            reason = f"Stability index fell to {metrics.stability_index}"
        elif self._overpressure_streak >= self.collapse_ticks:
            reason = (
                f"Pressure above {self.collapse_pressure:.2f} for "
                f"{self._overpressure_streak} consecutive ticks"
            )
        else:
            return

        self.collapsed = True
        self.running = False
        logger.warning("Collapse at t=%.2f: %s", self.state.time, reason)
        self._emit(CollapseNotification(
            time=self.state.time,
            stability_index=metrics.stability_index,
            pressure=metrics.pressure,
            reason=reason,
        ))

    # ── Notifications ─────────────────────────────────────────────────

    def _emit_state(self) -> None:
        self._emit(StateNotification(snapshot=self.state.model_copy(deep=True)))

    def _emit(self, notification: Notification) -> None:
        for listener in self._listeners:
            listener(notification)
