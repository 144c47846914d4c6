"""Metrics Collector — summarizes a run from the session's notifications."""

from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pressim.models.state import SystemState
from pressim.models.task import FailureType, TaskStatus
from pressim.simulator.events import CollapseNotification, Notification, StateNotification


@dataclass
class MetricsReport:
    """Container for all computed metrics."""
    policy: str = ""
    total_tasks: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_pending: int = 0
    failures_by_type: dict[str, int] = field(default_factory=dict)
    avg_latency: float = 0.0
    max_latency: float = 0.0
    throughput: float = 0.0
    peak_pressure: float = 0.0
    min_stability: int = 100
    avg_stability: float = 100.0
    ticks_observed: int = 0
    total_simulation_time: float = 0.0
    collapsed: bool = False
    collapse_reason: Optional[str] = None


class MetricsCollector:
    """Listens to a session and computes a report from what it saw.

    Usage:
        collector = MetricsCollector()
        session.subscribe(collector.observe)
        ...
        report = collector.calculate()
    """

    def __init__(self):
        self.report: Optional[MetricsReport] = None
        self._last_state: Optional[SystemState] = None
        self._pressures: list[float] = []
        self._stabilities: list[int] = []
        self._seen_times: set[float] = set()
        self._collapse: Optional[CollapseNotification] = None

    def observe(self, notification: Notification) -> None:
        if isinstance(notification, CollapseNotification):
            self._collapse = notification
            return
        if isinstance(notification, StateNotification):
            state = notification.snapshot
            self._last_state = state
            # Commands also emit STATE; sample each simulated instant once
            if state.time in self._seen_times:
                return
            self._seen_times.add(state.time)
            self._pressures.append(state.metrics.pressure)
            self._stabilities.append(state.metrics.stability_index)

    def calculate(self) -> MetricsReport:
        """Compute all metrics from the last observed state and the sampled history."""
        state = self._last_state
        report = MetricsReport()
        if state is None:
            self.report = report
            return report

        tasks = list(state.tasks.values())
        report.policy = state.policy.value
        report.total_tasks = len(tasks)
        report.total_simulation_time = state.time
        report.ticks_observed = len(self._pressures)

        completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]
        failed = [t for t in tasks if t.status == TaskStatus.FAILED]
        report.tasks_completed = len(completed)
        report.tasks_failed = len(failed)
        report.tasks_pending = len(tasks) - len(completed) - len(failed)

        report.failures_by_type = {ft.value: 0 for ft in FailureType}
        for task in failed:
            if task.failure_type is not None:
                report.failures_by_type[task.failure_type.value] += 1

        latencies = [t.latency for t in completed if t.latency is not None]
        if latencies:
            report.avg_latency = sum(latencies) / len(latencies)
            report.max_latency = max(latencies)

        if state.time > 0:
            report.throughput = report.tasks_completed / state.time

        if self._pressures:
            report.peak_pressure = max(self._pressures)
            report.min_stability = min(self._stabilities)
            report.avg_stability = sum(self._stabilities) / len(self._stabilities)

        if self._collapse is not None:
            report.collapsed = True
            report.collapse_reason = self._collapse.reason

        self.report = report
        return report

    def print_report(self, console: Optional[Console] = None) -> None:
        """Print formatted metrics report."""
        console = console or Console()
        if self.report is None:
            console.print("No metrics calculated yet. Run calculate() first.")
            return

        r = self.report
        console.print(Panel(
            f"[bold cyan]Pressure Simulation Report[/bold cyan]\n"
            f"Policy: [bold yellow]{r.policy}[/bold yellow]",
            border_style="cyan",
        ))

        task_table = Table(title="Task Summary", border_style="blue")
        task_table.add_column("Metric", style="bold")
        task_table.add_column("Value", justify="right")
        task_table.add_row("Total Tasks", str(r.total_tasks))
        task_table.add_row("Completed", f"[green]{r.tasks_completed}[/green]")
        task_table.add_row("Failed", f"[red]{r.tasks_failed}[/red]")
        task_table.add_row("Pending", f"[yellow]{r.tasks_pending}[/yellow]")
        for failure_type, count in r.failures_by_type.items():
            if count:
                task_table.add_row(f"  {failure_type}", str(count))
        console.print(task_table)

        perf_table = Table(title="System Health", border_style="green")
        perf_table.add_column("Metric", style="bold")
        perf_table.add_column("Value", justify="right")
        perf_table.add_row("Avg Latency", f"{r.avg_latency:.2f}")
        perf_table.add_row("Max Latency", f"{r.max_latency:.2f}")
        perf_table.add_row("Throughput (tasks/s)", f"{r.throughput:.4f}")
        perf_table.add_row(
            "Peak Pressure",
            f"[{'red' if r.peak_pressure > 1 else 'green'}]{r.peak_pressure:.2f}[/]",
        )
        perf_table.add_row("Min Stability", str(r.min_stability))
        perf_table.add_row("Avg Stability", f"{r.avg_stability:.1f}")
        perf_table.add_row("Simulation Time", f"{r.total_simulation_time:.2f}")
        console.print(perf_table)

        if r.collapsed:
            console.print(f"[bold red]COLLAPSED[/bold red]: {r.collapse_reason}")
