"""Compare admission policies side-by-side on the same scenario.

Usage:
    python scripts/compare_policies.py --tasks 40 --workers 2 --seed 1
"""

import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console
from rich.table import Table

from pressim.metrics.collector import MetricsReport
from pressim.models.policy import PolicyName
from pressim.simulator.generator import ScenarioGenerator
from pressim.simulator.runner import run_scenario
from pressim.simulator.session import SimulationSession

console = Console()


def run_with_policy(policy: PolicyName, args) -> MetricsReport:
    """Regenerate the scenario from the seed and run it under `policy`."""
    gen = ScenarioGenerator(seed=args.seed)
    initial_state = gen.generate_state(
        num_workers=args.workers,
        total_cpu=args.cpu,
        total_ram=args.ram,
        policy=policy,
        max_concurrent_tasks=args.max_concurrent,
    )
    arrivals = gen.generate_arrivals(num_tasks=args.tasks)
    _session, collector = run_scenario(
        initial_state,
        arrivals,
        seed=args.seed,
        max_ticks=args.max_ticks,
        session=SimulationSession(dt=args.dt),
    )
    return collector.report


def print_comparison(reports: dict[str, MetricsReport]):
    """Print side-by-side comparison of policy runs."""
    names = list(reports.keys())

    def fmt_delta(new, baseline, lower_better=True):
        if baseline == 0:
            return ""
        pct = ((new - baseline) / baseline) * 100
        sign = "+" if pct > 0 else ""
        color = "red" if (pct > 0 and lower_better) or (pct < 0 and not lower_better) else "green"
        return f"[{color}]{sign}{pct:.1f}%[/]"

    metric_defs = [
        ("Tasks Completed", lambda r: r.tasks_completed, False),
        ("Tasks Failed", lambda r: r.tasks_failed, True),
        ("Tasks Pending", lambda r: r.tasks_pending, True),
        ("Load Shed", lambda r: r.failures_by_type.get("load_shed", 0), True),
        ("Starved", lambda r: r.failures_by_type.get("starvation", 0), True),
        ("Timed Out", lambda r: r.failures_by_type.get("timeout", 0), True),
        ("Pressure Failures", lambda r: r.failures_by_type.get("pressure", 0), True),
        ("Avg Latency", lambda r: r.avg_latency, True),
        ("Throughput", lambda r: r.throughput, False),
        ("Peak Pressure", lambda r: r.peak_pressure, True),
        ("Min Stability", lambda r: r.min_stability, False),
        ("Avg Stability", lambda r: r.avg_stability, False),
        ("Simulation Time", lambda r: r.total_simulation_time, False),
    ]

    def fmt_val(val):
        if isinstance(val, int):
            return str(val)
        return f"{val:.4f}" if val < 1 else f"{val:.2f}"

    table = Table(title=" vs ".join(names), border_style="cyan")
    table.add_column("Metric", style="bold")
    for name in names:
        table.add_column(name, justify="right")
    for name in names[1:]:
        table.add_column(f"Δ vs {names[0]}", justify="right")

    for metric_name, extract_fn, lower_better in metric_defs:
        row = [metric_name]
        vals = {n: extract_fn(reports[n]) for n in names}
        for n in names:
            row.append(fmt_val(vals[n]))
        for n in names[1:]:
            row.append(fmt_delta(vals[n], vals[names[0]], lower_better))
        table.add_row(*row)

    console.print(table)

    collapsed = [n for n in names if reports[n].collapsed]
    if collapsed:
        console.print(f"[bold red]Collapsed:[/bold red] {', '.join(collapsed)}")


def main():
    parser = argparse.ArgumentParser(description="Compare FAIRNESS vs BALANCED vs THROUGHPUT")
    parser.add_argument("--tasks", type=int, default=40, help="Number of tasks (default: 40)")
    parser.add_argument("--workers", type=int, default=2, help="Number of workers (default: 2)")
    parser.add_argument("--seed", type=int, default=1, help="Random seed (default: 1)")
    parser.add_argument("--cpu", type=float, default=8.0)
    parser.add_argument("--ram", type=float, default=32.0)
    parser.add_argument("--max-concurrent", type=int, default=6)
    parser.add_argument("--dt", type=float, default=0.1)
    parser.add_argument("--max-ticks", type=int, default=600)

    args = parser.parse_args()

    console.print(
        f"[bold]Scenario:[/bold] {args.tasks} tasks, {args.workers} workers, "
        f"cpu={args.cpu}, ram={args.ram}, seed={args.seed}\n"
    )

    reports = {policy.value: run_with_policy(policy, args) for policy in PolicyName}
    print_comparison(reports)


if __name__ == "__main__":
    main()
