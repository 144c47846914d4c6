"""Entry point for running pressure simulations.

Usage:
    python scripts/run_simulation.py --tasks 30 --policy balanced --seed 1
    python scripts/run_simulation.py --scenario state.json --export run.json
    python scripts/run_simulation.py --replay run.json
"""

import argparse
import json
import logging
import sys
import os
from collections import Counter
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console
from rich.logging import RichHandler

from pressim.metrics.collector import MetricsCollector
from pressim.models.policy import get_policy
from pressim.models.state import SystemState
from pressim.simulator.events import ReplayData
from pressim.simulator.generator import ScenarioGenerator
from pressim.simulator.runner import run_scenario
from pressim.simulator.session import SimulationSession

console = Console()
logger = logging.getLogger("pressim")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_bundle(path: str) -> tuple[SystemState, ReplayData]:
    """Read an exported run: the initial snapshot plus its replay log."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return (
        SystemState.model_validate(payload["initial_state"]),
        ReplayData.model_validate(payload["replay"]),
    )


def write_bundle(path: str, initial_state: SystemState, replay: ReplayData) -> None:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "initial_state": initial_state.model_dump(mode="json"),
        "replay": replay.model_dump(mode="json"),
    }
    output.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def status_counts(state: SystemState) -> Counter:
    return Counter(t.status.value for t in state.tasks.values())


def replay_bundle(path: str) -> None:
    """Re-run an exported bundle under the thresholds it was recorded with."""
    initial_state, data = load_bundle(path)
    session = SimulationSession(
        dt=data.dt,
        collapse_pressure=data.collapse_pressure,
        collapse_ticks=data.collapse_ticks,
        collapse_stability=data.collapse_stability,
    )
    collector = MetricsCollector()
    session.subscribe(collector.observe)
    session.init(initial_state, data.seed)
    session.replay(data)

    collector.calculate()
    collector.print_report(console)
    console.print(
        f"[dim]Replayed {len(data.events)} commands over {session.tick_count} ticks; "
        f"statuses: {dict(status_counts(session.state))}[/dim]"
    )


def main():
    parser = argparse.ArgumentParser(
        description="pressim — pressure-driven task scheduling simulator"
    )
    parser.add_argument("--tasks", type=int, default=30, help="Number of generated tasks (default: 30)")
    parser.add_argument("--workers", type=int, default=2, help="Number of workers (default: 2)")
    parser.add_argument("--policy", type=str, default="balanced", help="fairness | balanced | throughput")
    parser.add_argument("--seed", type=int, default=1, help="Engine and scenario seed (default: 1)")
    parser.add_argument("--cpu", type=float, default=8.0, help="Total CPU (default: 8)")
    parser.add_argument("--ram", type=float, default=32.0, help="Total RAM (default: 32)")
    parser.add_argument("--max-concurrent", type=int, default=6, help="Admission cap (default: 6)")
    parser.add_argument("--dt", type=float, default=0.1, help="Simulated seconds per tick (default: 0.1)")
    parser.add_argument("--max-ticks", type=int, default=600, help="Tick budget (default: 600)")
    parser.add_argument("--collapse-pressure", type=float, default=2.0, help="Sustained pressure limit (default: 2.0)")
    parser.add_argument("--scenario", type=str, help="Initial SystemState JSON file instead of a generated one")
    parser.add_argument("--export", type=str, help="Write initial state + replay log to this JSON file")
    parser.add_argument("--replay", type=str, help="Replay a previously exported run and exit")
    parser.add_argument("--log-level", type=str, default="warning", help="Logging level (default: warning)")

    args = parser.parse_args()
    configure_logging(args.log_level)

    if args.replay:
        replay_bundle(args.replay)
        return

    generator = ScenarioGenerator(seed=args.seed)
    if args.scenario:
        initial_state = SystemState.model_validate_json(Path(args.scenario).read_text(encoding="utf-8"))
        arrivals = []
    else:
        initial_state = generator.generate_state(
            num_workers=args.workers,
            total_cpu=args.cpu,
            total_ram=args.ram,
            policy=get_policy(args.policy),
            max_concurrent_tasks=args.max_concurrent,
        )
        arrivals = generator.generate_arrivals(num_tasks=args.tasks)

    console.print("[bold]pressim[/bold] — starting simulation...\n")
    session, collector = run_scenario(
        initial_state,
        arrivals,
        seed=args.seed,
        max_ticks=args.max_ticks,
        session=SimulationSession(dt=args.dt, collapse_pressure=args.collapse_pressure),
    )
    collector.print_report(console)

    console.print(
        f"\n[dim]Ran {session.tick_count} ticks, logged {len(session.event_log)} commands "
        f"in {session.state.time:.2f} simulated seconds[/dim]"
    )

    if args.export:
        write_bundle(args.export, initial_state, session.export_replay())
        console.print(f"[dim]Replay written to {args.export}[/dim]")


if __name__ == "__main__":
    main()
