from pressim.simulator.events import Command, LogEntry, ReplayData, parse_command
from pressim.simulator.generator import Arrival, ScenarioGenerator
from pressim.simulator.session import SimulationSession
from pressim.simulator.tick import tick

__all__ = [
    "Arrival",
    "Command",
    "LogEntry",
    "ReplayData",
    "ScenarioGenerator",
    "SimulationSession",
    "parse_command",
    "tick",
]
