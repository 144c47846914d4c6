"""Commands, the replay log, and outbound notifications."""

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from pressim.models.state import SystemState
from pressim.models.task import Task


# ── Inbound commands ──────────────────────────────────────────────────

class StartCommand(BaseModel):
    type: Literal["START"] = "START"


class PauseCommand(BaseModel):
    type: Literal["PAUSE"] = "PAUSE"


class StepCommand(BaseModel):
    type: Literal["STEP"] = "STEP"


class AddTaskCommand(BaseModel):
    type: Literal["ADD_TASK"] = "ADD_TASK"
    task: Task


class SetPolicyCommand(BaseModel):
    type: Literal["SET_POLICY"] = "SET_POLICY"
    policy: str


class SetConfigCommand(BaseModel):
    type: Literal["SET_CONFIG"] = "SET_CONFIG"
    changes: dict[str, Any] = Field(default_factory=dict)


class SetResourcesCommand(BaseModel):
    type: Literal["SET_RESOURCES"] = "SET_RESOURCES"
    changes: dict[str, Any] = Field(default_factory=dict)


Command = Annotated[
    Union[
        StartCommand,
        PauseCommand,
        StepCommand,
        AddTaskCommand,
        SetPolicyCommand,
        SetConfigCommand,
        SetResourcesCommand,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(raw: dict[str, Any]) -> Command:
    """Build a command from a transport payload such as {"type": "SET_POLICY", "policy": "FAIRNESS"}."""
    return _command_adapter.validate_python(raw)


# ── Replay log ────────────────────────────────────────────────────────

class LogEntry(BaseModel):
    """A command as received, stamped with when it arrived.

    `tick` is the number of ticks executed before the command was applied;
    replay uses it to interleave commands with ticks exactly.
    """
    simulated_time: float
    tick: int = Field(ge=0)
    command: Command


class ReplayData(BaseModel):
    """Everything needed, together with the initial snapshot, to reproduce a run."""
    seed: int
    dt: float = Field(gt=0)
    ticks: int = Field(ge=0, description="Tick count at export time")
    collapse_pressure: float = 2.0
    collapse_ticks: int = Field(default=5, ge=1)
    collapse_stability: int = 15
    events: list[LogEntry] = Field(default_factory=list)


class EventLog:
    """Append-only ordered record of injected commands."""

    def __init__(self):
        self._entries: list[LogEntry] = []

    def append(self, simulated_time: float, tick: int, command: Command) -> LogEntry:
        # Entries never alias caller objects
        entry = LogEntry(simulated_time=simulated_time, tick=tick, command=command.model_copy(deep=True))
        self._entries.append(entry)
        return entry

    def clear(self) -> None:
        self._entries = []

    @property
    def entries(self) -> list[LogEntry]:
        return [entry.model_copy(deep=True) for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)


# ── Outbound notifications ────────────────────────────────────────────

@dataclass(frozen=True)
class StateNotification:
    """Emitted after every tick and every applied command."""
    snapshot: SystemState


@dataclass(frozen=True)
class CollapseNotification:
    """Emitted once when the run collapses. The cadence stops with it."""
    time: float
    stability_index: int
    pressure: float
    reason: str

    def __repr__(self) -> str:
        return (
            f"Collapse(t={self.time:.2f}, stability={self.stability_index}, "
            f"pressure={self.pressure:.2f}, reason={self.reason!r})"
        )


Notification = Union[StateNotification, CollapseNotification]
