"""Task model — the unit of work competing for CPU/RAM capacity."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional


class TaskStatus(str, Enum):
    """Lifecycle states: QUEUED → RUNNING → COMPLETED | FAILED (or QUEUED → FAILED)"""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskPhase(str, Enum):
    """Execution phase of a running task."""
    CPU = "cpu"
    IO = "io"


class FailureType(str, Enum):
    """Why a task terminated in FAILED."""
    PRESSURE = "pressure"
    TIMEOUT = "timeout"
    STARVATION = "starvation"
    LOAD_SHED = "load_shed"
    RANDOM = "random"


class ResourceCurve(BaseModel):
    """Sampling template for a CPU or RAM draw."""

    base: float = Field(ge=0, description="Nominal draw while running")
    peak: float = Field(ge=0, description="Draw at the top of the noise band")
    variance: float = Field(default=0.0, ge=0, description="Noise amplitude around base")


class ExecutionProfile(BaseModel):
    """How long a task runs and what it draws while running."""

    mean_duration: float = Field(gt=0, description="Expected run time at zero pressure")
    cpu_curve: ResourceCurve
    ram_curve: ResourceCurve


class Task(BaseModel):
    """A unit of computation admitted against shared system capacity."""

    id: str = Field(description="Unique task identifier")
    value: float = Field(default=1.0, description="Business value of completing the task")
    deadline: float = Field(ge=0, description="Simulated time the task should finish by")
    execution: ExecutionProfile
    created_at: float = Field(default=0.0, ge=0, description="When the task entered the queue")
    started_at: Optional[float] = Field(default=None, description="When the task was admitted")
    expected_end_at: Optional[float] = Field(default=None, description="started_at + mean_duration")
    progress: float = Field(default=0.0, ge=0, description="Fraction of work done")
    phase: TaskPhase = Field(default=TaskPhase.CPU, description="Current execution phase")
    current_ram: Optional[float] = Field(default=None, ge=0, description="Sampled RAM draw")
    failure_probability: float = Field(default=0.0, ge=0.0, le=1.0, description="Base failure hazard")
    max_queue_time: Optional[float] = Field(default=None, ge=0, description="Starvation limit while queued")
    status: TaskStatus = Field(default=TaskStatus.QUEUED, description="Current lifecycle state")
    failure_type: Optional[FailureType] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None)
    finished_at: Optional[float] = Field(default=None, description="When the task terminated")
    assigned_worker: Optional[str] = Field(default=None, description="Worker ID holding the booking")

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def latency(self) -> Optional[float]:
        """Time from creation to completion."""
        if self.status == TaskStatus.COMPLETED and self.finished_at is not None:
            return self.finished_at - self.created_at
        return None

    def mark_running(self, now: float, current_ram: float) -> None:
        self.status = TaskStatus.RUNNING
        self.started_at = now
        self.expected_end_at = now + self.execution.mean_duration
        self.current_ram = current_ram

    def mark_completed(self, now: float) -> None:
        self.status = TaskStatus.COMPLETED
        self.finished_at = now

    def mark_failed(self, failure_type: FailureType, now: float, reason: str) -> None:
        self.status = TaskStatus.FAILED
        self.failure_type = failure_type
        self.failure_reason = reason
        self.finished_at = now

    def __repr__(self) -> str:
        return (
            f"Task(id={self.id!r}, status={self.status.value}, "
            f"progress={self.progress:.2f}, phase={self.phase.value})"
        )
