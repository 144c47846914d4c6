"""Worker model — capacity bookkeeping for the nodes behind the shared pool."""

from enum import Enum
from pydantic import BaseModel, Field


class WorkerStatus(str, Enum):
    """Operational states: IDLE ↔ BUSY → DOWN → IDLE"""
    IDLE = "idle"
    BUSY = "busy"
    DOWN = "down"


class Worker(BaseModel):
    """A node contributing CPU/RAM to the pool. Bookkeeping only; never gates admission."""

    id: str = Field(description="Unique worker identifier")
    max_cpu: float = Field(gt=0, description="CPU units this worker provides")
    max_ram: float = Field(gt=0, description="RAM units this worker provides")
    used_cpu: float = Field(default=0.0, ge=0, description="CPU units booked by running tasks")
    used_ram: float = Field(default=0.0, ge=0, description="RAM units booked by running tasks")
    status: WorkerStatus = Field(default=WorkerStatus.IDLE, description="Current operational state")
    active_task_ids: list[str] = Field(default_factory=list, description="Task IDs currently booked")

    @property
    def online(self) -> bool:
        return self.status != WorkerStatus.DOWN

    @property
    def load_ratio(self) -> float:
        """Booked CPU as a fraction of capacity (may exceed 1 under overload)."""
        return self.used_cpu / self.max_cpu

    def assign_task(self, task_id: str, cpu: float, ram: float) -> None:
        """Book a task — increases usage, sets status to BUSY."""
        self.used_cpu += cpu
        self.used_ram += ram
        self.active_task_ids.append(task_id)
        self.status = WorkerStatus.BUSY

    def release_task(self, task_id: str, cpu: float, ram: float) -> None:
        """Release a booking — decreases usage, sets IDLE if nothing remains."""
        self.used_cpu = max(0.0, self.used_cpu - cpu)
        self.used_ram = max(0.0, self.used_ram - ram)
        if task_id in self.active_task_ids:
            self.active_task_ids.remove(task_id)
        if not self.active_task_ids and self.status != WorkerStatus.DOWN:
            self.status = WorkerStatus.IDLE

    def __repr__(self) -> str:
        return (
            f"Worker(id={self.id!r}, cpu={self.used_cpu:.2f}/{self.max_cpu}, "
            f"status={self.status.value}, tasks={len(self.active_task_ids)})"
        )
