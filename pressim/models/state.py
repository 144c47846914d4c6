"""System state — the aggregate root the engine transforms tick by tick."""

from typing import Any, TypeVar

from pydantic import BaseModel, Field

from pressim.models.policy import PolicyName
from pressim.models.task import Task, TaskStatus
from pressim.models.worker import Worker

M = TypeVar("M", bound=BaseModel)


class SystemResources(BaseModel):
    """Total pooled capacity."""

    total_cpu: float = Field(gt=0, description="CPU units in the pool")
    total_ram: float = Field(gt=0, description="RAM units in the pool")


class SystemConfig(BaseModel):
    """Admission limits, applied on the next scheduling pass."""

    max_concurrent_tasks: int = Field(default=4, ge=0, description="Hard cap on running tasks")


class SystemMetrics(BaseModel):
    """Derived figures. Only ever produced by the metrics aggregator."""

    queue_length: int = 0
    cpu_pressure: float = 0.0
    ram_pressure: float = 0.0
    pressure: float = 0.0
    completed: int = 0
    failed: int = 0
    stability_index: int = 100


class SystemState(BaseModel):
    """Everything the engine needs to compute the next tick."""

    time: float = Field(default=0.0, ge=0, description="Simulated seconds elapsed")
    policy: PolicyName = Field(default=PolicyName.BALANCED)
    resources: SystemResources
    config: SystemConfig = Field(default_factory=SystemConfig)
    tasks: dict[str, Task] = Field(default_factory=dict, description="Tasks by id, insertion ordered")
    workers: list[Worker] = Field(default_factory=list)
    metrics: SystemMetrics = Field(default_factory=SystemMetrics)

    def tasks_with_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self.tasks.values() if t.status == status]

    @property
    def running_count(self) -> int:
        return sum(1 for t in self.tasks.values() if t.status == TaskStatus.RUNNING)

    def find_worker(self, worker_id: str) -> Worker | None:
        for worker in self.workers:
            if worker.id == worker_id:
                return worker
        return None


def merge_partial(model: M, partial: dict[str, Any]) -> M:
    """Return a re-validated copy of `model` with the known keys of `partial` applied.

    Unknown keys are dropped rather than rejected.
    """
    known = {k: v for k, v in partial.items() if k in type(model).model_fields}
    if not known:
        return model.model_copy(deep=True)
    return type(model).model_validate({**model.model_dump(), **known})
