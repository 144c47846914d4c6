from pressim.schedulers.base import BaseScheduler
from pressim.schedulers.cost import CostBreakdown, compute_task_cost
from pressim.schedulers.pressure import PressureScheduler, admission_order

__all__ = ["BaseScheduler", "CostBreakdown", "compute_task_cost", "PressureScheduler", "admission_order"]
