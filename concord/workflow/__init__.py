"""Work Item / Step lifecycle."""

from .engine import WorkflowEngine, WorkItemView, compute_progress
from .step_planner import PlannedStep, plan_steps

__all__ = [
    "WorkflowEngine",
    "WorkItemView",
    "compute_progress",
    "PlannedStep",
    "plan_steps",
]
