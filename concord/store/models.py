"""Pydantic models for persisted workflow entities.

Every entity kind the engine persists is defined here, together with the
id prefix the store uses when assigning identifiers.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from concord.config import (
    BugSeverity,
    BugStatus,
    Priority,
    StepStatus,
    WorkItemKind,
    WorkItemStatus,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


class EntityKind(StrEnum):
    """Entity collections held by a store."""

    WORK_ITEM = "work_item"
    STEP = "step"
    ANALYSIS = "analysis"
    BUG = "bug"
    CONTEXT = "context"


class CorrectionEntry(BaseModel):
    """One error report recorded against a Step."""

    timestamp: datetime = Field(default_factory=utc_now)
    error: str
    analysis_summary: str = ""


class WorkItem(BaseModel):
    """A trackable unit of requested work, decomposed into Steps.

    Lifecycle: pending → in_progress → completed, with cancelled and
    blocked as side exits. Work Items are never deleted.
    """

    id: str = ""  # WI-XXX format, assigned by the store if empty
    project_id: str
    title: str
    description: str = ""
    kind: WorkItemKind = WorkItemKind.FEATURE
    priority: Priority = Priority.MEDIUM
    consensus: dict[str, str] = Field(default_factory=dict)  # evaluator id -> text
    analysis_id: str | None = None  # AN-XXX this item was created from
    status: WorkItemStatus = WorkItemStatus.PENDING
    progress_percentage: int = Field(default=0, ge=0, le=100)
    current_step_index: int = 1  # sequence number of the next actionable Step
    total_steps: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class Step(BaseModel):
    """Ordered, dependency-gated unit of execution within a Work Item.

    Dependencies are sequence numbers of earlier Steps in the same Work Item.
    """

    id: str = ""  # ST-XXX format, assigned by the store if empty
    work_item_id: str
    sequence_number: int = Field(ge=1)
    title: str
    description: str = ""
    owner_evaluator_id: str
    status: StepStatus = StepStatus.PENDING
    dependencies: list[int] = Field(default_factory=list)
    completion_criteria: list[str] = Field(default_factory=list)
    error_count: int = 0
    last_error: str | None = None
    correction_log: list[CorrectionEntry] = Field(default_factory=list)
    guidance: str = ""  # latest analysis from the owner evaluator
    notes: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None

    @model_validator(mode="after")
    def dependencies_precede_step(self) -> "Step":
        """Reject forward, self and non-positive dependencies."""
        bad = [d for d in self.dependencies if d < 1 or d >= self.sequence_number]
        if bad:
            raise ValueError(
                f"Step {self.sequence_number} may only depend on earlier steps, got {bad}"
            )
        return self


class AnalysisRecord(BaseModel):
    """Stored result of a multi-evaluator analysis."""

    id: str = ""  # AN-XXX format
    project_id: str
    description: str
    consensus: dict[str, str] = Field(default_factory=dict)
    responses: list[dict[str, Any]] = Field(default_factory=list)
    summary: str = ""
    recommendations: list[str] = Field(default_factory=list)
    average_confidence: float = 0.0
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None


class BugReport(BaseModel):
    """Error reported while executing a Step."""

    id: str = ""  # BUG-XXX format
    project_id: str
    work_item_id: str | None = None
    step_id: str | None = None
    title: str
    description: str = ""
    stack_trace: str | None = None
    severity: BugSeverity = BugSeverity.MEDIUM
    status: BugStatus = BugStatus.OPEN
    created_at: datetime = Field(default_factory=utc_now)


class ResumptionContext(BaseModel):
    """Saved pointer to where work on a project was left off.

    At most one context per project is active. ``parent_context_id`` links
    contexts into a per-project stack; ``stack_depth`` is the parent's depth
    plus one, or 0 for a root.
    """

    id: str = ""  # CTX-XXX format
    project_id: str
    work_item_id: str | None = None
    step_id: str | None = None
    session_payload: dict[str, Any] = Field(default_factory=dict)
    next_action: str = ""
    notes: str = ""
    is_active: bool = True
    stack_depth: int = Field(default=0, ge=0)
    parent_context_id: str | None = None
    saved_at: datetime = Field(default_factory=utc_now)
    resumed_at: datetime | None = None


ENTITY_MODELS: dict[EntityKind, type[BaseModel]] = {
    EntityKind.WORK_ITEM: WorkItem,
    EntityKind.STEP: Step,
    EntityKind.ANALYSIS: AnalysisRecord,
    EntityKind.BUG: BugReport,
    EntityKind.CONTEXT: ResumptionContext,
}

ID_PREFIXES: dict[EntityKind, str] = {
    EntityKind.WORK_ITEM: "WI",
    EntityKind.STEP: "ST",
    EntityKind.ANALYSIS: "AN",
    EntityKind.BUG: "BUG",
    EntityKind.CONTEXT: "CTX",
}
