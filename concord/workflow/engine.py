"""Work Item / Step state machine.

The engine creates Work Items from an analysis, gates Step execution on
dependencies, records confirmations and errors, and keeps each Work Item's
progress in step with its Steps. Every public operation returns an
``OperationResult``; workflow errors are reported, store errors propagate.

Reference state machines (see ``concord.config``):
    Work Item: pending → in_progress → completed, with cancelled/blocked exits
    Step:      pending → in_progress → completed | failed, pending → skipped,
               failed → in_progress (retry)
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import wraps
from typing import Any

from concord.config import (
    Priority,
    StepStatus,
    WorkItemKind,
    WorkItemStatus,
    can_transition_step,
    can_transition_work_item,
)
from concord.context.stack import ContextStackManager
from concord.errors import (
    NotFoundError,
    OperationResult,
    StateConflictError,
    ValidationError,
    WorkflowError,
)
from concord.orchestration.models import MultiEvaluatorAnalysis
from concord.store.base import WorkStore
from concord.store.models import (
    BugReport,
    CorrectionEntry,
    EntityKind,
    ResumptionContext,
    Step,
    WorkItem,
)
from concord.telemetry.spans import workflow_span

from .step_planner import plan_steps

logger = logging.getLogger(__name__)


def compute_progress(steps: list[Step]) -> int:
    """Percentage of Steps completed, rounded to the nearest integer.

    Skipped Steps count toward the total but not as completed.
    """
    if not steps:
        return 0
    completed = sum(1 for s in steps if s.status == StepStatus.COMPLETED)
    return round(100 * completed / len(steps))


@dataclass
class WorkItemView:
    """A Work Item with its ordered Steps and resumption pointer."""

    work_item: WorkItem
    steps: list[Step] = field(default_factory=list)
    context: ResumptionContext | None = None

    @property
    def completed_steps(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.COMPLETED)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> Step | None:
        """The in-progress Step, if any."""
        return next((s for s in self.steps if s.status == StepStatus.IN_PROGRESS), None)

    @property
    def next_step(self) -> Step | None:
        """The next Step that can be started (pending or failed)."""
        return _next_startable(self.steps)


def _next_startable(steps: list[Step]) -> Step | None:
    return next(
        (s for s in steps if s.status in (StepStatus.PENDING, StepStatus.FAILED)),
        None,
    )


def _now() -> datetime:
    return datetime.now(UTC)


def reports_errors(operation: str) -> Callable:
    """Run an engine operation inside a span, reporting workflow errors as results."""

    def decorator(func: Callable[..., OperationResult]) -> Callable[..., OperationResult]:
        signature = inspect.signature(func)

        @wraps(func)
        def wrapper(self: "WorkflowEngine", *args: Any, **kwargs: Any) -> OperationResult:
            project_id = signature.bind_partial(self, *args, **kwargs).arguments.get("project_id")
            with workflow_span(operation, project_id) as span:
                try:
                    result = func(self, *args, **kwargs)
                except WorkflowError as e:
                    logger.warning(
                        f"{operation} refused: {e.message}",
                        extra={"operation": operation, "error_kind": e.error_kind.value},
                    )
                    span.set_attribute("workflow.error_kind", e.error_kind.value)
                    return OperationResult.from_error(e)
                span.set_attribute("workflow.success", result.success)
                return result

        return wrapper

    return decorator


class WorkflowEngine:
    """Drives Work Items and their Steps through their lifecycles.

    Responsibilities:
    - Create Work Items and their Step plans from an analysis
    - Gate Step starts on completed dependencies (with explicit override)
    - Record confirmations, errors and skips
    - Recompute progress after every Step change and complete Work Items
    - Checkpoint the project's resumption context at each meaningful change

    Assumes a single writer per project: concurrent callers mutating the
    same Work Item are not coordinated.
    """

    def __init__(self, store: WorkStore, contexts: ContextStackManager):
        self.store = store
        self.contexts = contexts

    # ========== Lookups ==========

    def _get_work_item(self, work_item_id: str) -> WorkItem:
        work_item = self.store.get(EntityKind.WORK_ITEM, work_item_id)
        if work_item is None:
            raise NotFoundError(f"Work Item not found: {work_item_id}")
        return work_item

    def _get_step(self, step_id: str) -> Step:
        step = self.store.get(EntityKind.STEP, step_id)
        if step is None:
            raise NotFoundError(f"Step not found: {step_id}")
        return step

    def get_steps(self, work_item_id: str) -> list[Step]:
        """Steps of a Work Item in sequence order."""
        return self.store.list_entities(
            EntityKind.STEP,
            filters={"work_item_id": work_item_id},
            order_by="sequence_number",
        )

    def _resolve_active_step(self, project_id: str, step_id: str | None) -> tuple[WorkItem, Step]:
        """Find the target Step, defaulting to the one the active context points at."""
        if step_id is None:
            context = self.contexts.get_active(project_id)
            if context is None or not context.step_id:
                raise NotFoundError(f"No active step for project {project_id}")
            step_id = context.step_id

        step = self._get_step(step_id)
        work_item = self._get_work_item(step.work_item_id)
        if work_item.project_id != project_id:
            raise NotFoundError(f"Step {step_id} does not belong to project {project_id}")
        return work_item, step

    # ========== Transitions ==========

    def _transition_step(self, step: Step, target: StepStatus, **changes: Any) -> Step:
        if not can_transition_step(step.status, target):
            raise StateConflictError(
                f"Step {step.sequence_number} is {StepStatus(step.status).value}; "
                f"cannot move to {target.value}",
                unmet=[f"step {step.sequence_number} status is {StepStatus(step.status).value}"],
            )
        updated = self.store.update(
            EntityKind.STEP,
            step.id,
            {"status": target, "updated_at": _now(), **changes},
        )
        if updated is None:
            raise NotFoundError(f"Step not found: {step.id}")
        logger.info(f"Step {step.id} ({step.sequence_number}): {step.status} -> {target.value}")
        return updated

    def _transition_work_item(self, work_item: WorkItem, target: WorkItemStatus, **changes: Any) -> WorkItem:
        if not can_transition_work_item(work_item.status, target):
            raise StateConflictError(
                f"Work Item {work_item.id} is {WorkItemStatus(work_item.status).value}; "
                f"cannot move to {target.value}",
                unmet=[f"work item status is {WorkItemStatus(work_item.status).value}"],
            )
        updated = self.store.update(
            EntityKind.WORK_ITEM,
            work_item.id,
            {"status": target, "updated_at": _now(), **changes},
        )
        if updated is None:
            raise NotFoundError(f"Work Item not found: {work_item.id}")
        logger.info(f"Work Item {work_item.id}: {work_item.status} -> {target.value}")
        return updated

    def _require_active(self, work_item: WorkItem) -> None:
        """Step operations need a Work Item that is pending or in progress."""
        if work_item.status not in (WorkItemStatus.PENDING, WorkItemStatus.IN_PROGRESS):
            status = WorkItemStatus(work_item.status).value
            raise StateConflictError(
                f"Work Item {work_item.id} is {status}",
                unmet=[f"work item status is {status}"],
            )

    def _refresh_progress(self, work_item: WorkItem) -> WorkItem:
        """Recompute progress from the Steps and complete the Work Item when all are done."""
        steps = self.get_steps(work_item.id)
        progress = compute_progress(steps)
        next_step = _next_startable(steps)
        current = next((s for s in steps if s.status == StepStatus.IN_PROGRESS), next_step)

        changes: dict[str, Any] = {
            "progress_percentage": progress,
            "total_steps": len(steps),
            "current_step_index": current.sequence_number if current else len(steps),
            "updated_at": _now(),
        }

        all_completed = bool(steps) and all(s.status == StepStatus.COMPLETED for s in steps)
        if all_completed and work_item.status != WorkItemStatus.COMPLETED:
            changes["progress_percentage"] = 100
            changes["completed_at"] = _now()
            return self._transition_work_item(work_item, WorkItemStatus.COMPLETED, **changes)

        updated = self.store.update(EntityKind.WORK_ITEM, work_item.id, changes)
        if updated is None:
            raise NotFoundError(f"Work Item not found: {work_item.id}")
        return updated

    # ========== Work Item Operations ==========

    @reports_errors("create_work_item")
    def create_work_item(
        self,
        project_id: str,
        title: str,
        analysis: MultiEvaluatorAnalysis,
        kind: WorkItemKind = WorkItemKind.FEATURE,
        priority: Priority = Priority.MEDIUM,
        description: str = "",
        analysis_id: str | None = None,
    ) -> OperationResult:
        """Create a Work Item and its Steps from an analysis.

        Pushes a resumption context pointing at Step 1.
        """
        if not project_id or not project_id.strip():
            raise ValidationError("project_id is required")
        if not title or not title.strip():
            raise ValidationError("A title is required to create a Work Item")

        planned = plan_steps(title, analysis.consensus, exclude=analysis.degraded_evaluators)

        work_item = self.store.insert(
            EntityKind.WORK_ITEM,
            WorkItem(
                project_id=project_id,
                title=title,
                description=description or title,
                kind=kind,
                priority=priority,
                consensus=dict(analysis.consensus),
                analysis_id=analysis_id,
                total_steps=len(planned),
            ),
        )
        steps = [self.store.insert(EntityKind.STEP, p.to_step(work_item.id)) for p in planned]

        first = steps[0]
        context = self.contexts.push(
            project_id,
            work_item_id=work_item.id,
            step_id=first.id,
            next_action=f"Start step {first.sequence_number}: {first.title}",
        )

        logger.info(f"Created Work Item {work_item.id} with {len(steps)} step(s) for project {project_id}")
        return OperationResult.ok(
            f"Created Work Item {work_item.id} with {len(steps)} step(s)",
            work_item=work_item,
            steps=steps,
            context=context,
        )

    @reports_errors("cancel_work_item")
    def cancel_work_item(self, work_item_id: str, reason: str = "") -> OperationResult:
        work_item = self._transition_work_item(self._get_work_item(work_item_id), WorkItemStatus.CANCELLED)
        logger.info(f"Cancelled Work Item {work_item_id}: {reason or 'no reason given'}")
        return OperationResult.ok(f"Cancelled Work Item {work_item_id}", work_item=work_item, reason=reason)

    @reports_errors("block_work_item")
    def block_work_item(self, work_item_id: str, reason: str = "") -> OperationResult:
        work_item = self._transition_work_item(self._get_work_item(work_item_id), WorkItemStatus.BLOCKED)
        return OperationResult.ok(f"Blocked Work Item {work_item_id}", work_item=work_item, reason=reason)

    @reports_errors("unblock_work_item")
    def unblock_work_item(self, work_item_id: str) -> OperationResult:
        """Return a blocked Work Item to in_progress."""
        work_item = self._get_work_item(work_item_id)
        if work_item.status != WorkItemStatus.BLOCKED:
            status = WorkItemStatus(work_item.status).value
            raise StateConflictError(
                f"Work Item {work_item_id} is {status}; only blocked Work Items can be unblocked",
                unmet=[f"work item status is {status}"],
            )
        work_item = self._transition_work_item(work_item, WorkItemStatus.IN_PROGRESS)
        return OperationResult.ok(f"Unblocked Work Item {work_item_id}", work_item=work_item)

    # ========== Step Operations ==========

    @reports_errors("start_step")
    def start_step(
        self,
        work_item_id: str,
        sequence_number: int,
        override: bool = False,
    ) -> OperationResult:
        """Move a pending or failed Step to in_progress.

        Refused with the list of unmet dependencies unless ``override`` is set.
        """
        work_item = self._get_work_item(work_item_id)
        self._require_active(work_item)

        steps = self.get_steps(work_item_id)
        by_sequence = {s.sequence_number: s for s in steps}
        step = by_sequence.get(sequence_number)
        if step is None:
            raise NotFoundError(f"Step {sequence_number} not found in Work Item {work_item_id}")

        unmet = [
            d
            for d in step.dependencies
            if d not in by_sequence or by_sequence[d].status != StepStatus.COMPLETED
        ]
        if unmet and not override:
            raise StateConflictError(
                f"Step {sequence_number} has unmet dependencies: {', '.join(map(str, unmet))}",
                unmet=[
                    f"step {d} is {StepStatus(by_sequence[d].status).value}" if d in by_sequence else f"step {d} is missing"
                    for d in unmet
                ],
                unmet_dependencies=unmet,
            )
        if unmet:
            logger.warning(f"Starting step {sequence_number} of {work_item_id} with unmet dependencies {unmet}")

        step = self._transition_step(step, StepStatus.IN_PROGRESS, started_at=_now())

        if work_item.status == WorkItemStatus.PENDING:
            work_item = self._transition_work_item(work_item, WorkItemStatus.IN_PROGRESS, started_at=_now())
        work_item = self._refresh_progress(work_item)

        context = self.contexts.checkpoint(
            work_item.project_id,
            work_item_id=work_item.id,
            step_id=step.id,
            next_action=f"Confirm step {step.sequence_number} when done, or report an error",
        )

        return OperationResult.ok(
            f"Started step {step.sequence_number}: {step.title}",
            work_item=work_item,
            step=step,
            context=context,
            bypassed_dependencies=unmet,
        )

    @reports_errors("confirm_step")
    def confirm_step(
        self,
        project_id: str,
        step_id: str | None = None,
        notes: str = "",
        confirmed_by: str = "user",
    ) -> OperationResult:
        """Mark an in-progress Step completed and advance the Work Item.

        Defaults to the Step referenced by the project's active context.
        """
        work_item, step = self._resolve_active_step(project_id, step_id)
        self._require_active(work_item)

        step = self._transition_step(
            step,
            StepStatus.COMPLETED,
            confirmed_at=_now(),
            confirmed_by=confirmed_by,
            notes=notes or step.notes,
        )
        work_item = self._refresh_progress(work_item)
        next_step = _next_startable(self.get_steps(work_item.id))

        if work_item.status == WorkItemStatus.COMPLETED:
            next_action = "All steps completed"
            message = f"Confirmed step {step.sequence_number}. Work Item {work_item.id} completed."
        elif next_step is not None:
            next_action = f"Start step {next_step.sequence_number}: {next_step.title}"
            message = f"Confirmed step {step.sequence_number}. Next: step {next_step.sequence_number}."
        else:
            next_action = "No startable steps remain"
            message = f"Confirmed step {step.sequence_number}."

        context = self.contexts.checkpoint(
            project_id,
            work_item_id=work_item.id,
            step_id=next_step.id if next_step else None,
            next_action=next_action,
            notes=notes,
        )

        return OperationResult.ok(
            message,
            work_item=work_item,
            step=step,
            next_step=next_step,
            context=context,
            work_item_completed=work_item.status == WorkItemStatus.COMPLETED,
        )

    @reports_errors("report_step_error")
    def report_step_error(
        self,
        project_id: str,
        error: str,
        step_id: str | None = None,
        analysis_summary: str = "",
        stack_trace: str | None = None,
    ) -> OperationResult:
        """Record an error on an in-progress Step and mark it failed.

        Creates a bug report, increments the error count and appends a
        correction entry. The Step can be started again afterwards.
        """
        if not error or not error.strip():
            raise ValidationError("An error description is required")

        work_item, step = self._resolve_active_step(project_id, step_id)
        self._require_active(work_item)

        if step.status != StepStatus.IN_PROGRESS:
            status = StepStatus(step.status).value
            raise StateConflictError(
                f"Step {step.sequence_number} is {status}; only in-progress steps can fail",
                unmet=[f"step {step.sequence_number} status is {status}"],
            )

        bug = self.store.insert(
            EntityKind.BUG,
            BugReport(
                project_id=project_id,
                work_item_id=work_item.id,
                step_id=step.id,
                title=f"Error in step {step.sequence_number}: {step.title}",
                description=error,
                stack_trace=stack_trace,
            ),
        )

        step = self._transition_step(
            step,
            StepStatus.FAILED,
            error_count=step.error_count + 1,
            last_error=error,
            correction_log=[
                *step.correction_log,
                CorrectionEntry(error=error, analysis_summary=analysis_summary),
            ],
        )
        work_item = self._refresh_progress(work_item)

        context = self.contexts.checkpoint(
            project_id,
            work_item_id=work_item.id,
            step_id=step.id,
            next_action=f"Fix the error and restart step {step.sequence_number}",
            notes=error,
        )

        return OperationResult.ok(
            f"Recorded error on step {step.sequence_number} (attempt {step.error_count})",
            work_item=work_item,
            step=step,
            bug=bug,
            context=context,
        )

    @reports_errors("skip_step")
    def skip_step(self, work_item_id: str, sequence_number: int, reason: str = "") -> OperationResult:
        """Skip a pending Step. Skipped Steps do not satisfy dependencies."""
        work_item = self._get_work_item(work_item_id)
        self._require_active(work_item)

        step = next((s for s in self.get_steps(work_item_id) if s.sequence_number == sequence_number), None)
        if step is None:
            raise NotFoundError(f"Step {sequence_number} not found in Work Item {work_item_id}")

        step = self._transition_step(step, StepStatus.SKIPPED, notes=reason or step.notes)
        work_item = self._refresh_progress(work_item)
        return OperationResult.ok(f"Skipped step {sequence_number}", work_item=work_item, step=step)

    @reports_errors("record_step_guidance")
    def record_step_guidance(self, step_id: str, guidance: str) -> OperationResult:
        """Store the owner evaluator's latest guidance on a Step."""
        step = self.store.update(EntityKind.STEP, step_id, {"guidance": guidance, "updated_at": _now()})
        if step is None:
            raise NotFoundError(f"Step not found: {step_id}")
        return OperationResult.ok(f"Recorded guidance for step {step.sequence_number}", step=step)

    # ========== Views ==========

    @reports_errors("get_active_work_item_view")
    def get_active_work_item_view(self, project_id: str) -> OperationResult:
        """The Work Item the project's active context points at, with its Steps."""
        context = self.contexts.get_active(project_id)
        if context is None or not context.work_item_id:
            raise NotFoundError(f"No active Work Item for project {project_id}")

        work_item = self._get_work_item(context.work_item_id)
        view = WorkItemView(work_item=work_item, steps=self.get_steps(work_item.id), context=context)
        return OperationResult.ok(f"Work Item {work_item.id}: {work_item.title}", view=view)

    def get_work_item_view(self, work_item_id: str) -> WorkItemView:
        """View of a specific Work Item. Raises NotFoundError if missing."""
        work_item = self._get_work_item(work_item_id)
        return WorkItemView(work_item=work_item, steps=self.get_steps(work_item_id))

    @reports_errors("get_project_status")
    def get_project_status(self, project_id: str) -> OperationResult:
        """Counts of Work Items by status, open bugs and the active context."""
        work_items = self.store.list_entities(
            EntityKind.WORK_ITEM, filters={"project_id": project_id}, order_by="created_at"
        )
        by_status = {status.value: 0 for status in WorkItemStatus}
        for item in work_items:
            by_status[WorkItemStatus(item.status).value] += 1

        open_bugs = [
            b
            for b in self.store.list_entities(EntityKind.BUG, filters={"project_id": project_id})
            if b.status in ("open", "in_progress")
        ]

        return OperationResult.ok(
            f"Project {project_id}: {len(work_items)} Work Item(s)",
            project_id=project_id,
            total_work_items=len(work_items),
            work_items_by_status=by_status,
            open_bugs=len(open_bugs),
            recent_work_items=work_items[-5:],
            context=self.contexts.get_active(project_id),
        )
