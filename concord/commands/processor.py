"""Named-command layer over the orchestrator and workflow engine.

Each command takes structured arguments and returns an ``OperationResult``
whose ``message`` is markdown for the caller to display. Workflow errors are
reported in the result; store errors propagate.

Commands:
    analyze  -- Multi-evaluator analysis, reusing a recent stored one
    create   -- Analyze a request and create a Work Item with Steps
    execute  -- Start a Step and fetch guidance from its owner evaluator
    confirm  -- Complete the active Step and advance
    error    -- Report an error on the active Step with an error analysis
    continue -- Show where work on the project was left off
    status   -- Project-wide counts
    pop      -- Return to the parent resumption context
    cleanup  -- Sweep old inactive resumption contexts
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from concord.config import (
    ERROR_ANALYSIS_EVALUATORS,
    ErrorKind,
    Priority,
    Settings,
    WorkItemKind,
)
from concord.context.stack import ContextStackManager
from concord.errors import OperationResult, ValidationError, WorkflowError
from concord.evaluators.base import EvaluatorContext
from concord.orchestration.consensus import assess_quality
from concord.orchestration.models import MultiEvaluatorAnalysis
from concord.orchestration.orchestrator import EvaluatorOrchestrator
from concord.store.base import WorkStore
from concord.store.models import AnalysisRecord, EntityKind
from concord.workflow.engine import WorkflowEngine

from . import formatting

logger = logging.getLogger(__name__)


class CommandProcessor:
    """Dispatches named commands to the core components.

    Usage:
        processor = CommandProcessor(orchestrator, engine, contexts, store)
        result = await processor.dispatch("create", {"project_id": "p", "title": "Login"})
        print(result.message)
    """

    def __init__(
        self,
        orchestrator: EvaluatorOrchestrator,
        engine: WorkflowEngine,
        contexts: ContextStackManager,
        store: WorkStore,
        settings: Settings | None = None,
    ):
        self.orchestrator = orchestrator
        self.engine = engine
        self.contexts = contexts
        self.store = store
        self.settings = settings or Settings()

        self._commands: dict[str, Callable[..., Awaitable[OperationResult]]] = {
            "analyze": self.analyze,
            "create": self.create,
            "execute": self.execute,
            "confirm": self.confirm,
            "error": self.error,
            "continue": self.continue_work,
            "status": self.status,
            "pop": self.pop,
            "cleanup": self.cleanup,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    async def dispatch(self, command: str, args: dict[str, Any] | None = None) -> OperationResult:
        """Run a command by name.

        Unknown commands and missing or unexpected arguments are reported
        as validation failures.
        """
        handler = self._commands.get(command)
        if handler is None:
            return OperationResult.fail(
                f"Unknown command '{command}'. Available: {', '.join(self._commands)}",
                ErrorKind.VALIDATION,
            )

        args = args or {}
        try:
            inspect.signature(handler).bind(**args)
        except TypeError as e:
            return OperationResult.fail(f"Invalid arguments for '{command}': {e}", ErrorKind.VALIDATION)

        logger.info(f"Dispatching command {command}", extra={"command": command})
        return await handler(**args)

    # ========== Helpers ==========

    def _store_analysis(
        self, project_id: str, description: str, analysis: MultiEvaluatorAnalysis
    ) -> AnalysisRecord:
        now = datetime.now(UTC)
        return self.store.insert(
            EntityKind.ANALYSIS,
            AnalysisRecord(
                project_id=project_id,
                description=description,
                consensus=analysis.consensus,
                responses=[r.model_dump() for r in analysis.responses],
                summary=analysis.summary,
                recommendations=analysis.recommendations,
                average_confidence=analysis.average_confidence,
                created_at=now,
                expires_at=now + timedelta(days=self.settings.analysis_expiration_days),
            ),
        )

    def _find_recent_analysis(self, project_id: str, description: str) -> AnalysisRecord | None:
        now = datetime.now(UTC)
        cutoff = now - timedelta(days=self.settings.analysis_reuse_days)
        candidates = [
            r
            for r in self.store.search(
                EntityKind.ANALYSIS, "description", description, filters={"project_id": project_id}
            )
            if r.created_at >= cutoff and (r.expires_at is None or r.expires_at > now)
        ]
        return max(candidates, key=lambda r: r.created_at, default=None)

    # ========== Commands ==========

    async def analyze(
        self,
        project_id: str,
        description: str,
        evaluator_ids: list[str] | None = None,
        code_context: str | None = None,
        business_rules: str | None = None,
        force: bool = False,
    ) -> OperationResult:
        """Analyze a request, reusing a matching analysis from the last few days."""
        try:
            if not description or not description.strip():
                raise ValidationError("A description is required for analysis")

            if not force and evaluator_ids is None:
                existing = self._find_recent_analysis(project_id, description)
                if existing is not None:
                    logger.info(f"Reusing analysis {existing.id} for project {project_id}")
                    return OperationResult.ok(
                        formatting.format_stored_analysis(existing),
                        analysis_id=existing.id,
                        reused=True,
                    )

            context = EvaluatorContext(
                project_id=project_id,
                description=description,
                code_context=code_context,
                business_rules=business_rules,
            )
            analysis = await self.orchestrator.run_all(context, evaluator_ids)
        except WorkflowError as e:
            return OperationResult.from_error(e)

        record = self._store_analysis(project_id, description, analysis)
        quality = assess_quality(analysis.responses, evaluator_ids or self.orchestrator.registry.ids())
        return OperationResult.ok(
            formatting.format_analysis(analysis, quality, record.id),
            analysis=analysis,
            analysis_id=record.id,
            quality=quality,
            reused=False,
        )

    async def create(
        self,
        project_id: str,
        title: str,
        description: str | None = None,
        kind: str = WorkItemKind.FEATURE,
        priority: str = Priority.MEDIUM,
        code_context: str | None = None,
        business_rules: str | None = None,
    ) -> OperationResult:
        """Analyze a request and turn the consensus into a Work Item."""
        description = description or title
        try:
            if kind not in WorkItemKind.values():
                raise ValidationError(f"Unknown kind '{kind}'. Use one of: {', '.join(WorkItemKind.values())}")
            if priority not in Priority.values():
                raise ValidationError(f"Unknown priority '{priority}'. Use one of: {', '.join(Priority.values())}")

            context = EvaluatorContext(
                project_id=project_id,
                description=description,
                code_context=code_context,
                business_rules=business_rules,
            )
            analysis = await self.orchestrator.run_all(context)
        except WorkflowError as e:
            return OperationResult.from_error(e)

        record = self._store_analysis(project_id, description, analysis)
        result = self.engine.create_work_item(
            project_id=project_id,
            title=title,
            analysis=analysis,
            kind=WorkItemKind(kind),
            priority=Priority(priority),
            description=description,
            analysis_id=record.id,
        )
        if result.failed:
            return result

        result.message = (
            formatting.format_work_item(result.data["work_item"], result.data["steps"])
            + "\n"
            + analysis.summary
        )
        result.data["analysis"] = analysis
        return result

    async def execute(
        self,
        project_id: str,
        sequence_number: int,
        work_item_id: str | None = None,
        force: bool = False,
    ) -> OperationResult:
        """Start a Step and ask its owner evaluator for guidance.

        ``work_item_id`` defaults to the Work Item of the active context.
        ``force`` bypasses the dependency gate.
        """
        if work_item_id is None:
            context = self.contexts.get_active(project_id)
            if context is None or not context.work_item_id:
                return OperationResult.fail(f"No active Work Item for project {project_id}", ErrorKind.NOT_FOUND)
            work_item_id = context.work_item_id

        result = self.engine.start_step(work_item_id, sequence_number, override=force)
        if result.failed:
            return result

        step = result.data["step"]
        work_item = result.data["work_item"]
        guidance = None
        if step.owner_evaluator_id in self.orchestrator.registry:
            response = await self.orchestrator.run_single(
                EvaluatorContext(
                    project_id=project_id,
                    description=step.description or step.title,
                    work_item=work_item,
                    step=step,
                ),
                step.owner_evaluator_id,
            )
            guidance = response.text
            self.engine.record_step_guidance(step.id, guidance)

        result.message = formatting.format_step_started(step, guidance, result.data["bypassed_dependencies"])
        result.data["guidance"] = guidance
        return result

    async def confirm(
        self,
        project_id: str,
        notes: str = "",
        confirmed_by: str = "user",
        step_id: str | None = None,
    ) -> OperationResult:
        """Confirm the active Step."""
        result = self.engine.confirm_step(project_id, step_id=step_id, notes=notes, confirmed_by=confirmed_by)
        if result.failed:
            return result

        view = self.engine.get_work_item_view(result.data["work_item"].id)
        result.message = f"✅ {result.message}\n\n" + formatting.format_work_item(view.work_item, view.steps)
        return result

    async def error(
        self,
        project_id: str,
        error: str,
        stack_trace: str | None = None,
        step_id: str | None = None,
    ) -> OperationResult:
        """Report an error on the active Step, with an error analysis."""
        if not error or not error.strip():
            return OperationResult.fail("An error description is required", ErrorKind.VALIDATION)

        context = self.contexts.get_active(project_id)
        target_step_id = step_id or (context.step_id if context else None)
        if target_step_id is None:
            return OperationResult.fail(f"No active step for project {project_id}", ErrorKind.NOT_FOUND)

        step = self.store.get(EntityKind.STEP, target_step_id)
        work_item = self.store.get(EntityKind.WORK_ITEM, step.work_item_id) if step else None

        analysis = None
        evaluators = [e for e in ERROR_ANALYSIS_EVALUATORS if e in self.orchestrator.registry]
        if evaluators:
            analysis = await self.orchestrator.run_selected(
                EvaluatorContext(
                    project_id=project_id,
                    description=f"Error: {error}",
                    work_item=work_item.model_copy(update={"kind": WorkItemKind.BUG}) if work_item else None,
                    step=step,
                    code_context=stack_trace,
                ),
                evaluators,
            )

        result = self.engine.report_step_error(
            project_id=project_id,
            error=error,
            step_id=target_step_id,
            analysis_summary="; ".join(analysis.recommendations[:3]) if analysis else "",
            stack_trace=stack_trace,
        )
        if result.failed:
            return result

        result.message = formatting.format_error_report(result.data["step"], result.data["bug"].id, analysis)
        result.data["analysis"] = analysis
        return result

    async def continue_work(self, project_id: str) -> OperationResult:
        """Show the active Work Item and where work was left off."""
        result = self.engine.get_active_work_item_view(project_id)
        if result.failed:
            return result

        view = result.data["view"]
        summary = self.contexts.summarize(view.context) if view.context else None
        result.message = formatting.format_view(view, summary)
        return result

    async def status(self, project_id: str) -> OperationResult:
        result = self.engine.get_project_status(project_id)
        if result.succeeded:
            result.message = formatting.format_status(result.data)
        return result

    async def pop(self, project_id: str) -> OperationResult:
        """Return to the parent resumption context."""
        result = self.contexts.pop(project_id)
        if result.succeeded:
            summary = self.contexts.summarize(result.data["context"])
            result.message = f"⏯️ Resumed: {summary.description}. Next action: {summary.next_action}"
        return result

    async def cleanup(self, project_id: str, days: int | None = None) -> OperationResult:
        """Delete inactive contexts older than the retention window."""
        days = self.settings.context_retention_days if days is None else days
        if days < 0:
            return OperationResult.fail("Retention days must not be negative", ErrorKind.VALIDATION)

        deleted = self.contexts.sweep_inactive(project_id, timedelta(days=days))
        return OperationResult.ok(
            f"🧹 Removed {deleted} inactive context(s) older than {days} day(s)",
            deleted=deleted,
        )
