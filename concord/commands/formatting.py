"""Markdown rendering for command results.

Pure functions that turn analyses, Work Items and contexts into the text
returned by ``CommandProcessor``.
"""

from __future__ import annotations

from concord.config import StepStatus
from concord.context.stack import ContextSummary
from concord.orchestration.consensus import QualityReport
from concord.orchestration.models import MultiEvaluatorAnalysis
from concord.store.models import AnalysisRecord, Step, WorkItem
from concord.workflow.engine import WorkItemView

STEP_STATUS_ICONS = {
    StepStatus.PENDING: "⏳",
    StepStatus.IN_PROGRESS: "🔄",
    StepStatus.COMPLETED: "✅",
    StepStatus.FAILED: "❌",
    StepStatus.SKIPPED: "⏭️",
}


def _progress_bar(percentage: int, width: int = 20) -> str:
    filled = round(width * percentage / 100)
    return "█" * filled + "░" * (width - filled) + f" {percentage}%"


def format_analysis(
    analysis: MultiEvaluatorAnalysis,
    quality: QualityReport | None = None,
    analysis_id: str | None = None,
) -> str:
    """Render a full multi-evaluator analysis."""
    header = "# 🔍 Multi-Evaluator Analysis"
    if analysis_id:
        header += f" ({analysis_id})"

    lines = [header, "", analysis.summary.rstrip(), "", "## Evaluator Opinions", ""]
    for response in analysis.responses:
        lines.append(f"- {response.text} _(confidence {response.confidence * 100:.0f}%)_")

    if analysis.recommendations:
        lines += ["", "## Recommendations", ""]
        lines += [f"{i}. {r}" for i, r in enumerate(analysis.recommendations, 1)]

    if quality is not None and not quality.is_valid:
        lines += ["", "## ⚠️ Quality Issues", ""]
        lines += [f"- {issue}" for issue in quality.issues]

    return "\n".join(lines) + "\n"


def format_stored_analysis(record: AnalysisRecord) -> str:
    """Render a previously stored analysis that is being reused."""
    lines = [
        f"# 🔍 Reused Analysis ({record.id})",
        "",
        f"_Saved {record.created_at:%Y-%m-%d %H:%M} UTC_",
        "",
        record.summary.rstrip(),
        "",
        "## Consensus",
        "",
    ]
    lines += [f"- **{evaluator_id}**: {text}" for evaluator_id, text in record.consensus.items()]
    if record.recommendations:
        lines += ["", "## Recommendations", ""]
        lines += [f"{i}. {r}" for i, r in enumerate(record.recommendations, 1)]
    return "\n".join(lines) + "\n"


def format_step_line(step: Step) -> str:
    icon = STEP_STATUS_ICONS.get(StepStatus(step.status), "•")
    deps = f" (after {', '.join(map(str, step.dependencies))})" if step.dependencies else ""
    errors = f" [{step.error_count} error(s)]" if step.error_count else ""
    return f"{icon} {step.sequence_number}. {step.title}{deps}{errors}"


def format_work_item(work_item: WorkItem, steps: list[Step]) -> str:
    lines = [
        f"# 📋 {work_item.title} ({work_item.id})",
        "",
        f"**Kind:** {work_item.kind} | **Priority:** {work_item.priority} | **Status:** {work_item.status}",
        f"**Progress:** {_progress_bar(work_item.progress_percentage)}",
        "",
        "## Steps",
        "",
    ]
    lines += [format_step_line(s) for s in steps]
    return "\n".join(lines) + "\n"


def format_view(view: WorkItemView, summary: ContextSummary | None = None) -> str:
    """Render where the user left off."""
    text = format_work_item(view.work_item, view.steps)
    lines = [text.rstrip(), ""]

    if view.current_step is not None:
        lines.append(f"**Current step:** {view.current_step.sequence_number}. {view.current_step.title}")
    elif view.next_step is not None:
        lines.append(f"**Next step:** {view.next_step.sequence_number}. {view.next_step.title}")

    if summary is not None:
        lines += [
            "",
            "## ⏯️ Resume",
            "",
            f"- **Where:** {summary.description}",
            f"- **Location:** {summary.location}",
            f"- **Next action:** {summary.next_action}",
            f"- **Saved:** {summary.age}",
        ]
    return "\n".join(lines) + "\n"


def format_step_started(step: Step, guidance: str | None, bypassed: list[int]) -> str:
    lines = [f"# 🔄 Step {step.sequence_number}: {step.title}", ""]
    if step.description:
        lines += [step.description, ""]
    if bypassed:
        lines += [f"⚠️ Started without completed dependencies: {', '.join(map(str, bypassed))}", ""]
    if step.completion_criteria:
        lines += ["## Done When", ""]
        lines += [f"- [ ] {c}" for c in step.completion_criteria]
        lines.append("")
    if guidance:
        lines += ["## Guidance", "", guidance, ""]
    lines.append("Confirm the step when done, or report an error.")
    return "\n".join(lines) + "\n"


def format_error_report(step: Step, bug_id: str, analysis: MultiEvaluatorAnalysis | None) -> str:
    lines = [
        f"# ❌ Error on step {step.sequence_number}: {step.title}",
        "",
        f"**Bug:** {bug_id} | **Attempts failed:** {step.error_count}",
        f"**Error:** {step.last_error}",
    ]
    if analysis is not None:
        lines += ["", "## Error Analysis", ""]
        lines += [f"- {r.text}" for r in analysis.responses]
        if analysis.recommendations:
            lines += ["", "## Suggested Corrections", ""]
            lines += [f"{i}. {r}" for i, r in enumerate(analysis.recommendations, 1)]
    lines += ["", f"Fix the error and execute step {step.sequence_number} again."]
    return "\n".join(lines) + "\n"


def format_status(data: dict) -> str:
    """Render project status counts."""
    lines = [
        f"# 📊 Project {data['project_id']}",
        "",
        f"**Work Items:** {data['total_work_items']}",
    ]
    lines += [f"- {status}: {count}" for status, count in data["work_items_by_status"].items() if count]
    lines.append(f"**Open bugs:** {data['open_bugs']}")

    recent = data.get("recent_work_items") or []
    if recent:
        lines += ["", "## Recent Work Items", ""]
        lines += [
            f"- {w.id} {w.title} ({w.status}, {w.progress_percentage}%)" for w in reversed(recent)
        ]

    context = data.get("context")
    if context is not None:
        lines += ["", f"**Next action:** {context.next_action or 'No action defined'}"]
    return "\n".join(lines) + "\n"
