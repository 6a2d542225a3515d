"""Tests for concord.commands: the named-command layer.

Covers:
- Dispatch by name and argument checking
- analyze with reuse of recent analyses
- create / execute / confirm / error / continue / status / pop / cleanup
- A full Work Item driven to completion through dispatch

Run with: pytest tests/test_command_processor.py -v
"""

import asyncio

import pytest

from concord.app import build_processor
from concord.config import ErrorKind, Settings, StepStatus, WorkItemStatus
from concord.store.memory import InMemoryStore
from concord.store.models import EntityKind

PROJECT = "billing"


def _run(processor, command, **args):
    return asyncio.run(processor.dispatch(command, args))


# ========== Fixtures ==========


@pytest.fixture
def processor():
    """Processor over an in-memory store with default settings."""
    return build_processor(settings=Settings(), store=InMemoryStore())


@pytest.fixture
def created(processor):
    """Result of creating the 'Invoice export' Work Item."""
    result = _run(processor, "create", project_id=PROJECT, title="Invoice export")
    assert result.success, result.message
    return result


# ========== Dispatch ==========


class TestDispatch:
    """Test command lookup and argument checking."""

    def test_commands(self, processor):
        assert processor.commands == [
            "analyze",
            "create",
            "execute",
            "confirm",
            "error",
            "continue",
            "status",
            "pop",
            "cleanup",
        ]

    def test_unknown_command(self, processor):
        result = _run(processor, "deploy", project_id=PROJECT)

        assert result.error_kind == ErrorKind.VALIDATION
        assert "deploy" in result.message

    def test_missing_argument(self, processor):
        result = _run(processor, "create", project_id=PROJECT)

        assert result.error_kind == ErrorKind.VALIDATION
        assert "title" in result.message

    def test_unexpected_argument(self, processor):
        result = _run(processor, "status", project_id=PROJECT, verbose=True)
        assert result.error_kind == ErrorKind.VALIDATION

    def test_no_arguments(self, processor):
        result = asyncio.run(processor.dispatch("status"))
        assert result.error_kind == ErrorKind.VALIDATION


# ========== Analyze ==========


class TestAnalyze:
    """Test the analyze command and analysis reuse."""

    def test_stores_analysis(self, processor):
        result = _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv")

        assert result.success
        assert result.data["reused"] is False
        assert result.data["analysis_id"] == "AN-001"
        assert result.message.startswith("# 🔍 Multi-Evaluator Analysis (AN-001)")
        assert processor.store.get(EntityKind.ANALYSIS, "AN-001").expires_at is not None

    def test_recent_analysis_reused(self, processor):
        _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv")
        again = _run(processor, "analyze", project_id=PROJECT, description="export invoices to CSV")

        assert again.data["reused"] is True
        assert again.data["analysis_id"] == "AN-001"
        assert again.message.startswith("# 🔍 Reused Analysis (AN-001)")

    def test_force_runs_fresh_analysis(self, processor):
        _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv")
        forced = _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv", force=True)

        assert forced.data["reused"] is False
        assert forced.data["analysis_id"] == "AN-002"

    def test_other_project_not_reused(self, processor):
        _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv")
        other = _run(processor, "analyze", project_id="crm", description="Export invoices to csv")

        assert other.data["reused"] is False

    def test_reuse_window(self):
        processor = build_processor(settings=Settings(analysis_reuse_days=0), store=InMemoryStore())
        _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv")
        again = _run(processor, "analyze", project_id=PROJECT, description="Export invoices to csv")

        assert again.data["reused"] is False

    def test_selected_evaluators(self, processor):
        result = _run(
            processor,
            "analyze",
            project_id=PROJECT,
            description="Export invoices to csv",
            evaluator_ids=["qa", "dba"],
        )

        assert result.data["analysis"].evaluator_ids == ["qa", "dba"]

    def test_empty_description(self, processor):
        result = _run(processor, "analyze", project_id=PROJECT, description=" ")
        assert result.error_kind == ErrorKind.VALIDATION

    def test_unknown_evaluator(self, processor):
        result = _run(processor, "analyze", project_id=PROJECT, description="x", evaluator_ids=["legal"])

        assert result.error_kind == ErrorKind.VALIDATION
        assert result.unmet == ["legal"]


# ========== Create ==========


class TestCreate:
    """Test Work Item creation through the command layer."""

    def test_creates_work_item_with_steps(self, processor, created):
        work_item = created.data["work_item"]

        assert work_item.id == "WI-001"
        assert work_item.analysis_id == "AN-001"
        assert [s.owner_evaluator_id for s in created.data["steps"]] == ["architect", "developer", "dba", "qa"]
        assert created.message.startswith("# 📋 Invoice export (WI-001)")
        assert "## 📋 Multi-Evaluator Summary" in created.message

    def test_kind_and_priority(self, processor):
        result = _run(processor, "create", project_id=PROJECT, title="Fix rounding", kind="bug", priority="high")

        assert result.data["work_item"].kind == "bug"
        assert result.data["work_item"].priority == "high"

    @pytest.mark.parametrize("field,value", [("kind", "epic"), ("priority", "whenever")])
    def test_invalid_enum_values(self, processor, field, value):
        result = _run(processor, "create", project_id=PROJECT, title="Export", **{field: value})

        assert result.error_kind == ErrorKind.VALIDATION
        assert processor.store.list_entities(EntityKind.WORK_ITEM) == []

    def test_empty_title(self, processor):
        result = _run(processor, "create", project_id=PROJECT, title="")
        assert result.error_kind == ErrorKind.VALIDATION


# ========== Execute / Confirm ==========


class TestExecute:
    """Test starting steps with owner guidance."""

    def test_first_step_gets_guidance(self, processor, created):
        result = _run(processor, "execute", project_id=PROJECT, sequence_number=1)

        assert result.success
        assert result.data["guidance"].startswith("🏗️ **Software Architect**:")
        assert "## Guidance" in result.message
        assert "## Done When" in result.message
        assert "- [ ] Approach agreed" in result.message
        step = processor.store.get(EntityKind.STEP, result.data["step"].id)
        assert step.guidance == result.data["guidance"]
        assert step.status == StepStatus.IN_PROGRESS

    def test_gate_refusal(self, processor, created):
        result = _run(processor, "execute", project_id=PROJECT, sequence_number=2)

        assert result.error_kind == ErrorKind.STATE_CONFLICT
        assert result.unmet == ["step 1 is pending"]

    def test_force(self, processor, created):
        result = _run(processor, "execute", project_id=PROJECT, sequence_number=2, force=True)

        assert result.success
        assert "Started without completed dependencies: 1" in result.message

    def test_explicit_work_item(self, processor, created):
        work_item_id = created.data["work_item"].id
        result = _run(processor, "execute", project_id=PROJECT, sequence_number=1, work_item_id=work_item_id)

        assert result.data["work_item"].status == WorkItemStatus.IN_PROGRESS

    def test_no_active_work_item(self, processor):
        result = _run(processor, "execute", project_id=PROJECT, sequence_number=1)
        assert result.error_kind == ErrorKind.NOT_FOUND


class TestConfirm:
    """Test confirming the active step."""

    def test_confirm(self, processor, created):
        _run(processor, "execute", project_id=PROJECT, sequence_number=1)
        result = _run(processor, "confirm", project_id=PROJECT, notes="Plan agreed")

        assert result.success
        assert result.message.startswith("✅ Confirmed step 1. Next: step 2.")
        assert result.data["work_item"].progress_percentage == 25

    def test_confirm_before_execute(self, processor, created):
        result = _run(processor, "confirm", project_id=PROJECT)
        assert result.error_kind == ErrorKind.STATE_CONFLICT


# ========== Error ==========


class TestError:
    """Test error reporting with error analysis."""

    def test_error_analysis_and_failed_step(self, processor, created):
        _run(processor, "execute", project_id=PROJECT, sequence_number=1)
        result = _run(processor, "error", project_id=PROJECT, error="KeyError: 'currency'", stack_trace="Traceback ...")

        assert result.success
        assert result.data["analysis"].evaluator_ids == ["developer", "qa", "architect"]
        step = result.data["step"]
        assert step.status == StepStatus.FAILED
        assert step.error_count == 1
        assert step.correction_log[0].analysis_summary
        assert result.message.startswith("# ❌ Error on step 1")
        assert processor.store.get(EntityKind.BUG, result.data["bug"].id).stack_trace == "Traceback ..."

    def test_retry_after_error(self, processor, created):
        _run(processor, "execute", project_id=PROJECT, sequence_number=1)
        _run(processor, "error", project_id=PROJECT, error="boom")
        retried = _run(processor, "execute", project_id=PROJECT, sequence_number=1)

        assert retried.success
        assert retried.data["step"].error_count == 1

    def test_error_on_pending_step(self, processor, created):
        result = _run(processor, "error", project_id=PROJECT, error="boom")
        assert result.error_kind == ErrorKind.STATE_CONFLICT

    def test_error_requires_description(self, processor, created):
        assert _run(processor, "error", project_id=PROJECT, error="").error_kind == ErrorKind.VALIDATION

    def test_error_without_active_step(self, processor):
        assert _run(processor, "error", project_id=PROJECT, error="boom").error_kind == ErrorKind.NOT_FOUND


# ========== Continue / Status / Pop / Cleanup ==========


class TestNavigation:
    """Test resuming, status, pop and cleanup."""

    def test_continue(self, processor, created):
        _run(processor, "execute", project_id=PROJECT, sequence_number=1)
        result = _run(processor, "continue", project_id=PROJECT)

        assert result.success
        assert "**Current step:** 1. Plan: Invoice export" in result.message
        assert "## ⏯️ Resume" in result.message

    def test_continue_without_work(self, processor):
        assert _run(processor, "continue", project_id=PROJECT).error_kind == ErrorKind.NOT_FOUND

    def test_status(self, processor, created):
        result = _run(processor, "status", project_id=PROJECT)

        assert result.data["total_work_items"] == 1
        assert result.message.startswith("# 📊 Project billing")
        assert "WI-001 Invoice export" in result.message

    def test_pop_root_refused(self, processor, created):
        assert _run(processor, "pop", project_id=PROJECT).error_kind == ErrorKind.STATE_CONFLICT

    def test_pop_to_previous_work_item(self, processor, created):
        _run(processor, "create", project_id=PROJECT, title="Hotfix for rounding")
        result = _run(processor, "pop", project_id=PROJECT)

        assert result.success
        assert result.data["context"].work_item_id == "WI-001"
        assert result.message.startswith("⏯️ Resumed:")

    def test_cleanup(self, processor, created):
        _run(processor, "execute", project_id=PROJECT, sequence_number=1)
        _run(processor, "confirm", project_id=PROJECT)

        kept = _run(processor, "cleanup", project_id=PROJECT)
        assert kept.data["deleted"] == 0

        swept = _run(processor, "cleanup", project_id=PROJECT, days=0)
        assert swept.data["deleted"] == 2
        assert processor.contexts.get_active(PROJECT) is not None

    def test_cleanup_negative_days(self, processor):
        assert _run(processor, "cleanup", project_id=PROJECT, days=-1).error_kind == ErrorKind.VALIDATION


# ========== End to End ==========


class TestFullWorkflow:
    """Drive a Work Item to completion through dispatch."""

    def test_complete_work_item(self, processor, created):
        for sequence in range(1, 5):
            started = _run(processor, "execute", project_id=PROJECT, sequence_number=sequence)
            assert started.success, started.message
            confirmed = _run(processor, "confirm", project_id=PROJECT)
            assert confirmed.success, confirmed.message

        assert confirmed.data["work_item_completed"] is True
        assert confirmed.data["work_item"].status == WorkItemStatus.COMPLETED
        assert confirmed.data["work_item"].progress_percentage == 100
        assert "Work Item WI-001 completed" in confirmed.message
