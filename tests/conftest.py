"""Shared test fixtures and helpers.

Centralizes store/engine wiring and the fake evaluators used across
test modules.
"""

import asyncio

import pytest

from concord.context.stack import ContextStackManager
from concord.evaluators.base import EvaluatorResponse
from concord.evaluators.registry import default_registry
from concord.orchestration.models import MultiEvaluatorAnalysis
from concord.orchestration.orchestrator import EvaluatorOrchestrator
from concord.store.memory import InMemoryStore
from concord.workflow.engine import WorkflowEngine

PROJECT = "billing"

# ---------------------------------------------------------------------------
# Fake evaluators
#
# Plain classes satisfying the evaluator interface without inheriting from
# Evaluator, so failures reach the orchestrator's own recovery path.
# ---------------------------------------------------------------------------


class ExplodingEvaluator:
    """Always raises from analyze()."""

    def __init__(self, evaluator_id: str = "exploding", name: str = "Exploding"):
        self.evaluator_id = evaluator_id
        self.name = name

    async def analyze(self, context):
        raise RuntimeError("evaluator crashed")


class SlowEvaluator:
    """Sleeps, then answers with a fixed confidence."""

    def __init__(self, evaluator_id: str, delay: float, confidence: float = 0.8, suggestions=None):
        self.evaluator_id = evaluator_id
        self.name = evaluator_id.title()
        self.delay = delay
        self.confidence = confidence
        self.suggestions = suggestions or []

    async def analyze(self, context):
        await asyncio.sleep(self.delay)
        return EvaluatorResponse(
            evaluator_id=self.evaluator_id,
            text=f"🔹 **{self.name}**: finished after {self.delay}s",
            confidence=self.confidence,
            suggestions=list(self.suggestions),
        )


def make_analysis(consensus: dict[str, str], degraded: list[str] | None = None) -> MultiEvaluatorAnalysis:
    """Build an analysis with the given consensus texts."""
    return MultiEvaluatorAnalysis(
        consensus=consensus,
        responses=[
            EvaluatorResponse(evaluator_id=evaluator_id, text=text, confidence=0.8)
            for evaluator_id, text in consensus.items()
        ],
        summary="summary",
        degraded_evaluators=degraded or [],
    )


# ========== Fixtures ==========


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def contexts(store):
    """Context stack manager over the shared store."""
    return ContextStackManager(store)


@pytest.fixture
def engine(store, contexts):
    """Workflow engine over the shared store and context stack."""
    return WorkflowEngine(store, contexts)


@pytest.fixture
def orchestrator():
    """Orchestrator with the six built-in evaluators."""
    return EvaluatorOrchestrator(default_registry())


@pytest.fixture
def three_step_analysis():
    """Consensus that plans three chained steps: plan, implement, test."""
    return make_analysis(
        {
            "architect": "Put the export behind the service layer.",
            "developer": "Add an export endpoint with validation.",
            "qa": "Test large exports and empty months.",
        }
    )


@pytest.fixture
def work_item(engine, three_step_analysis):
    """A freshly created three-step Work Item."""
    result = engine.create_work_item(
        project_id=PROJECT,
        title="Invoice export",
        analysis=three_step_analysis,
    )
    assert result.success, result.message
    return result.data["work_item"]


@pytest.fixture
def exploding():
    """Factory for evaluators that always raise."""
    return ExplodingEvaluator


@pytest.fixture
def slow():
    """Factory for evaluators that sleep before answering."""
    return SlowEvaluator


@pytest.fixture
def analysis_factory():
    """Factory for analyses with a given consensus."""
    return make_analysis
