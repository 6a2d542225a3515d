"""Evaluator contract shared by every analysis perspective.

An evaluator turns an ``EvaluatorContext`` into an ``EvaluatorResponse``.
Subclasses implement ``evaluate`` and return an ``Assessment``; the base
class scores it, decorates the text, and converts any internal failure into
a degraded response so a single evaluator can never abort a batch.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from concord.config import MANUAL_REVIEW_SUGGESTION
from concord.store.models import Step, WorkItem

from .scoring import MAX_CONFIDENCE, MIN_CONFIDENCE, ConfidenceFactors, compute_confidence

logger = logging.getLogger(__name__)

# Worst-case factors; scores to the confidence floor
DEGRADED_FACTORS = ConfidenceFactors(complexity=5, familiarity=1, risk_level=5, data_quality=1)


class EvaluatorContext(BaseModel):
    """Input handed to every evaluator for one request."""

    project_id: str
    description: str
    work_item: WorkItem | None = None
    step: Step | None = None
    code_context: str | None = None
    business_rules: str | None = None
    previous_analyses: list[str] = Field(default_factory=list)


class EvaluatorResponse(BaseModel):
    """One evaluator's opinion. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    evaluator_id: str
    text: str
    confidence: float = Field(ge=MIN_CONFIDENCE, le=MAX_CONFIDENCE)
    suggestions: list[str] = Field(default_factory=list)
    degraded: bool = False  # True when produced by failure recovery


@dataclass
class Assessment:
    """Raw output of an evaluator before scoring."""

    body: str
    factors: ConfidenceFactors
    suggestions: list[str] = field(default_factory=list)


@runtime_checkable
class AnalysisCapability(Protocol):
    """Anything the orchestrator can invoke as an evaluator."""

    evaluator_id: str
    name: str

    async def analyze(self, context: EvaluatorContext) -> EvaluatorResponse: ...


def format_response(emoji: str, name: str, body: str) -> str:
    """Decorate analysis text with the evaluator's emoji and name."""
    return f"{emoji} **{name}**: {body}"


def degraded_response(
    evaluator_id: str,
    name: str,
    reason: str,
    emoji: str = "⚠️",
) -> EvaluatorResponse:
    """Build the fixed low-confidence response used when an evaluator fails."""
    return EvaluatorResponse(
        evaluator_id=evaluator_id,
        text=format_response(emoji, name, f"Analysis unavailable ({reason}). Review manually."),
        confidence=compute_confidence(DEGRADED_FACTORS),
        suggestions=[MANUAL_REVIEW_SUGGESTION],
        degraded=True,
    )


class Evaluator(ABC):
    """Abstract base class for analysis perspectives.

    Each evaluator declares who it is and what it looks at:
    - evaluator_id: registry key (e.g. "architect")
    - name: display name used in decorated text
    - emoji: visual marker prefixed to the text
    - focus: what the perspective cares about
    - key_question: the question it tries to answer
    """

    evaluator_id: str = ""
    name: str = ""
    emoji: str = ""
    focus: str = ""
    key_question: str = ""

    @abstractmethod
    def evaluate(self, context: EvaluatorContext) -> Assessment:
        """Produce the raw assessment for a request.

        Args:
            context: The request being analyzed

        Returns:
            Assessment with body text, scoring factors and suggestions
        """
        pass

    async def analyze(self, context: EvaluatorContext) -> EvaluatorResponse:
        """Analyze a request. Never raises.

        Any failure inside ``evaluate`` (including an empty description) is
        logged and converted into a degraded response.
        """
        logger.info(f"{self.name} analyzing: {context.description[:80]}")
        try:
            if not context.description.strip():
                raise ValueError("description is empty")
            assessment = self.evaluate(context)
            return EvaluatorResponse(
                evaluator_id=self.evaluator_id,
                text=format_response(self.emoji, self.name, assessment.body),
                confidence=compute_confidence(assessment.factors),
                suggestions=list(assessment.suggestions),
            )
        except Exception as e:
            logger.error(
                f"{self.name} analysis failed: {e}",
                extra={"evaluator_id": self.evaluator_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            return degraded_response(self.evaluator_id, self.name, type(e).__name__, self.emoji)


class FunctionEvaluator(Evaluator):
    """Evaluator backed by a plain function.

    Lets callers register a perspective without subclassing:

        registry.register(FunctionEvaluator("security", "Security", "🔒", check_security))
    """

    def __init__(
        self,
        evaluator_id: str,
        name: str,
        emoji: str,
        fn: Callable[[EvaluatorContext], Assessment],
        focus: str = "",
        key_question: str = "",
    ):
        self.evaluator_id = evaluator_id
        self.name = name
        self.emoji = emoji
        self.focus = focus
        self.key_question = key_question
        self._fn = fn

    def evaluate(self, context: EvaluatorContext) -> Assessment:
        return self._fn(context)


def describe(evaluator: Any) -> dict[str, str]:
    """Return the identifying attributes of an evaluator for display."""
    return {
        "id": evaluator.evaluator_id,
        "name": getattr(evaluator, "name", evaluator.evaluator_id),
        "focus": getattr(evaluator, "focus", ""),
        "key_question": getattr(evaluator, "key_question", ""),
    }
