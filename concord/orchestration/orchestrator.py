"""Parallel multi-evaluator orchestration.

Functions:
    EvaluatorOrchestrator.run_all      -- Fan out to all or selected evaluators, merge results.
    EvaluatorOrchestrator.run_selected -- Same, with a mandatory non-empty subset.
    EvaluatorOrchestrator.run_single   -- Invoke one evaluator with failure recovery.
"""

import asyncio
import logging
from collections.abc import Iterable

from concord.errors import ValidationError
from concord.evaluators.base import (
    AnalysisCapability,
    EvaluatorContext,
    EvaluatorResponse,
    degraded_response,
)
from concord.evaluators.registry import EvaluatorRegistry
from concord.telemetry.spans import evaluator_span, orchestration_span, record_error

from .consensus import build_consensus, rank_recommendations, summarize
from .models import MultiEvaluatorAnalysis

logger = logging.getLogger(__name__)


class EvaluatorOrchestrator:
    """Runs a panel of evaluators concurrently and synthesizes a consensus.

    Responsibilities:
    - Validate the request and the evaluator selection
    - Invoke every selected evaluator concurrently with per-evaluator isolation
    - Substitute a degraded response for any evaluator that fails or times out
    - Build the consensus, summary and ranked recommendations

    Individual evaluator failures never propagate. The only errors raised
    are ``ValidationError`` for an empty description or a bad selection.
    """

    def __init__(self, registry: EvaluatorRegistry, evaluator_timeout: float | None = None):
        """Initialize the orchestrator.

        Args:
            registry: Evaluators available to this orchestrator
            evaluator_timeout: Optional per-evaluator deadline in seconds
        """
        self.registry = registry
        self.evaluator_timeout = evaluator_timeout

    @staticmethod
    def _validate_context(context: EvaluatorContext) -> None:
        if not context.description or not context.description.strip():
            raise ValidationError("A description is required for analysis")

    async def _invoke(self, evaluator: AnalysisCapability, context: EvaluatorContext) -> EvaluatorResponse:
        evaluator_id = evaluator.evaluator_id
        name = getattr(evaluator, "name", evaluator_id)

        with evaluator_span(evaluator_id) as span:
            try:
                if self.evaluator_timeout is not None:
                    response = await asyncio.wait_for(evaluator.analyze(context), self.evaluator_timeout)
                else:
                    response = await evaluator.analyze(context)
                if response.evaluator_id != evaluator_id:
                    response = response.model_copy(update={"evaluator_id": evaluator_id})
            except Exception as e:
                reason = "timeout" if isinstance(e, TimeoutError) else type(e).__name__
                logger.error(
                    f"Evaluator {evaluator_id} failed: {e!r}",
                    extra={"evaluator_id": evaluator_id, "error_type": reason},
                )
                record_error(span, e, reason)
                response = degraded_response(evaluator_id, name, reason)

            span.set_attribute("evaluator.confidence", response.confidence)
            span.set_attribute("evaluator.degraded", response.degraded)
            return response

    async def run_all(
        self,
        context: EvaluatorContext,
        evaluator_ids: Iterable[str] | None = None,
    ) -> MultiEvaluatorAnalysis:
        """Analyze a request with every selected evaluator.

        Args:
            context: The request to analyze
            evaluator_ids: Subset to run, in the desired output order (None = all)

        Returns:
            MultiEvaluatorAnalysis with exactly one response per selected evaluator

        Raises:
            ValidationError: Empty description, empty selection or unknown evaluator
        """
        self._validate_context(context)
        evaluators = self.registry.select(evaluator_ids)
        selected_ids = [e.evaluator_id for e in evaluators]

        logger.info(
            f"Running {len(evaluators)} evaluator(s) for project {context.project_id}: "
            f"{', '.join(selected_ids)}"
        )

        with orchestration_span(context.project_id, context.description, selected_ids) as span:
            # gather preserves argument order, so output follows selection order
            responses = list(await asyncio.gather(*(self._invoke(e, context) for e in evaluators)))

            consensus = build_consensus(responses)
            summary = summarize(responses, consensus)
            recommendations = rank_recommendations(responses)
            degraded = [r.evaluator_id for r in responses if r.degraded]

            span.set_attribute("orchestration.average_confidence", summary.average_confidence)
            span.set_attribute("orchestration.degraded_count", len(degraded))

        if degraded:
            logger.warning(f"Degraded evaluators: {', '.join(degraded)}")

        return MultiEvaluatorAnalysis(
            consensus=consensus,
            responses=responses,
            summary=summary.to_markdown(),
            recommendations=recommendations,
            average_confidence=summary.average_confidence,
            high_confidence=summary.high_confidence,
            low_confidence=[evaluator_id for evaluator_id, _ in summary.low_confidence],
            technical_alignment=summary.technical_alignment,
            risk_flagged=summary.risk_flagged,
            degraded_evaluators=degraded,
        )

    async def run_selected(
        self,
        context: EvaluatorContext,
        evaluator_ids: Iterable[str],
    ) -> MultiEvaluatorAnalysis:
        """Analyze with an explicit, non-empty subset of evaluators."""
        selection = list(evaluator_ids)
        if not selection:
            raise ValidationError("At least one evaluator must be selected")
        return await self.run_all(context, selection)

    async def run_single(self, context: EvaluatorContext, evaluator_id: str) -> EvaluatorResponse:
        """Invoke one evaluator, recovering from its failure like ``run_all``.

        Raises:
            ValidationError: Empty description or unknown evaluator
        """
        self._validate_context(context)
        (evaluator,) = self.registry.select([evaluator_id])
        return await self._invoke(evaluator, context)
