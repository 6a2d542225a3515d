"""Multi-evaluator orchestration and consensus synthesis."""

from .consensus import (
    ConsensusSummary,
    QualityReport,
    assess_quality,
    build_consensus,
    check_alignment,
    rank_recommendations,
    strip_decoration,
    summarize,
)
from .models import MultiEvaluatorAnalysis
from .orchestrator import EvaluatorOrchestrator

__all__ = [
    "EvaluatorOrchestrator",
    "MultiEvaluatorAnalysis",
    "ConsensusSummary",
    "QualityReport",
    "assess_quality",
    "build_consensus",
    "check_alignment",
    "rank_recommendations",
    "strip_decoration",
    "summarize",
]
