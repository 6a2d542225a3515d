"""Analysis perspectives and the confidence scoring they share."""

from .base import (
    AnalysisCapability,
    Assessment,
    Evaluator,
    EvaluatorContext,
    EvaluatorResponse,
    FunctionEvaluator,
    degraded_response,
    format_response,
)
from .registry import EvaluatorRegistry, default_registry
from .scoring import ConfidenceFactors, compute_confidence
from .specialists import (
    ArchitectEvaluator,
    BusinessEvaluator,
    DBAEvaluator,
    DeveloperEvaluator,
    ProductOwnerEvaluator,
    QAEvaluator,
)

__all__ = [
    "AnalysisCapability",
    "Assessment",
    "Evaluator",
    "EvaluatorContext",
    "EvaluatorResponse",
    "FunctionEvaluator",
    "degraded_response",
    "format_response",
    "EvaluatorRegistry",
    "default_registry",
    "ConfidenceFactors",
    "compute_confidence",
    "ArchitectEvaluator",
    "DeveloperEvaluator",
    "DBAEvaluator",
    "QAEvaluator",
    "BusinessEvaluator",
    "ProductOwnerEvaluator",
]
