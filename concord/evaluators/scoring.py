"""Deterministic confidence scoring shared by every evaluator.

Evaluators describe how hard and how well-understood a request is through
four bounded factors; this module turns them into a single confidence value
so that no evaluator invents its own scale.
"""

from dataclasses import dataclass

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0

FACTOR_MIN = 1
FACTOR_MAX = 5

COMPLEXITY_PENALTY = 0.10
RISK_PENALTY = 0.15


@dataclass(frozen=True)
class ConfidenceFactors:
    """Quality factors, each an integer in [1, 5]."""

    complexity: int
    familiarity: int
    risk_level: int
    data_quality: int

    def __post_init__(self) -> None:
        for name in ("complexity", "familiarity", "risk_level", "data_quality"):
            value = getattr(self, name)
            if not FACTOR_MIN <= value <= FACTOR_MAX:
                raise ValueError(f"{name} must be between {FACTOR_MIN} and {FACTOR_MAX}, got {value}")


def compute_confidence(factors: ConfidenceFactors) -> float:
    """Map quality factors to a confidence value.

    Args:
        factors: Complexity, familiarity, risk level and data quality

    Returns:
        Confidence in [0.10, 1.00], rounded to 2 decimal places

    Business Rules:
        base = (familiarity + data_quality) / 2
        raw = base / 5 - (complexity - 1) * 0.10 - (risk_level - 1) * 0.15
        result = clamp(raw, 0.10, 1.00)
    """
    base = (factors.familiarity + factors.data_quality) / 2
    complexity_penalty = (factors.complexity - 1) * COMPLEXITY_PENALTY
    risk_penalty = (factors.risk_level - 1) * RISK_PENALTY

    raw = base / FACTOR_MAX - complexity_penalty - risk_penalty

    return round(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, raw)), 2)
