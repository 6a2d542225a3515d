"""Consensus synthesis over a batch of evaluator responses.

Pure functions: they take responses in selection order and never mutate
them.

Functions:
    strip_decoration: Remove the emoji/name prefix from response text
    build_consensus: Map evaluator id to substantive text
    check_alignment: Fixed-vocabulary agreement check between two texts
    has_risk_markers: Scan text for warning markers
    summarize: Confidence partition, alignment and risk flags
    rank_recommendations: Union, dedupe and urgency-first ordering
    assess_quality: Post-hoc quality review of an analysis
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from concord.config import (
    ALIGNMENT_PAIR,
    ALIGNMENT_VOCABULARY,
    CRITICAL_MARKERS,
    HIGH_CONFIDENCE_THRESHOLD,
    LOW_CONFIDENCE_THRESHOLD,
    MAX_RECOMMENDATIONS,
    MIN_ALIGNMENT_MATCHES,
    QUALITY_CONFIDENCE_THRESHOLD,
    RISK_FOCUSED_EVALUATOR,
    RISK_MARKERS,
    URGENCY_KEYWORDS,
)
from concord.evaluators.base import EvaluatorResponse

# Optional "<emoji> " then "**Name**: " at the start of a response. The emoji
# slot is a run of symbol characters (no letters or digits) so multi-codepoint
# emoji are covered but a leading word is kept.
_DECORATION = re.compile(r"^\s*(?:[^\w\s*]+\s*)?\*\*[^*]+\*\*:\s*")


@dataclass
class ConsensusSummary:
    """Derived view over a batch of responses."""

    average_confidence: float
    high_confidence: list[str] = field(default_factory=list)  # evaluator ids
    low_confidence: list[tuple[str, float]] = field(default_factory=list)
    response_count: int = 0
    technical_alignment: bool | None = None  # None when the pair was not consulted
    risk_flagged: bool = False

    def to_markdown(self) -> str:
        lines = [
            "## 📋 Multi-Evaluator Summary",
            "",
            f"**Average Confidence:** {self.average_confidence * 100:.1f}%",
            f"**High-Confidence Evaluators:** {len(self.high_confidence)}/{self.response_count}",
            "",
        ]

        if self.low_confidence:
            lines.append(f"⚠️ **Attention:** {len(self.low_confidence)} evaluator(s) with low confidence:")
            for evaluator_id, confidence in self.low_confidence:
                lines.append(f"- {evaluator_id}: {confidence * 100:.1f}%")
            lines.append("")

        if self.technical_alignment is True:
            lines.append("✅ **Technical Alignment:** Architect and Developer agree")
        elif self.technical_alignment is False:
            lines.append("⚠️ **Technical Divergence:** Review alignment between Architect and Developer")

        if self.risk_flagged:
            lines.append("🗄️ **Performance Alert:** DBA identified potential impact")

        return "\n".join(lines).rstrip() + "\n"


@dataclass
class QualityReport:
    """Result of ``assess_quality``."""

    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def strip_decoration(text: str) -> str:
    return _DECORATION.sub("", text, count=1)


def build_consensus(responses: Sequence[EvaluatorResponse]) -> dict[str, str]:
    """Map each evaluator id to its undecorated text, in response order."""
    return {r.evaluator_id: strip_decoration(r.text) for r in responses}


def _matched_terms(text: str, vocabulary: Iterable[str]) -> set[str]:
    lowered = text.lower()
    return {term for term in vocabulary if term in lowered}


def check_alignment(
    text_a: str,
    text_b: str,
    vocabulary: Iterable[str] = ALIGNMENT_VOCABULARY,
    minimum: int = MIN_ALIGNMENT_MATCHES,
) -> bool:
    """True when both texts mention at least ``minimum`` of the same terms.

    Matching is case-insensitive substring search over a fixed vocabulary.
    """
    vocabulary = tuple(vocabulary)
    shared = _matched_terms(text_a, vocabulary) & _matched_terms(text_b, vocabulary)
    return len(shared) >= minimum


def has_risk_markers(text: str, markers: Iterable[str] = RISK_MARKERS) -> bool:
    return bool(_matched_terms(text, markers))


def summarize(
    responses: Sequence[EvaluatorResponse],
    consensus: dict[str, str] | None = None,
) -> ConsensusSummary:
    """Compute the confidence partition and the alignment/risk flags."""
    if consensus is None:
        consensus = build_consensus(responses)

    count = len(responses)
    average = sum(r.confidence for r in responses) / count if count else 0.0

    first, second = ALIGNMENT_PAIR
    alignment = None
    if consensus.get(first) and consensus.get(second):
        alignment = check_alignment(consensus[first], consensus[second])

    risk_text = consensus.get(RISK_FOCUSED_EVALUATOR, "")

    return ConsensusSummary(
        average_confidence=round(average, 4),
        high_confidence=[r.evaluator_id for r in responses if r.confidence >= HIGH_CONFIDENCE_THRESHOLD],
        low_confidence=[
            (r.evaluator_id, r.confidence) for r in responses if r.confidence < LOW_CONFIDENCE_THRESHOLD
        ],
        response_count=count,
        technical_alignment=alignment,
        risk_flagged=bool(risk_text) and has_risk_markers(risk_text),
    )


def _is_urgent(suggestion: str) -> bool:
    lowered = suggestion.lower()
    return any(keyword in lowered for keyword in URGENCY_KEYWORDS)


def rank_recommendations(
    responses: Sequence[EvaluatorResponse],
    limit: int = MAX_RECOMMENDATIONS,
) -> list[str]:
    """Union every response's suggestions, urgent ones first.

    Duplicates are removed by exact text, keeping the first occurrence.
    ``sorted`` is stable, so relative order within each group is preserved.
    """
    unique = list(dict.fromkeys(s for r in responses for s in r.suggestions))
    ranked = sorted(unique, key=lambda s: 0 if _is_urgent(s) else 1)
    return ranked[:limit]


def assess_quality(
    responses: Sequence[EvaluatorResponse],
    expected_ids: Iterable[str],
) -> QualityReport:
    """Review an analysis for low confidence, missing evaluators and risk alerts."""
    report = QualityReport()

    if responses:
        average = sum(r.confidence for r in responses) / len(responses)
    else:
        average = 0.0
    if average < QUALITY_CONFIDENCE_THRESHOLD:
        report.issues.append("Low average confidence across evaluators")
        report.recommendations.append("Review the request context and provide more detail")

    responded = {r.evaluator_id for r in responses}
    missing = [e for e in expected_ids if e not in responded]
    if missing:
        report.issues.append(f"Evaluators did not respond: {', '.join(missing)}")
        report.recommendations.append("Check that every evaluator is working")

    if any(_matched_terms(r.text, CRITICAL_MARKERS) for r in responses):
        report.recommendations.append("Review the risk alerts carefully")
        report.recommendations.append("Consider a phased rollout")

    return report
