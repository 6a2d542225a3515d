"""Result model for a multi-evaluator analysis run."""

from pydantic import BaseModel, Field

from concord.evaluators.base import EvaluatorResponse


class MultiEvaluatorAnalysis(BaseModel):
    """Merged outcome of one orchestration run.

    ``responses`` and ``consensus`` follow the order in which evaluators
    were selected, never the order in which they finished.
    """

    consensus: dict[str, str] = Field(default_factory=dict)  # evaluator id -> undecorated text
    responses: list[EvaluatorResponse] = Field(default_factory=list)
    summary: str = ""  # markdown
    recommendations: list[str] = Field(default_factory=list)  # deduplicated, at most 10
    average_confidence: float = 0.0
    high_confidence: list[str] = Field(default_factory=list)
    low_confidence: list[str] = Field(default_factory=list)
    technical_alignment: bool | None = None
    risk_flagged: bool = False
    degraded_evaluators: list[str] = Field(default_factory=list)

    @property
    def evaluator_ids(self) -> list[str]:
        return [r.evaluator_id for r in self.responses]

    def response_for(self, evaluator_id: str) -> EvaluatorResponse | None:
        return next((r for r in self.responses if r.evaluator_id == evaluator_id), None)
