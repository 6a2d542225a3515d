"""Explicit, instance-owned evaluator registry.

New perspectives register here without any change to the orchestrator.
There is no module-level registry: each orchestrator owns its own.
"""

import logging
from collections.abc import Iterable, Iterator

from concord.errors import NotFoundError, ValidationError

from .base import AnalysisCapability, describe
from .specialists import SPECIALIST_CLASSES

logger = logging.getLogger(__name__)


class EvaluatorRegistry:
    """Insertion-ordered mapping of evaluator id to evaluator."""

    def __init__(self, evaluators: Iterable[AnalysisCapability] = ()):
        self._evaluators: dict[str, AnalysisCapability] = {}
        for evaluator in evaluators:
            self.register(evaluator)

    def register(self, evaluator: AnalysisCapability, replace: bool = False) -> None:
        """Add an evaluator.

        Args:
            evaluator: Object exposing ``evaluator_id``, ``name`` and async ``analyze``
            replace: Allow overriding an existing registration

        Raises:
            ValidationError: If the id is empty, already taken, or the object
                does not satisfy the evaluator interface
        """
        if not isinstance(evaluator, AnalysisCapability):
            raise ValidationError(f"{evaluator!r} does not implement analyze()")
        if not evaluator.evaluator_id:
            raise ValidationError("Evaluator id must not be empty")
        if evaluator.evaluator_id in self._evaluators and not replace:
            raise ValidationError(f"Evaluator '{evaluator.evaluator_id}' is already registered")

        self._evaluators[evaluator.evaluator_id] = evaluator
        logger.debug(f"Registered evaluator {evaluator.evaluator_id}")

    def get(self, evaluator_id: str) -> AnalysisCapability:
        try:
            return self._evaluators[evaluator_id]
        except KeyError:
            raise NotFoundError(f"Unknown evaluator: {evaluator_id}") from None

    def ids(self) -> list[str]:
        return list(self._evaluators)

    def select(self, evaluator_ids: Iterable[str] | None = None) -> list[AnalysisCapability]:
        """Resolve a selection of evaluators, preserving the requested order.

        ``None`` selects every registered evaluator. Duplicate ids are
        collapsed to their first occurrence.

        Raises:
            ValidationError: If the selection is empty or names unknown evaluators
        """
        if evaluator_ids is None:
            selected = self.ids()
        else:
            selected = list(dict.fromkeys(evaluator_ids))

        if not selected:
            raise ValidationError("At least one evaluator must be selected")

        unknown = [e for e in selected if e not in self._evaluators]
        if unknown:
            raise ValidationError(
                f"Unknown evaluator(s): {', '.join(unknown)}",
                unmet=unknown,
            )

        return [self._evaluators[e] for e in selected]

    def describe_all(self) -> list[dict[str, str]]:
        return [describe(e) for e in self._evaluators.values()]

    def __contains__(self, evaluator_id: object) -> bool:
        return evaluator_id in self._evaluators

    def __len__(self) -> int:
        return len(self._evaluators)

    def __iter__(self) -> Iterator[AnalysisCapability]:
        return iter(self._evaluators.values())


def default_registry() -> EvaluatorRegistry:
    """Build a fresh registry holding the six built-in specialists."""
    return EvaluatorRegistry(cls() for cls in SPECIALIST_CLASSES)
