"""Step planning for new Work Items.

Turns a consensus into an ordered, dependency-chained list of Steps:
a planning Step first, then one Step per plan fragment present in the
consensus, in a fixed category order. Planning is deterministic: the same
consensus always yields the same Steps.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from concord.config import DBA, DEVELOPER, PLANNING_STEP_OWNER, QA, STEP_FRAGMENT_ORDER
from concord.store.models import Step


@dataclass
class StepTemplate:
    """How a plan fragment becomes a Step."""

    title_template: str
    description_template: str
    completion_criteria: tuple[str, ...] = ()


# ========== Step Templates by Owner ==========

PLANNING_TEMPLATE = StepTemplate(
    title_template="Plan: {title}",
    description_template="Agree on the approach for '{title}'. {fragment}",
    completion_criteria=("Analysis reviewed", "Approach agreed"),
)

FRAGMENT_TEMPLATES: dict[str, StepTemplate] = {
    DEVELOPER: StepTemplate(
        title_template="Implement: {title}",
        description_template="Build the change. {fragment}",
        completion_criteria=("Code implemented", "Builds without errors"),
    ),
    DBA: StepTemplate(
        title_template="Data changes: {title}",
        description_template="Apply and verify the data changes. {fragment}",
        completion_criteria=("Migration applied", "Data verified"),
    ),
    QA: StepTemplate(
        title_template="Test: {title}",
        description_template="Verify the change end to end. {fragment}",
        completion_criteria=("Tests executed", "Validation complete"),
    ),
}


@dataclass
class PlannedStep:
    """A Step produced by the planner, before it belongs to a Work Item."""

    sequence_number: int
    title: str
    description: str
    owner_evaluator_id: str
    dependencies: list[int] = field(default_factory=list)
    completion_criteria: list[str] = field(default_factory=list)

    def to_step(self, work_item_id: str) -> Step:
        """Convert to Step model."""
        return Step(
            work_item_id=work_item_id,
            sequence_number=self.sequence_number,
            title=self.title,
            description=self.description,
            owner_evaluator_id=self.owner_evaluator_id,
            dependencies=list(self.dependencies),
            completion_criteria=list(self.completion_criteria),
        )


def plan_steps(
    title: str,
    consensus: dict[str, str],
    exclude: Iterable[str] = (),
    fragment_order: Iterable[str] = STEP_FRAGMENT_ORDER,
) -> list[PlannedStep]:
    """Generate the Step sequence for a Work Item.

    Args:
        title: Work Item title, used in Step titles
        consensus: Evaluator id -> analysis text
        exclude: Evaluator ids whose fragments must not become Steps
            (e.g. evaluators that only produced a degraded response)
        fragment_order: Category order for fragment Steps

    Returns:
        Steps numbered densely from 1. Step 1 has no dependencies; every
        later Step depends on the one before it.
    """
    excluded = set(exclude)

    steps = [
        PlannedStep(
            sequence_number=1,
            title=PLANNING_TEMPLATE.title_template.format(title=title),
            description=PLANNING_TEMPLATE.description_template.format(
                title=title,
                fragment=consensus.get(PLANNING_STEP_OWNER, "") if PLANNING_STEP_OWNER not in excluded else "",
            ).strip(),
            owner_evaluator_id=PLANNING_STEP_OWNER,
            completion_criteria=list(PLANNING_TEMPLATE.completion_criteria),
        )
    ]

    for evaluator_id in fragment_order:
        fragment = consensus.get(evaluator_id, "").strip()
        if not fragment or evaluator_id in excluded:
            continue

        template = FRAGMENT_TEMPLATES.get(
            evaluator_id,
            StepTemplate(title_template=f"{evaluator_id.title()}: {{title}}", description_template="{fragment}"),
        )
        sequence = len(steps) + 1
        steps.append(
            PlannedStep(
                sequence_number=sequence,
                title=template.title_template.format(title=title),
                description=template.description_template.format(fragment=fragment).strip(),
                owner_evaluator_id=evaluator_id,
                dependencies=[sequence - 1],
                completion_criteria=list(template.completion_criteria),
            )
        )

    return steps
