"""The six built-in analysis perspectives.

Each specialist matches the request description against an ordered list of
keyword rules. The first matching rule supplies the analysis text, the
complexity and risk factors, and the suggestions; a fallback rule covers
everything else. Familiarity and data quality are fixed per perspective,
with data quality raised when the caller supplies supporting context.
"""

import re
from dataclasses import dataclass, field

from concord.config import (
    ARCHITECT,
    BUSINESS,
    DBA,
    DEVELOPER,
    PRODUCT_OWNER,
    QA,
    WorkItemKind,
)

from .base import Assessment, Evaluator, EvaluatorContext
from .scoring import ConfidenceFactors


@dataclass(frozen=True)
class Rule:
    """A keyword rule: when ``pattern`` matches, use this assessment."""

    pattern: str
    body: str
    complexity: int
    risk_level: int
    suggestions: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, text: str) -> bool:
        return re.search(self.pattern, text, re.IGNORECASE) is not None


class RuleBasedEvaluator(Evaluator):
    """Evaluator driven by an ordered rule table."""

    familiarity: int = 4
    rules: tuple[Rule, ...] = ()
    fallback: Rule

    def data_quality(self, context: EvaluatorContext) -> int:
        return 4

    def rules_for(self, context: EvaluatorContext) -> tuple[Rule, ...]:
        return self.rules

    def evaluate(self, context: EvaluatorContext) -> Assessment:
        rule = next(
            (r for r in self.rules_for(context) if r.matches(context.description)),
            self.fallback,
        )
        return Assessment(
            body=rule.body,
            factors=ConfidenceFactors(
                complexity=rule.complexity,
                familiarity=self.familiarity,
                risk_level=rule.risk_level,
                data_quality=self.data_quality(context),
            ),
            suggestions=list(rule.suggestions),
        )


# =============================================================================
# Architect
# =============================================================================


class ArchitectEvaluator(RuleBasedEvaluator):
    evaluator_id = ARCHITECT
    name = "Software Architect"
    emoji = "🏗️"
    focus = "Structure that survives change"
    key_question = "Will this still make sense in a year?"

    rules = (
        Rule(
            r"\b(api|rest|webhook|endpoint|soap)\b",
            "Expose the capability through a versioned API behind a service layer. "
            "Keep transport concerns out of the domain and add validation at the boundary.",
            3,
            2,
            (
                "Define the API contract before implementing",
                "Version the endpoint from day one",
                "Centralize validation in the service layer",
            ),
        ),
        Rule(
            r"\b(slow|performance|timeout|latency)\b",
            "Treat this as a performance problem first: measure, then add a cache or "
            "async processing where the profile shows the cost.",
            4,
            3,
            (
                "Capture a baseline before optimizing",
                "Evaluate a cache for hot read paths",
                "Impact on existing consumers must be assessed",
            ),
        ),
        Rule(
            r"\b(database|sql|query|table|schema)\b",
            "Keep data access in a repository behind the service layer and make "
            "transaction boundaries explicit.",
            3,
            3,
            (
                "Isolate queries behind a repository interface",
                "Define transaction boundaries explicitly",
            ),
        ),
        Rule(
            r"\b(file|csv|xml|import|export)\b",
            "Model file exchange as a batch pipeline with validation of each record "
            "and a clear rejection report.",
            2,
            2,
            (
                "Stream large files instead of loading them whole",
                "Report rejected records separately",
            ),
        ),
    )
    fallback = Rule(
        "",
        "Fits the existing layering. Add it as a new module behind the service layer "
        "with tests around its public interface.",
        2,
        1,
        (
            "Keep the change inside one module boundary",
            "Document the design decision",
        ),
    )

    def data_quality(self, context: EvaluatorContext) -> int:
        return 4 if context.code_context else 2


# =============================================================================
# Developer
# =============================================================================


class DeveloperEvaluator(RuleBasedEvaluator):
    evaluator_id = DEVELOPER
    name = "Senior Developer"
    emoji = "💻"
    focus = "Working code"
    key_question = "How do we make it work today?"
    familiarity = 5

    bug_rules = (
        Rule(
            r"\b(null|none|nil|reference)\b",
            "Guard every dereference on the failing path and add validation for the "
            "inputs that can be missing. Cover the null case with a test.",
            2,
            1,
            (
                "Add null checks at the failing call sites",
                "Log the offending input before raising",
                "Write a regression test for the null case",
            ),
        ),
        Rule(
            r"\b(index|array|list|bounds)\b",
            "Check collection bounds before access and prefer iteration over manual "
            "indexing. Add a test with empty and single-element inputs.",
            2,
            2,
            (
                "Verify sizes before indexing",
                "Write tests for empty collections",
            ),
        ),
    )
    bug_fallback = Rule(
        "",
        "Reproduce the failure in isolation, then fix with a regression test that "
        "fails before the change.",
        3,
        3,
        (
            "Reproduce the error in a controlled environment",
            "Add detailed logging around the failure",
            "Write a regression test",
        ),
    )

    rules = (
        Rule(
            r"\b(create|edit|update|delete|list|crud)\b",
            "Implement the operations in a service layer with input validation and a "
            "transaction per write. Expose them through the existing api routes.",
            3,
            2,
            (
                "Use a repository for persistence",
                "Validate input before every write",
                "Wrap multi-row writes in a transaction",
            ),
        ),
        Rule(
            r"\b(calculate|calculation|formula|total|tax)\b",
            "Use decimal arithmetic with explicit rounding and cover edge values with "
            "table-driven test cases.",
            2,
            2,
            (
                "Use Decimal for monetary values",
                "Test boundary values explicitly",
            ),
        ),
        Rule(
            r"\b(api|rest|http|integration)\b",
            "Call the external api through a client with retries and timeouts; make "
            "the call async if it sits on a request path.",
            4,
            3,
            (
                "Add retry with exponential backoff",
                "Set explicit timeouts on every call",
                "Cache responses where appropriate",
            ),
        ),
    )
    fallback = Rule(
        "",
        "Implement behind the service layer following current conventions, with "
        "validation on inputs and unit tests for the main path.",
        3,
        2,
        (
            "Follow existing naming conventions",
            "Add unit tests for the main path",
        ),
    )

    def data_quality(self, context: EvaluatorContext) -> int:
        return 5 if context.code_context else 3

    def rules_for(self, context: EvaluatorContext) -> tuple[Rule, ...]:
        if context.work_item is not None and context.work_item.kind == WorkItemKind.BUG:
            return self.bug_rules + (self.bug_fallback,)
        return self.rules


# =============================================================================
# DBA
# =============================================================================


class DBAEvaluator(RuleBasedEvaluator):
    evaluator_id = DBA
    name = "Database Administrator"
    emoji = "🗄️"
    focus = "Data integrity and query cost"
    key_question = "What happens to the database under real load?"

    rules = (
        Rule(
            r"\b(thousands|millions|bulk|batch|large volume)\b",
            "ATTENTION: Large data volume detected. Paginate reads, add supporting "
            "indexes and process writes in batches. Watch for lock contention.",
            4,
            4,
            (
                "Critical: test with production-sized data",
                "Process writes in batches",
                "Monitor locks during the rollout",
            ),
        ),
        Rule(
            r"\b(migration|schema|alter|column|table)\b",
            "ATTENTION: Schema change. Plan a reversible migration and verify the impact "
            "on existing queries and indexes.",
            4,
            3,
            (
                "Write a rollback script before migrating",
                "Back up affected tables",
            ),
        ),
        Rule(
            r"\b(join|report|aggregate|sum|count|group)\b",
            "Aggregations over joined tables need covering indexes; check the query "
            "plan for full scans and watch performance on large tenants.",
            3,
            2,
            (
                "Review the query plan",
                "Add covering indexes for the join keys",
            ),
        ),
    )
    fallback = Rule(
        "",
        "No significant database impact expected. Use parameterized queries.",
        2,
        2,
        ("Use parameterized queries",),
    )


# =============================================================================
# QA
# =============================================================================


class QAEvaluator(RuleBasedEvaluator):
    evaluator_id = QA
    name = "QA Engineer"
    emoji = "🧪"
    focus = "Failure modes"
    key_question = "How will this break?"

    rules = (
        Rule(
            r"\b(payment|invoice|tax|financial|billing)\b",
            "Financial paths need exhaustive test coverage: rounding, currency, refunds "
            "and duplicate submissions.",
            4,
            4,
            (
                "Critical: reconcile totals against a known dataset",
                "Test duplicate submissions",
                "Test rounding at every boundary",
            ),
        ),
        Rule(
            r"\b(create|edit|update|delete|crud)\b",
            "Test each operation with valid, invalid and boundary input, plus "
            "concurrent edits to the same record.",
            3,
            2,
            (
                "Cover invalid input for every field",
                "Test concurrent updates",
            ),
        ),
        Rule(
            r"\b(screen|form|ui|page|button)\b",
            "Exercise the form with keyboard-only navigation, empty submissions and "
            "slow network conditions.",
            3,
            2,
            (
                "Test empty and oversized inputs",
                "Check error messages are actionable",
            ),
        ),
    )
    fallback = Rule(
        "",
        "Write unit tests for the main path and one regression test per known edge case.",
        3,
        2,
        (
            "Write unit tests for the main path",
            "Add an end-to-end test for the happy path",
        ),
    )


# =============================================================================
# Business Analyst
# =============================================================================


class BusinessEvaluator(RuleBasedEvaluator):
    evaluator_id = BUSINESS
    name = "Business Analyst"
    emoji = "📊"
    focus = "The real business process"
    key_question = "Does this solve the real problem?"

    rules = (
        Rule(
            r"\b(financial|accounting|tax|invoice|billing)\b",
            "Critical financial impact: changes touch compliance and reporting. "
            "Validate with accounting before release.",
            5,
            5,
            (
                "Validate with the accounting team",
                "Check the impact on regulatory reports",
                "Plan a rollback",
            ),
        ),
        Rule(
            r"\b(inventory|stock|warehouse|product)\b",
            "Inventory impact: availability and costing may change. Coordinate with "
            "warehouse and purchasing.",
            4,
            4,
            (
                "Validate with warehouse staff",
                "Check cost calculations after the change",
            ),
        ),
        Rule(
            r"\b(sales|order|customer|commission)\b",
            "Sales impact: the change reaches customers and commissions. Train the "
            "sales team before enabling it.",
            3,
            3,
            (
                "Train the sales team",
                "Pilot with a small set of customers",
            ),
        ),
        Rule(
            r"\b(report|dashboard|kpi)\b",
            "Reporting impact: management decisions depend on these numbers. Validate "
            "with the people who read them.",
            2,
            2,
            (
                "Validate figures with end users",
                "Document metric definitions",
            ),
        ),
    )
    fallback = Rule(
        "",
        "Identify affected users and processes, then plan training and documentation.",
        3,
        2,
        (
            "Map the affected processes",
            "Plan user training",
        ),
    )

    def data_quality(self, context: EvaluatorContext) -> int:
        return 5 if context.business_rules else 3


# =============================================================================
# Product Owner
# =============================================================================


class ProductOwnerEvaluator(RuleBasedEvaluator):
    evaluator_id = PRODUCT_OWNER
    name = "Product Owner"
    emoji = "🎯"
    focus = "Value delivered"
    key_question = "Is this the most valuable thing to build next?"

    rules = (
        Rule(
            r"\b(urgent|asap|blocker|outage|down)\b",
            "Urgent: prioritize ahead of planned work and ship the smallest fix that "
            "unblocks users.",
            3,
            4,
            (
                "Urgent: ship a minimal fix first",
                "Communicate status to affected users",
            ),
        ),
        Rule(
            r"\b(report|dashboard|export)\b",
            "Valuable if it replaces a manual process. Confirm who reads it and how often.",
            2,
            1,
            (
                "Confirm the audience and cadence",
                "Define acceptance criteria with a sample",
            ),
        ),
    )
    fallback = Rule(
        "",
        "Define acceptance criteria and a measurable outcome before starting.",
        2,
        2,
        (
            "Write acceptance criteria",
            "Agree on a success metric",
        ),
    )


SPECIALIST_CLASSES: tuple[type[RuleBasedEvaluator], ...] = (
    ArchitectEvaluator,
    DeveloperEvaluator,
    DBAEvaluator,
    QAEvaluator,
    BusinessEvaluator,
    ProductOwnerEvaluator,
)
