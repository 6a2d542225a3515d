"""Tests for the evaluator contract, the built-in specialists and the registry.

Covers:
- Evaluator.analyze decoration, scoring and failure recovery
- Rule selection and data-quality adjustments of the specialists
- EvaluatorRegistry registration and selection rules

Run with: pytest tests/test_evaluators.py -v
"""

import asyncio

import pytest

from concord.config import DEFAULT_EVALUATOR_ORDER, MANUAL_REVIEW_SUGGESTION, WorkItemKind
from concord.errors import NotFoundError, ValidationError
from concord.evaluators.base import (
    AnalysisCapability,
    Assessment,
    EvaluatorContext,
    FunctionEvaluator,
    degraded_response,
    format_response,
)
from concord.evaluators.registry import EvaluatorRegistry, default_registry
from concord.evaluators.scoring import ConfidenceFactors
from concord.evaluators.specialists import (
    ArchitectEvaluator,
    BusinessEvaluator,
    DBAEvaluator,
    DeveloperEvaluator,
    ProductOwnerEvaluator,
    QAEvaluator,
)
from concord.store.models import WorkItem


def _context(description: str, **kwargs) -> EvaluatorContext:
    return EvaluatorContext(project_id="billing", description=description, **kwargs)


def _analyze(evaluator, description: str, **kwargs):
    return asyncio.run(evaluator.analyze(_context(description, **kwargs)))


def _fixed(context: EvaluatorContext) -> Assessment:
    return Assessment(
        body="Looks fine.",
        factors=ConfidenceFactors(complexity=1, familiarity=5, risk_level=1, data_quality=5),
        suggestions=["Ship it"],
    )


def _broken(context: EvaluatorContext) -> Assessment:
    raise KeyError("missing rule table")


# ========== Evaluator Base ==========


class TestEvaluatorBase:
    """Test the shared analyze() behaviour."""

    def test_response_is_decorated_and_scored(self):
        evaluator = FunctionEvaluator("security", "Security", "🔒", _fixed)
        response = _analyze(evaluator, "Add login")

        assert response.evaluator_id == "security"
        assert response.text == "🔒 **Security**: Looks fine."
        assert response.confidence == 1.0
        assert response.suggestions == ["Ship it"]
        assert response.degraded is False

    def test_internal_failure_becomes_degraded_response(self):
        evaluator = FunctionEvaluator("security", "Security", "🔒", _broken)
        response = _analyze(evaluator, "Add login")

        assert response.degraded is True
        assert response.confidence == 0.1
        assert response.suggestions == [MANUAL_REVIEW_SUGGESTION]
        assert "KeyError" in response.text

    def test_empty_description_becomes_degraded_response(self):
        evaluator = FunctionEvaluator("security", "Security", "🔒", _fixed)
        response = _analyze(evaluator, "   ")

        assert response.degraded is True
        assert response.confidence == 0.1

    def test_format_response(self):
        assert format_response("🧪", "QA Engineer", "Test it.") == "🧪 **QA Engineer**: Test it."

    def test_degraded_response_shape(self):
        response = degraded_response("qa", "QA Engineer", "timeout")

        assert response.confidence == 0.1
        assert response.suggestions == [MANUAL_REVIEW_SUGGESTION]
        assert "timeout" in response.text

    def test_fake_evaluators_satisfy_protocol(self, exploding, slow):
        assert isinstance(exploding(), AnalysisCapability)
        assert isinstance(slow("slow", 0), AnalysisCapability)
        assert not isinstance(object(), AnalysisCapability)


# ========== Specialists ==========


class TestSpecialists:
    """Test the built-in rule-based specialists."""

    def test_architect_api_rule(self):
        """complexity 3, risk 2, familiarity 4, data quality 2 → 0.25."""
        response = _analyze(ArchitectEvaluator(), "Create an API endpoint to list customer orders")

        assert response.text.startswith("🏗️ **Software Architect**:")
        assert "service layer" in response.text
        assert response.confidence == 0.25

    def test_architect_code_context_raises_confidence(self):
        without = _analyze(ArchitectEvaluator(), "Expose an API for invoices")
        with_code = _analyze(ArchitectEvaluator(), "Expose an API for invoices", code_context="class Invoice: ...")

        assert with_code.confidence > without.confidence

    def test_developer_crud_rule(self):
        response = _analyze(DeveloperEvaluator(), "Create a screen to edit customers")

        assert "transaction" in response.text
        assert response.confidence == 0.45

    def test_developer_uses_bug_rules_for_bug_work_items(self):
        bug = WorkItem(project_id="billing", title="Crash", kind=WorkItemKind.BUG)
        response = _analyze(DeveloperEvaluator(), "Null reference when saving invoices", work_item=bug)

        assert "null" in response.text.lower()
        assert "Write a regression test for the null case" in response.suggestions

    def test_developer_bug_fallback(self):
        bug = WorkItem(project_id="billing", title="Crash", kind=WorkItemKind.BUG)
        response = _analyze(DeveloperEvaluator(), "Totals are wrong after midnight", work_item=bug)

        assert "Reproduce the error in a controlled environment" in response.suggestions

    def test_dba_flags_large_volumes(self):
        response = _analyze(DBAEvaluator(), "Import thousands of invoices nightly")

        assert "ATTENTION" in response.text
        assert any("Critical" in s for s in response.suggestions)

    def test_dba_fallback_has_no_markers(self):
        response = _analyze(DBAEvaluator(), "Change the button colour")

        assert "ATTENTION" not in response.text
        assert response.suggestions == ["Use parameterized queries"]

    def test_qa_financial_rule(self):
        response = _analyze(QAEvaluator(), "Change invoice rounding")

        assert "rounding" in response.text
        assert response.suggestions[0].startswith("Critical")

    def test_business_rules_raise_data_quality(self):
        without = _analyze(BusinessEvaluator(), "Adjust commission rates")
        with_rules = _analyze(BusinessEvaluator(), "Adjust commission rates", business_rules="Max 5%")

        assert with_rules.confidence > without.confidence

    def test_product_owner_urgent_rule(self):
        response = _analyze(ProductOwnerEvaluator(), "Checkout is down, fix ASAP")

        assert response.suggestions[0].startswith("Urgent")

    def test_first_matching_rule_wins(self):
        """'slow' and 'database' both match; the earlier performance rule applies."""
        response = _analyze(ArchitectEvaluator(), "The database report is slow")

        assert "performance" in response.text


# ========== Registry ==========


class TestEvaluatorRegistry:
    """Test registration and selection."""

    def test_default_registry_order(self):
        assert default_registry().ids() == list(DEFAULT_EVALUATOR_ORDER)

    def test_default_registries_are_independent(self):
        first = default_registry()
        first.register(FunctionEvaluator("security", "Security", "🔒", _fixed))

        assert "security" in first
        assert "security" not in default_registry()

    def test_duplicate_registration_rejected(self):
        registry = default_registry()
        with pytest.raises(ValidationError):
            registry.register(ArchitectEvaluator())

    def test_replace_registration(self, exploding):
        registry = default_registry()
        replacement = exploding(evaluator_id="qa")
        registry.register(replacement, replace=True)

        assert registry.get("qa") is replacement
        assert len(registry) == 6

    def test_non_evaluator_rejected(self):
        with pytest.raises(ValidationError):
            EvaluatorRegistry().register(object())

    def test_empty_id_rejected(self, exploding):
        with pytest.raises(ValidationError):
            EvaluatorRegistry().register(exploding(evaluator_id=""))

    def test_get_unknown(self):
        with pytest.raises(NotFoundError):
            default_registry().get("security")

    def test_select_preserves_requested_order_and_dedupes(self):
        selected = default_registry().select(["qa", "architect", "qa"])
        assert [e.evaluator_id for e in selected] == ["qa", "architect"]

    def test_select_empty_rejected(self):
        with pytest.raises(ValidationError):
            default_registry().select([])

    def test_select_unknown_lists_ids(self):
        with pytest.raises(ValidationError) as exc_info:
            default_registry().select(["qa", "security", "legal"])
        assert exc_info.value.unmet == ["security", "legal"]

    def test_describe_all(self):
        described = default_registry().describe_all()

        assert described[0]["id"] == "architect"
        assert described[0]["key_question"]
