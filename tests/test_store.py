"""Tests for the store layer.

Covers:
- Sequential, never-reused ID generation
- InMemoryStore CRUD, filtering, ordering, search and deletion
- Copy isolation and model re-validation on update
- Atomic active-context operations
- YamlFileStore persistence and load errors
"""

from datetime import UTC, datetime, timedelta

import pydantic
import pytest

from concord.config import StepStatus, WorkItemStatus
from concord.errors import StoreError
from concord.store.id_generator import id_number, next_entity_id
from concord.store.memory import InMemoryStore
from concord.store.models import (
    AnalysisRecord,
    EntityKind,
    ResumptionContext,
    Step,
    WorkItem,
)
from concord.store.yaml_store import YamlFileStore


def _work_item(title: str = "Invoice export", project_id: str = "billing") -> WorkItem:
    return WorkItem(project_id=project_id, title=title)


# ========== ID Generation ==========


class TestIdGeneration:
    """Test ID formatting and sequencing."""

    def test_first_id(self):
        assert next_entity_id(EntityKind.WORK_ITEM, []) == "WI-001"

    def test_next_after_existing(self):
        assert next_entity_id(EntityKind.STEP, ["ST-001", "ST-007", "WI-009"]) == "ST-008"

    def test_high_water_wins(self):
        assert next_entity_id(EntityKind.CONTEXT, ["CTX-002"], high_water=5) == "CTX-006"

    def test_id_number(self):
        assert id_number("BUG-012", "BUG") == 12
        assert id_number("BUG-x", "BUG") is None
        assert id_number("WI-001", "BUG") is None


# ========== In-Memory Store ==========


class TestInMemoryStore:
    """Test generic entity operations."""

    def test_insert_assigns_sequential_ids(self, store):
        first = store.insert(EntityKind.WORK_ITEM, _work_item("A"))
        second = store.insert(EntityKind.WORK_ITEM, _work_item("B"))

        assert (first.id, second.id) == ("WI-001", "WI-002")

    def test_ids_not_reused_after_delete(self, store):
        store.insert(EntityKind.WORK_ITEM, _work_item("A"))
        store.insert(EntityKind.WORK_ITEM, _work_item("B"))
        store.delete_where(EntityKind.WORK_ITEM, lambda w: True)

        assert store.insert(EntityKind.WORK_ITEM, _work_item("C")).id == "WI-003"

    def test_explicit_id_kept_and_duplicates_rejected(self, store):
        item = store.insert(EntityKind.WORK_ITEM, WorkItem(id="WI-010", project_id="billing", title="A"))
        assert item.id == "WI-010"
        assert store.insert(EntityKind.WORK_ITEM, _work_item("B")).id == "WI-011"

        with pytest.raises(ValueError):
            store.insert(EntityKind.WORK_ITEM, WorkItem(id="WI-010", project_id="billing", title="C"))

    def test_insert_type_checked(self, store):
        with pytest.raises(TypeError):
            store.insert(EntityKind.STEP, _work_item())

    def test_get_missing(self, store):
        assert store.get(EntityKind.WORK_ITEM, "WI-404") is None

    def test_returned_copies_are_isolated(self, store):
        item = store.insert(EntityKind.WORK_ITEM, _work_item())
        item.consensus["architect"] = "mutated"

        assert store.get(EntityKind.WORK_ITEM, item.id).consensus == {}

    def test_partial_update(self, store):
        item = store.insert(EntityKind.WORK_ITEM, _work_item())
        updated = store.update(EntityKind.WORK_ITEM, item.id, {"status": WorkItemStatus.IN_PROGRESS})

        assert updated.status == WorkItemStatus.IN_PROGRESS
        assert updated.title == "Invoice export"

    def test_update_missing_returns_none(self, store):
        assert store.update(EntityKind.WORK_ITEM, "WI-404", {"title": "x"}) is None

    def test_update_rejects_unknown_fields_and_id(self, store):
        item = store.insert(EntityKind.WORK_ITEM, _work_item())

        with pytest.raises(ValueError):
            store.update(EntityKind.WORK_ITEM, item.id, {"colour": "red"})
        with pytest.raises(ValueError):
            store.update(EntityKind.WORK_ITEM, item.id, {"id": "WI-999"})

    def test_update_revalidates(self, store):
        item = store.insert(EntityKind.WORK_ITEM, _work_item())

        with pytest.raises(pydantic.ValidationError):
            store.update(EntityKind.WORK_ITEM, item.id, {"progress_percentage": 150})
        assert store.get(EntityKind.WORK_ITEM, item.id).progress_percentage == 0

    def test_list_filters_orders_and_limits(self, store):
        for seq, title in [(3, "c"), (1, "a"), (2, "b")]:
            store.insert(
                EntityKind.STEP,
                Step(work_item_id="WI-001", sequence_number=seq, title=title, owner_evaluator_id="qa"),
            )
        store.insert(
            EntityKind.STEP,
            Step(work_item_id="WI-002", sequence_number=1, title="other", owner_evaluator_id="qa"),
        )

        steps = store.list_entities(EntityKind.STEP, filters={"work_item_id": "WI-001"}, order_by="sequence_number")
        assert [s.title for s in steps] == ["a", "b", "c"]

        latest = store.list_entities(
            EntityKind.STEP,
            filters={"work_item_id": "WI-001"},
            order_by="sequence_number",
            descending=True,
            limit=1,
        )
        assert [s.title for s in latest] == ["c"]

    def test_list_filter_on_enum_status(self, store):
        store.insert(EntityKind.STEP, Step(work_item_id="WI-001", sequence_number=1, title="a", owner_evaluator_id="qa"))
        pending = store.list_entities(EntityKind.STEP, filters={"status": StepStatus.PENDING})
        assert len(pending) == 1

    def test_search_case_insensitive(self, store):
        store.insert(EntityKind.ANALYSIS, AnalysisRecord(project_id="billing", description="Export Invoices"))
        store.insert(EntityKind.ANALYSIS, AnalysisRecord(project_id="crm", description="export invoices"))

        found = store.search(EntityKind.ANALYSIS, "description", "EXPORT invoices", filters={"project_id": "billing"})
        assert [a.project_id for a in found] == ["billing"]

    def test_delete_where(self, store):
        store.insert(EntityKind.WORK_ITEM, _work_item("keep", project_id="crm"))
        store.insert(EntityKind.WORK_ITEM, _work_item("drop"))

        assert store.delete_where(EntityKind.WORK_ITEM, lambda w: w.project_id == "billing") == 1
        assert [w.title for w in store.list_entities(EntityKind.WORK_ITEM)] == ["keep"]

    def test_save_callback_called_on_mutation(self):
        calls = []
        store = InMemoryStore(save_callback=calls.append)
        store.insert(EntityKind.WORK_ITEM, _work_item())

        assert calls == [store]


class TestStepModel:
    """Test the Step dependency validator."""

    def test_earlier_dependencies_allowed(self):
        step = Step(work_item_id="WI-001", sequence_number=3, title="t", owner_evaluator_id="qa", dependencies=[1, 2])
        assert step.dependencies == [1, 2]

    @pytest.mark.parametrize("dependencies", [[3], [4], [0]])
    def test_self_forward_and_zero_dependencies_rejected(self, dependencies):
        with pytest.raises(pydantic.ValidationError):
            Step(
                work_item_id="WI-001",
                sequence_number=3,
                title="t",
                owner_evaluator_id="qa",
                dependencies=dependencies,
            )


# ========== Active Context Operations ==========


class TestContextOperations:
    """Test the atomic active-context operations."""

    def test_save_deactivates_previous(self, store):
        first = store.save_active_context(ResumptionContext(project_id="billing"))
        second = store.save_active_context(ResumptionContext(project_id="billing"))

        assert store.get(EntityKind.CONTEXT, first.id).is_active is False
        assert store.get_active_context("billing").id == second.id

    def test_projects_are_independent(self, store):
        billing = store.save_active_context(ResumptionContext(project_id="billing"))
        store.save_active_context(ResumptionContext(project_id="crm"))

        assert store.get_active_context("billing").id == billing.id

    def test_reactivate(self, store):
        first = store.save_active_context(ResumptionContext(project_id="billing"))
        store.save_active_context(ResumptionContext(project_id="billing"))
        resumed_at = datetime.now(UTC)

        parent = store.reactivate_context("billing", first.id, resumed_at)

        assert parent.is_active is True
        assert parent.resumed_at == resumed_at
        active = store.list_entities(EntityKind.CONTEXT, filters={"is_active": True})
        assert [c.id for c in active] == [first.id]

    def test_reactivate_other_project_refused(self, store):
        crm = store.save_active_context(ResumptionContext(project_id="crm"))
        assert store.reactivate_context("billing", crm.id, datetime.now(UTC)) is None

    def test_delete_older_than_spares_active(self, store):
        old = datetime.now(UTC) - timedelta(days=30)
        store.save_active_context(ResumptionContext(project_id="billing", saved_at=old))
        active = store.save_active_context(ResumptionContext(project_id="billing", saved_at=old))

        deleted = store.delete_contexts_older_than("billing", datetime.now(UTC) - timedelta(days=7))

        assert deleted == 1
        assert [c.id for c in store.list_entities(EntityKind.CONTEXT)] == [active.id]


# ========== YAML File Store ==========


class TestYamlFileStore:
    """Test persistence to a YAML file."""

    def test_reload_round_trip(self, tmp_path):
        path = tmp_path / "store.yaml"
        store = YamlFileStore(path)
        item = store.insert(EntityKind.WORK_ITEM, _work_item())
        store.update(EntityKind.WORK_ITEM, item.id, {"status": WorkItemStatus.IN_PROGRESS})
        store.save_active_context(ResumptionContext(project_id="billing", work_item_id=item.id))

        reloaded = YamlFileStore(path)

        assert reloaded.get(EntityKind.WORK_ITEM, item.id).status == WorkItemStatus.IN_PROGRESS
        assert reloaded.get_active_context("billing").work_item_id == item.id

    def test_sequences_survive_reload(self, tmp_path):
        path = tmp_path / "store.yaml"
        store = YamlFileStore(path)
        store.insert(EntityKind.WORK_ITEM, _work_item("A"))
        store.delete_where(EntityKind.WORK_ITEM, lambda w: True)

        assert YamlFileStore(path).insert(EntityKind.WORK_ITEM, _work_item("B")).id == "WI-002"

    def test_missing_file_starts_empty(self, tmp_path):
        store = YamlFileStore(tmp_path / "nested" / "store.yaml")

        assert store.list_entities(EntityKind.WORK_ITEM) == []
        store.insert(EntityKind.WORK_ITEM, _work_item())
        assert (tmp_path / "nested" / "store.yaml").exists()

    def test_corrupt_file_raises_store_error(self, tmp_path):
        path = tmp_path / "store.yaml"
        path.write_text("work_item: [unclosed\n")

        with pytest.raises(StoreError):
            YamlFileStore(path)
