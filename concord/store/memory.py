"""In-memory implementation of the persistence collaborator."""

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from .base import WorkStore
from .id_generator import id_number, next_entity_id
from .models import ENTITY_MODELS, ID_PREFIXES, EntityKind, ResumptionContext

logger = logging.getLogger(__name__)


class InMemoryStore(WorkStore):
    """Dictionary-backed store.

    All entities are held per kind, keyed by id, in insertion order. Callers
    always receive deep copies so nothing outside the store can mutate
    stored state. Every mutation triggers the optional save callback.

    Usage:
        store = InMemoryStore()
        item = store.insert(EntityKind.WORK_ITEM, WorkItem(project_id="p", title="Login"))
        store.update(EntityKind.WORK_ITEM, item.id, {"status": "in_progress"})
    """

    def __init__(self, save_callback: Callable[["InMemoryStore"], None] | None = None):
        """Initialize an empty store.

        Args:
            save_callback: Function called after each mutation with the store
        """
        self._tables: dict[EntityKind, dict[str, BaseModel]] = {kind: {} for kind in EntityKind}
        self._high_water: dict[EntityKind, int] = {kind: 0 for kind in EntityKind}
        self._lock = threading.RLock()
        self.save_callback = save_callback

    def _save(self) -> None:
        """Trigger save callback."""
        if self.save_callback is not None:
            self.save_callback(self)

    def _assign_id(self, kind: EntityKind, entity: BaseModel) -> BaseModel:
        table = self._tables[kind]
        if getattr(entity, "id", ""):
            if entity.id in table:
                raise ValueError(f"{kind.value} {entity.id} already exists")
            new_id = entity.id
        else:
            new_id = next_entity_id(kind, table.keys(), self._high_water[kind])
            entity = entity.model_copy(update={"id": new_id})
        num = id_number(new_id, ID_PREFIXES[kind])
        if num is not None:
            self._high_water[kind] = max(self._high_water[kind], num)
        return entity

    @staticmethod
    def _matches(entity: BaseModel, filters: dict[str, Any] | None) -> bool:
        if not filters:
            return True
        return all(getattr(entity, key, None) == value for key, value in filters.items())

    # ========== Generic Operations ==========

    def get(self, kind: EntityKind, entity_id: str) -> BaseModel | None:
        with self._lock:
            entity = self._tables[kind].get(entity_id)
            return entity.model_copy(deep=True) if entity is not None else None

    def insert(self, kind: EntityKind, entity: BaseModel) -> BaseModel:
        model_cls = ENTITY_MODELS[kind]
        if not isinstance(entity, model_cls):
            raise TypeError(f"Expected {model_cls.__name__} for {kind.value}, got {type(entity).__name__}")

        with self._lock:
            stored = self._assign_id(kind, entity.model_copy(deep=True))
            self._tables[kind][stored.id] = stored
            self._save()
            logger.debug(f"Inserted {kind.value} {stored.id}")
            return stored.model_copy(deep=True)

    def update(self, kind: EntityKind, entity_id: str, changes: dict[str, Any]) -> BaseModel | None:
        model_cls = ENTITY_MODELS[kind]
        unknown = set(changes) - set(model_cls.model_fields)
        if unknown or "id" in changes:
            raise ValueError(f"Cannot update fields {sorted(unknown | ({'id'} & set(changes)))} on {kind.value}")

        with self._lock:
            current = self._tables[kind].get(entity_id)
            if current is None:
                return None
            # Re-validate so model invariants hold after partial updates
            updated = model_cls.model_validate({**current.model_dump(), **changes})
            self._tables[kind][entity_id] = updated
            self._save()
            return updated.model_copy(deep=True)

    def list_entities(
        self,
        kind: EntityKind,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[BaseModel]:
        with self._lock:
            rows = [e for e in self._tables[kind].values() if self._matches(e, filters)]
            if order_by:
                rows.sort(
                    key=lambda e: (getattr(e, order_by) is None, getattr(e, order_by)),
                    reverse=descending,
                )
            if limit is not None:
                rows = rows[:limit]
            return [e.model_copy(deep=True) for e in rows]

    def delete_where(self, kind: EntityKind, predicate: Callable[[BaseModel], bool]) -> int:
        with self._lock:
            table = self._tables[kind]
            doomed = [entity_id for entity_id, e in table.items() if predicate(e)]
            for entity_id in doomed:
                del table[entity_id]
            if doomed:
                self._save()
                logger.debug(f"Deleted {len(doomed)} {kind.value} record(s)")
            return len(doomed)

    def search(
        self,
        kind: EntityKind,
        field: str,
        query: str,
        filters: dict[str, Any] | None = None,
    ) -> list[BaseModel]:
        needle = query.lower()
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._tables[kind].values()
                if self._matches(e, filters) and needle in str(getattr(e, field, "") or "").lower()
            ]

    # ========== Resumption Context Operations ==========

    def _deactivate_project_contexts(self, project_id: str) -> None:
        table = self._tables[EntityKind.CONTEXT]
        for context_id, ctx in table.items():
            if ctx.project_id == project_id and ctx.is_active:
                table[context_id] = ctx.model_copy(update={"is_active": False})

    def get_active_context(self, project_id: str) -> ResumptionContext | None:
        with self._lock:
            for ctx in self._tables[EntityKind.CONTEXT].values():
                if ctx.project_id == project_id and ctx.is_active:
                    return ctx.model_copy(deep=True)
            return None

    def save_active_context(self, context: ResumptionContext) -> ResumptionContext:
        with self._lock:
            self._deactivate_project_contexts(context.project_id)
            stored = self._assign_id(
                EntityKind.CONTEXT, context.model_copy(update={"is_active": True}, deep=True)
            )
            self._tables[EntityKind.CONTEXT][stored.id] = stored
            self._save()
            return stored.model_copy(deep=True)

    def reactivate_context(
        self, project_id: str, context_id: str, resumed_at: datetime
    ) -> ResumptionContext | None:
        with self._lock:
            table = self._tables[EntityKind.CONTEXT]
            target = table.get(context_id)
            if target is None or target.project_id != project_id:
                return None
            self._deactivate_project_contexts(project_id)
            table[context_id] = target.model_copy(update={"is_active": True, "resumed_at": resumed_at})
            self._save()
            return table[context_id].model_copy(deep=True)

    def delete_contexts_older_than(
        self, project_id: str, cutoff: datetime, only_inactive: bool = True
    ) -> int:
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=UTC)
        return self.delete_where(
            EntityKind.CONTEXT,
            lambda ctx: (
                ctx.project_id == project_id
                and ctx.saved_at < cutoff
                and not (only_inactive and ctx.is_active)
            ),
        )

    # ========== Snapshot Support ==========

    def snapshot(self) -> dict[str, Any]:
        """Return all stored entities as plain data, keyed by kind."""
        with self._lock:
            data: dict[str, Any] = {
                kind.value: [e.model_dump(mode="json") for e in table.values()]
                for kind, table in self._tables.items()
            }
            data["sequences"] = {kind.value: n for kind, n in self._high_water.items()}
            return data

    def restore(self, data: dict[str, Any]) -> None:
        """Replace store contents with a snapshot produced by ``snapshot``."""
        with self._lock:
            for kind in EntityKind:
                model_cls = ENTITY_MODELS[kind]
                rows = [model_cls.model_validate(row) for row in data.get(kind.value) or []]
                self._tables[kind] = {row.id: row for row in rows}
                self._high_water[kind] = 0
                for row in rows:
                    num = id_number(row.id, ID_PREFIXES[kind])
                    if num is not None:
                        self._high_water[kind] = max(self._high_water[kind], num)
            for kind_value, n in (data.get("sequences") or {}).items():
                kind = EntityKind(kind_value)
                self._high_water[kind] = max(self._high_water[kind], int(n))
