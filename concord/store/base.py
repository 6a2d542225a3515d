"""Persistence collaborator interface.

The workflow core talks to storage only through ``WorkStore``. Single-row
fetches and updates signal "not found" by returning ``None``; any other
failure is raised as ``StoreError`` and is never handled by the core.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from .models import EntityKind, ResumptionContext


class WorkStore(ABC):
    """Abstract CRUD store keyed by entity kind and id."""

    # ========== Generic Operations ==========

    @abstractmethod
    def get(self, kind: EntityKind, entity_id: str) -> BaseModel | None:
        """Fetch one entity by id, or None if it does not exist."""

    @abstractmethod
    def insert(self, kind: EntityKind, entity: BaseModel) -> BaseModel:
        """Insert an entity, assigning an id if it has none. Returns the stored copy."""

    @abstractmethod
    def update(self, kind: EntityKind, entity_id: str, changes: dict[str, Any]) -> BaseModel | None:
        """Apply a partial update. Returns the updated entity, or None if missing."""

    @abstractmethod
    def list_entities(
        self,
        kind: EntityKind,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[BaseModel]:
        """List entities whose fields equal every value in ``filters``."""

    @abstractmethod
    def delete_where(self, kind: EntityKind, predicate: Callable[[BaseModel], bool]) -> int:
        """Delete every entity matching ``predicate``. Returns the number deleted."""

    @abstractmethod
    def search(
        self,
        kind: EntityKind,
        field: str,
        query: str,
        filters: dict[str, Any] | None = None,
    ) -> list[BaseModel]:
        """Case-insensitive substring search over one text field."""

    # ========== Resumption Context Operations ==========

    @abstractmethod
    def get_active_context(self, project_id: str) -> ResumptionContext | None:
        """Return the project's active context, if any."""

    @abstractmethod
    def save_active_context(self, context: ResumptionContext) -> ResumptionContext:
        """Persist ``context`` as the only active context of its project.

        Deactivating the previous contexts and inserting the new one happen
        as a single step.
        """

    @abstractmethod
    def reactivate_context(
        self, project_id: str, context_id: str, resumed_at: datetime
    ) -> ResumptionContext | None:
        """Make an existing context the only active one, stamping ``resumed_at``."""

    @abstractmethod
    def delete_contexts_older_than(
        self, project_id: str, cutoff: datetime, only_inactive: bool = True
    ) -> int:
        """Delete the project's contexts saved before ``cutoff`` (naive values are UTC)."""
