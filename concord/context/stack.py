"""Per-project stack of resumption contexts.

Each project has at most one active context, the top of its stack. Pushing
saves a child of the active context; popping reactivates the parent. The
store is authoritative; ``ContextCache`` mirrors each project's active entry.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from concord.config import ErrorKind
from concord.errors import OperationResult
from concord.store.base import WorkStore
from concord.store.models import EntityKind, ResumptionContext

from .cache import CacheStats, ContextCache

logger = logging.getLogger(__name__)

# Fields callers may change through update_current; the rest define the stack
UPDATABLE_FIELDS = frozenset(
    {"work_item_id", "step_id", "session_payload", "next_action", "notes"}
)


@dataclass
class ContextSummary:
    """Human-oriented view of a context."""

    description: str
    location: str
    next_action: str
    age: str


def format_age(saved_at: datetime, now: datetime | None = None) -> str:
    """Render how long ago a context was saved (e.g. "3 hour(s) ago")."""
    now = now or datetime.now(UTC)
    minutes = int((now - saved_at).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days} day(s) ago"
    if hours > 0:
        return f"{hours} hour(s) ago"
    if minutes > 0:
        return f"{minutes} minute(s) ago"
    return "just now"


class ContextStackManager:
    """Tracks where work on each project was left off.

    Responsibilities:
    - Push nested contexts and pop back to their parents
    - Record checkpoints that replace the top of the stack
    - Serve the active context through a read-through cache
    - Sweep old inactive contexts

    Every write that makes a context active goes through the store's atomic
    ``save_active_context`` / ``reactivate_context``, so a project never has
    two active contexts.
    """

    def __init__(self, store: WorkStore, cache: ContextCache | None = None):
        self.store = store
        self.cache = cache if cache is not None else ContextCache()

    # ========== Stack Operations ==========

    def _save_active(self, context: ResumptionContext) -> ResumptionContext:
        saved = self.store.save_active_context(context)
        self.cache.put(saved)
        logger.info(
            f"Saved context {saved.id} for project {saved.project_id} "
            f"(depth={saved.stack_depth}, parent={saved.parent_context_id})"
        )
        return saved

    def push(
        self,
        project_id: str,
        work_item_id: str | None = None,
        step_id: str | None = None,
        next_action: str = "",
        notes: str = "",
        session_payload: dict[str, Any] | None = None,
    ) -> ResumptionContext:
        """Save a new active context as a child of the current one.

        The new context's depth is the current depth plus one (0 when nothing
        is active) and its parent is the current active context.
        """
        current = self.store.get_active_context(project_id)
        return self._save_active(
            ResumptionContext(
                project_id=project_id,
                work_item_id=work_item_id,
                step_id=step_id,
                next_action=next_action,
                notes=notes,
                session_payload=session_payload or {},
                stack_depth=current.stack_depth + 1 if current else 0,
                parent_context_id=current.id if current else None,
            )
        )

    def checkpoint(
        self,
        project_id: str,
        work_item_id: str | None = None,
        step_id: str | None = None,
        next_action: str = "",
        notes: str = "",
        session_payload: dict[str, Any] | None = None,
    ) -> ResumptionContext:
        """Save a new active context that replaces the top of the stack.

        The checkpoint shares the current context's depth and parent, so a
        later ``pop`` still returns to the frame below. With nothing active
        it starts a new root.
        """
        current = self.store.get_active_context(project_id)
        return self._save_active(
            ResumptionContext(
                project_id=project_id,
                work_item_id=work_item_id,
                step_id=step_id,
                next_action=next_action,
                notes=notes,
                session_payload=session_payload or {},
                stack_depth=current.stack_depth if current else 0,
                parent_context_id=current.parent_context_id if current else None,
            )
        )

    def pop(self, project_id: str) -> OperationResult:
        """Deactivate the current context and reactivate its parent.

        Fails without changing anything when there is no active context or
        the active context is a root.
        """
        current = self.store.get_active_context(project_id)
        if current is None:
            return OperationResult.fail(f"No active context for project {project_id}", ErrorKind.NOT_FOUND)

        if not current.parent_context_id:
            return OperationResult.fail(
                f"Context {current.id} has no parent to return to",
                ErrorKind.STATE_CONFLICT,
                unmet=["parent_context_id"],
                context=current,
            )

        parent = self.store.reactivate_context(
            project_id, current.parent_context_id, resumed_at=datetime.now(UTC)
        )
        if parent is None:
            return OperationResult.fail(
                f"Parent context {current.parent_context_id} no longer exists",
                ErrorKind.NOT_FOUND,
                context=current,
            )

        self.cache.put(parent)
        logger.info(f"Popped context {current.id}, resumed {parent.id} for project {project_id}")
        return OperationResult.ok(
            f"Resumed context {parent.id}", context=parent, popped_context_id=current.id
        )

    # ========== Active Context ==========

    def get_active(self, project_id: str) -> ResumptionContext | None:
        """Return the active context, reading through the cache."""
        cached = self.cache.get(project_id)
        if cached is not None:
            return cached

        context = self.store.get_active_context(project_id)
        if context is not None:
            self.cache.put(context)
        return context

    def update_current(self, project_id: str, **updates: Any) -> OperationResult:
        """Apply a partial update to the active context.

        Only the descriptive fields in ``UPDATABLE_FIELDS`` may change.
        """
        illegal = sorted(set(updates) - UPDATABLE_FIELDS)
        if illegal:
            return OperationResult.fail(
                f"Cannot update context fields: {', '.join(illegal)}",
                ErrorKind.VALIDATION,
                unmet=illegal,
            )

        current = self.store.get_active_context(project_id)
        if current is None:
            return OperationResult.fail(f"No active context for project {project_id}", ErrorKind.NOT_FOUND)

        updated = self.store.update(EntityKind.CONTEXT, current.id, updates)
        if updated is None:
            self.cache.invalidate(project_id)
            return OperationResult.fail(f"Context {current.id} disappeared", ErrorKind.NOT_FOUND)

        self.cache.put(updated)
        return OperationResult.ok(f"Updated context {updated.id}", context=updated)

    # ========== Retention ==========

    def sweep_inactive(self, project_id: str, older_than: datetime | timedelta) -> int:
        """Delete the project's inactive contexts saved before the cutoff.

        Args:
            project_id: Project to sweep
            older_than: Absolute cutoff (naive values are taken as UTC), or an
                age relative to now

        Returns:
            Number of contexts deleted
        """
        if isinstance(older_than, timedelta):
            cutoff = datetime.now(UTC) - older_than
        else:
            cutoff = older_than

        deleted = self.store.delete_contexts_older_than(project_id, cutoff, only_inactive=True)
        self.cache.invalidate(project_id)
        logger.info(f"Swept {deleted} inactive context(s) for project {project_id}")
        return deleted

    # ========== Inspection ==========

    def history(self, project_id: str, limit: int = 10) -> list[ResumptionContext]:
        """Most recent contexts first."""
        return self.store.list_entities(
            EntityKind.CONTEXT,
            filters={"project_id": project_id},
            order_by="saved_at",
            descending=True,
            limit=limit,
        )

    def summarize(self, context: ResumptionContext, now: datetime | None = None) -> ContextSummary:
        payload = context.session_payload
        if payload.get("file_path"):
            location = f"{payload['file_path']}:{payload.get('line_number', 0)}"
        else:
            location = payload.get("working_directory", "Unknown")

        return ContextSummary(
            description=f"Work Item: {context.work_item_id or 'None'}, Step: {context.step_id or 'None'}",
            location=location,
            next_action=context.next_action or "No action defined",
            age=format_age(context.saved_at, now),
        )

    def clear_cache(self, project_id: str | None = None) -> None:
        if project_id is None:
            self.cache.clear()
        else:
            self.cache.invalidate(project_id)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()
